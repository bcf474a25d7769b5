import json

import pytest

from conftest import ADDRESS
from storefront.data.database import SessionLocal
from storefront.data.models import OrderModel, PaymentModel
from storefront.domain.errors import (
    InvalidInput,
    InvalidSignature,
    NotFound,
    OrderAlreadyPaid,
    OrderCancelled,
    PaymentAlreadyCompleted,
    PaymentNotFound,
    Unauthorized,
)
from storefront.domain.status import OrderStatus, PaymentStatus
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PaymentGateway, hmac_sha256_hex
from storefront.services.payment_service import PaymentService

WEBHOOK_SECRET = "test_webhook_secret"


@pytest.fixture
def gateway():
    return PaymentGateway(key_id="", key_secret="test_key_secret", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def service(db, gateway, notifier):
    return PaymentService(db, gateway=gateway, notification_service=notifier)


@pytest.fixture
def order(db, notifier, user, make_product, fill_cart):
    fill_cart(user, (make_product(price="100.00", discount="10", stock=5), 2))
    return OrderService(db, notification_service=notifier).create_order_from_cart(user.id, ADDRESS)


def _webhook(event, provider_order_id, payment_id="pay_1"):
    body = {
        "event": event,
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": provider_order_id}}},
    }
    raw = json.dumps(body).encode("utf-8")
    return raw, hmac_sha256_hex(WEBHOOK_SECRET, raw)


def _payments(db, order_id):
    return db.query(PaymentModel).filter_by(order_id=order_id).all()


def test_initiate_creates_pending_payment(db, service, user, order):
    result = service.initiate(user.id, order.id, "RAZORPAY")

    payment = result["payment"]
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.amount == order.total_amount
    assert payment.provider_order_id.startswith("order_")

    details = result["gateway_details"]
    assert details["order_id"] == payment.provider_order_id
    assert details["amount"] == 18000
    assert details["currency"] == "INR"
    assert details["prefill"]["name"] == ADDRESS["full_name"]
    assert details["prefill"]["email"] == user.email


def test_initiate_twice_keeps_one_payment_row(db, service, user, order):
    first = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    second = service.initiate(user.id, order.id, "STRIPE")["payment"]

    db.expire_all()
    rows = _payments(db, order.id)
    assert len(rows) == 1
    assert rows[0].provider_order_id == second.provider_order_id != first
    assert rows[0].provider == "STRIPE"


def test_initiate_rejects_other_users_order(service, other_user, order):
    with pytest.raises(Unauthorized):
        service.initiate(other_user.id, order.id, "RAZORPAY")


def test_initiate_rejects_cancelled_order(db, service, notifier, user, order):
    OrderService(db, notification_service=notifier).cancel(order.id, user.id)
    with pytest.raises(OrderCancelled):
        service.initiate(user.id, order.id, "RAZORPAY")


def test_initiate_after_success_rejected(db, service, gateway, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    service.verify("pay_1", provider_order_id, gateway.payment_signature(provider_order_id, "pay_1"), "RAZORPAY")

    with pytest.raises(OrderAlreadyPaid):
        service.initiate(user.id, order.id, "RAZORPAY")


def test_verify_with_valid_signature_marks_order_paid(db, service, gateway, notifier, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    signature = gateway.payment_signature(provider_order_id, "pay_123")

    result = service.verify("pay_123", provider_order_id, signature, "RAZORPAY")

    assert result["message"] == "Payment successful"
    assert result["order_status"] == OrderStatus.PAID.value
    db.expire_all()
    payment = _payments(db, order.id)[0]
    assert payment.status == PaymentStatus.SUCCESS.value
    assert payment.provider_payment_id == "pay_123"
    assert db.get(OrderModel, order.id).status == OrderStatus.PAID.value
    assert notifier.orders[-1] == (user.id, order.id, "paid")


def test_verify_with_bad_signature_changes_nothing(db, service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id

    with pytest.raises(InvalidSignature) as exc:
        service.verify("pay_123", provider_order_id, "deadbeef", "RAZORPAY")

    assert exc.value.detail == "Invalid payment signature"
    db.expire_all()
    assert _payments(db, order.id)[0].status == PaymentStatus.PENDING.value
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_success_handler_is_idempotent(db, service, notifier, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id

    first = service.handle_payment_success(provider_order_id, "pay_1")
    second = service.handle_payment_success(provider_order_id, "pay_2")

    assert first["message"] == "Payment successful"
    assert second["message"] == "Payment already processed"
    db.expire_all()
    payment = _payments(db, order.id)[0]
    assert payment.provider_payment_id == "pay_1"
    assert [e for _, _, e in notifier.orders].count("paid") == 1


def test_success_for_unknown_provider_order(service):
    with pytest.raises(PaymentNotFound):
        service.handle_payment_success("order_missing", "pay_1")


def test_success_after_cancel_keeps_order_cancelled(db, service, notifier, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    OrderService(db, notification_service=notifier).cancel(order.id, user.id)

    result = service.handle_payment_success(provider_order_id, "pay_1")

    assert result["order_status"] == OrderStatus.CANCELLED.value
    db.expire_all()
    assert _payments(db, order.id)[0].status == PaymentStatus.SUCCESS.value
    assert db.get(OrderModel, order.id).status == OrderStatus.CANCELLED.value


def test_webhook_captured_settles_order(db, service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    raw, signature = _webhook("payment.captured", provider_order_id)

    assert service.process_webhook_event(raw, signature) == {"status": "processed", "event": "payment.captured"}
    # replay
    assert service.process_webhook_event(raw, signature)["status"] == "processed"

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PAID.value


def test_webhook_with_bad_signature_rejected(db, service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    raw, _ = _webhook("payment.captured", provider_order_id)

    with pytest.raises(InvalidSignature):
        service.process_webhook_event(raw, "0" * 64)
    with pytest.raises(InvalidSignature):
        service.process_webhook_event(raw, None)

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_webhook_signature_covers_raw_bytes(service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    raw, signature = _webhook("payment.captured", provider_order_id)
    reformatted = json.dumps(json.loads(raw), indent=2).encode("utf-8")

    with pytest.raises(InvalidSignature):
        service.process_webhook_event(reformatted, signature)


def test_webhook_failed_marks_payment_failed_only(db, service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    raw, signature = _webhook("payment.failed", provider_order_id)

    assert service.process_webhook_event(raw, signature)["status"] == "processed"

    db.expire_all()
    assert _payments(db, order.id)[0].status == PaymentStatus.FAILED.value
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_late_failure_never_downgrades_success(db, service, user, order):
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    service.handle_payment_success(provider_order_id, "pay_1")
    raw, signature = _webhook("payment.failed", provider_order_id)

    result = service.process_webhook_event(raw, signature)

    assert result["reason"] == "already_succeeded"
    db.expire_all()
    assert _payments(db, order.id)[0].status == PaymentStatus.SUCCESS.value


def test_webhook_unknown_event_ignored(service):
    raw, signature = _webhook("refund.created", "order_x")
    assert service.process_webhook_event(raw, signature) == {"status": "ignored", "event": "refund.created"}


def test_webhook_unknown_order_acknowledged(service):
    raw, signature = _webhook("payment.captured", "order_unknown")
    result = service.process_webhook_event(raw, signature)
    assert result["status"] == "ignored"
    assert result["reason"] == "not_found"


def test_webhook_malformed_payload(service):
    raw = b"not json"
    with pytest.raises(InvalidInput):
        service.process_webhook_event(raw, hmac_sha256_hex(WEBHOOK_SECRET, raw))

    raw = json.dumps({"event": "payment.captured", "payload": {}}).encode("utf-8")
    with pytest.raises(InvalidInput):
        service.process_webhook_event(raw, hmac_sha256_hex(WEBHOOK_SECRET, raw))


def test_admin_sets_success_through_latch(db, service, user, order):
    payment = service.initiate(user.id, order.id, "RAZORPAY")["payment"]

    updated = service.update_status(payment.id, "SUCCESS", "pay_manual")

    assert updated.status == PaymentStatus.SUCCESS.value
    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PAID.value


def test_admin_cannot_move_success_back(db, service, user, order):
    payment = service.initiate(user.id, order.id, "RAZORPAY")["payment"]
    service.update_status(payment.id, "SUCCESS")

    with pytest.raises(PaymentAlreadyCompleted):
        service.update_status(payment.id, "FAILED")

    assert service.update_status(payment.id, "REFUNDED").status == PaymentStatus.REFUNDED.value


def test_get_payment_by_order(service, user, other_user, admin, order):
    with pytest.raises(PaymentNotFound):
        service.get_payment_by_order(order.id, user.id)

    payment = service.initiate(user.id, order.id, "RAZORPAY")["payment"]

    assert service.get_payment_by_order(order.id, user.id).id == payment.id
    assert service.get_payment_by_order(order.id, admin.id, "ADMIN").id == payment.id
    with pytest.raises(Unauthorized):
        service.get_payment_by_order(order.id, other_user.id)


def test_mock_payment_disabled(service, user, order):
    with pytest.raises(NotFound):
        service.process_mock_payment(order.id, user.id)


def test_mock_payment_enabled_settles_through_latch(db, gateway, notifier, user, order):
    service = PaymentService(db, gateway=gateway, notification_service=notifier, mock_payments_enabled=True)

    result = service.process_mock_payment(order.id, user.id)

    assert result["order_status"] == OrderStatus.PAID.value
    db.expire_all()
    rows = _payments(db, order.id)
    assert len(rows) == 1
    assert rows[0].provider_order_id.startswith("mock_order_")
    assert rows[0].status == PaymentStatus.SUCCESS.value

    again = service.process_mock_payment(order.id, user.id)
    assert again["message"] == "Payment already processed"


def test_forged_confirmation_rejected_when_secrets_unset(db, notifier, user, order):
    unconfigured = PaymentGateway(key_id="", key_secret="", webhook_secret="")
    service = PaymentService(db, gateway=unconfigured, notification_service=notifier)
    provider_order_id = service.initiate(user.id, order.id, "RAZORPAY")["payment"].provider_order_id
    forged = hmac_sha256_hex("mock_secret", f"{provider_order_id}|pay_forged".encode("utf-8"))

    with pytest.raises(InvalidSignature):
        service.verify("pay_forged", provider_order_id, forged, "RAZORPAY")

    raw, _ = _webhook("payment.captured", provider_order_id)
    with pytest.raises(InvalidSignature):
        service.process_webhook_event(raw, hmac_sha256_hex("mock_webhook_secret", raw))

    db.expire_all()
    assert db.get(OrderModel, order.id).status == OrderStatus.PENDING.value


def test_concurrent_first_initiate_leaves_one_row(db, notifier, user, order):
    class RacingGateway(PaymentGateway):
        # another initiate for the same order commits its row while we wait on the provider
        def create_order(self, provider, amount, receipt, notes=None):
            other = SessionLocal()
            try:
                other.add(
                    PaymentModel(
                        order_id=order.id,
                        provider="RAZORPAY",
                        provider_order_id="order_other_request",
                        amount=amount,
                        currency="INR",
                        status=PaymentStatus.PENDING.value,
                    )
                )
                other.commit()
            finally:
                other.close()
            return "order_this_request"

    gateway = RacingGateway(key_id="", key_secret="test_key_secret", webhook_secret=WEBHOOK_SECRET)
    service = PaymentService(db, gateway=gateway, notification_service=notifier)

    real_get_by_order = service.repo.get_by_order
    lookups = []

    def stale_get_by_order(order_id):
        lookups.append(order_id)
        # the first lookup inside the transaction ran before the other row was visible
        if len(lookups) == 2:
            return None
        return real_get_by_order(order_id)

    service.repo.get_by_order = stale_get_by_order

    result = service.initiate(user.id, order.id, "RAZORPAY")

    assert len(lookups) == 3
    assert result["payment"].provider_order_id == "order_this_request"
    db.expire_all()
    rows = _payments(db, order.id)
    assert len(rows) == 1
    assert rows[0].provider_order_id == "order_this_request"
    assert rows[0].status == PaymentStatus.PENDING.value
