# storefront/services/payment_service.py
import json
import secrets
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.data.unit_of_work import UnitOfWork
from storefront.domain.errors import (
    InvalidInput,
    InvalidSignature,
    InvariantViolation,
    NotFound,
    OrderAlreadyPaid,
    OrderCancelled,
    OrderNotFound,
    PaymentAlreadyCompleted,
    PaymentNotFound,
    Unauthorized,
)
from storefront.domain.status import (
    PAID_OR_LATER,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
    Role,
)
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_repo import PaymentRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import PaymentGateway, to_minor_units
from storefront.utils.retry import db_retry
from storefront.utils.settings import ENABLE_MOCK_PAYMENTS, PAYMENT_CURRENCY, STORE_NAME
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUCCESS = PaymentStatus.SUCCESS.value


class PaymentService:
    """
    Payment reconciliation.

    Client confirmations, provider webhooks and the admin override all end
    in the same success latch: payment SUCCESS and order PAID are written in
    one transaction, and a payment that is already SUCCESS is returned
    untouched. That latch is what makes replayed or concurrent success
    events harmless.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        notification_service: NotificationService | None = None,
        unit_of_work: UnitOfWork | None = None,
        mock_payments_enabled: bool = ENABLE_MOCK_PAYMENTS,
    ):
        self.db = db
        self.repo = PaymentRepo(db)
        self.orders = OrderRepo(db)
        self.users = UserRepo(db)
        self.gateway = gateway or PaymentGateway()
        self.notification_service = notification_service or NotificationService()
        self.uow = unit_of_work or UnitOfWork(db)
        self.order_service = OrderService(db, self.notification_service, self.uow)
        self.mock_payments_enabled = mock_payments_enabled

    # =====================================================
    # INITIATE
    # =====================================================
    def initiate(self, user_id: int, order_id: int, provider) -> Dict[str, Any]:
        provider = PaymentProvider(provider)

        order = self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound()

        if order.user_id != user_id:
            raise Unauthorized()

        status = OrderStatus(order.status)
        if status in PAID_OR_LATER:
            raise OrderAlreadyPaid()
        if status == OrderStatus.CANCELLED:
            raise OrderCancelled()

        existing = self.repo.get_by_order(order_id)
        if existing and existing.status == SUCCESS:
            raise OrderAlreadyPaid()

        #external call outside the transaction, no row lock held while waiting on the provider
        provider_order_id = self.gateway.create_order(
            provider,
            order.total_amount,
            receipt=f"order_{order.id}",
            notes={"orderId": str(order.id), "userId": str(user_id)},
        )

        def work(db: Session) -> PaymentModel:
            payment = self.repo.get_by_order(order_id)
            if payment:
                payment = self.repo.get_for_update(payment.id)
                if payment.status == SUCCESS:
                    raise OrderAlreadyPaid()
                logger.info(
                    f"Payment {payment.id}: replacing attempt {payment.provider_order_id} "
                    f"({payment.status}) with {provider_order_id}"
                )
                payment.provider = provider.value
                payment.provider_order_id = provider_order_id
                payment.provider_payment_id = None
                payment.amount = order.total_amount
                payment.currency = PAYMENT_CURRENCY
                payment.status = PaymentStatus.PENDING.value
                return payment

            return self.repo.add_payment(
                PaymentModel(
                    order_id=order_id,
                    provider=provider.value,
                    provider_order_id=provider_order_id,
                    amount=order.total_amount,
                    currency=PAYMENT_CURRENCY,
                    status=PaymentStatus.PENDING.value,
                )
            )

        try:
            payment = self.uow.run(work)
        except IntegrityError:
            # a concurrent initiate inserted the row first, update that one instead
            logger.info(f"Concurrent payment insert for order {order_id}, retrying as update")
            payment = self.uow.run(work)

        logger.info(f"Payment {payment.id} initiated for order {order_id} via {provider.value}")

        return {
            "payment": payment,
            "gateway_details": self._gateway_details(order, user_id, provider_order_id),
        }

    def _gateway_details(self, order, user_id: int, provider_order_id: str) -> Dict[str, Any]:
        user = self.users.get_user(user_id)
        address = order.address
        return {
            "key": self.gateway.public_key,
            "order_id": provider_order_id,
            "amount": to_minor_units(order.total_amount),
            "currency": PAYMENT_CURRENCY,
            "name": STORE_NAME,
            "description": f"Payment for order {order.id}",
            "prefill": {
                "name": address.full_name if address else (user.name if user else None),
                "email": user.email if user else None,
                "contact": address.phone if address else None,
            },
        }

    # =====================================================
    # VERIFY / SUCCESS LATCH
    # =====================================================
    def verify(self, payment_id: str, order_id: str, signature: str, provider) -> Dict[str, Any]:
        """
        Client confirmation. payment_id / order_id are the provider's ids.
        """
        PaymentProvider(provider)

        if not self.gateway.verify_payment_signature(order_id, payment_id, signature):
            logger.warning(f"Invalid payment signature for provider order {order_id}")
            raise InvalidSignature()

        return self.handle_payment_success(order_id, payment_id)

    @db_retry()
    def handle_payment_success(self, provider_order_id: str, provider_payment_id: str | None) -> Dict[str, Any]:
        payment = self.repo.get_by_provider_order_id(provider_order_id)
        if not payment:
            raise PaymentNotFound()

        if payment.status == SUCCESS:
            logger.info(f"Payment {payment.id} already processed, replay ignored")
            return self._result("Payment already processed", payment)

        return self._latch_success(payment.id, provider_payment_id)

    def _latch_success(self, payment_id: int, provider_payment_id: str | None) -> Dict[str, Any]:
        def work(db: Session):
            locked = self.repo.get_for_update(payment_id)
            if locked.status == SUCCESS:
                return locked, False

            # conditional update, zero rows -> a concurrent request latched it first
            if self.repo.latch_success(payment_id, provider_payment_id) == 0:
                return locked, False

            try:
                self.order_service.apply_payment_success(locked.order_id)
            except OrderNotFound:
                # SUCCESS without a settled order must not be committed
                raise InvariantViolation(f"Payment {payment_id} references a missing order")
            return locked, True

        payment, applied = self.uow.run(work)
        payment = self.repo.refresh(payment)

        if not applied:
            return self._result("Payment already processed", payment)

        logger.info(f"Payment {payment.id} SUCCESS, order {payment.order_id} settled")
        self.notification_service.send_order_notification(payment.order.user_id, payment.order_id, "paid")
        return self._result("Payment successful", payment)

    def _result(self, message: str, payment: PaymentModel) -> Dict[str, Any]:
        return {
            "message": message,
            "payment": payment,
            "order_status": payment.order.status if payment.order else None,
        }

    # =====================================================
    # WEBHOOK
    # =====================================================
    def process_webhook_event(self, raw_body: bytes, signature: str | None) -> Dict[str, Any]:
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Webhook rejected, signature mismatch")
            raise InvalidSignature()

        try:
            body = json.loads(raw_body)
        except ValueError:
            raise InvalidInput("Malformed webhook payload")

        if not isinstance(body, dict):
            raise InvalidInput("Malformed webhook payload")

        event = body.get("event")
        logger.info(f"Received webhook event: {event}")

        if event not in ("payment.captured", "payment.failed"):
            return {"status": "ignored", "event": event}

        entity = (((body.get("payload") or {}).get("payment") or {}).get("entity")) or {}
        provider_order_id = entity.get("order_id")
        if not provider_order_id:
            raise InvalidInput("Webhook payload has no payment order id")

        if event == "payment.captured":
            try:
                self.handle_payment_success(provider_order_id, entity.get("id"))
            except PaymentNotFound:
                # provider keeps retrying unknown orders, answering 2xx stops that
                logger.warning(f"Webhook: payment not found for provider order {provider_order_id}")
                return {"status": "ignored", "event": event, "reason": "not_found"}
            return {"status": "processed", "event": event}

        return self._mark_failed(provider_order_id, event)

    def _mark_failed(self, provider_order_id: str, event: str) -> Dict[str, Any]:
        payment = self.repo.get_by_provider_order_id(provider_order_id)
        if not payment:
            logger.warning(f"Webhook: payment not found for provider order {provider_order_id}")
            return {"status": "ignored", "event": event, "reason": "not_found"}

        def work(db: Session) -> bool:
            locked = self.repo.get_for_update(payment.id)
            #SUCCESS is a latch, a late failure event never downgrades it
            if locked.status == SUCCESS:
                return False
            locked.status = PaymentStatus.FAILED.value
            return True

        if not self.uow.run(work):
            logger.warning(f"Webhook: failure event for already successful payment {payment.id} ignored")
            return {"status": "ignored", "event": event, "reason": "already_succeeded"}

        # order status untouched, the customer may still retry the payment
        logger.info(f"Payment {payment.id} marked FAILED")
        return {"status": "processed", "event": event}

    # =====================================================
    # ADMIN / QUERIES
    # =====================================================
    def update_status(self, payment_id: int, status, provider_payment_id: str | None = None) -> PaymentModel:
        """
        Manual override. SUCCESS goes through the same latch as provider events;
        a successful payment can only be moved on to REFUNDED.
        """
        status = PaymentStatus(status)

        payment = self.repo.get_payment(payment_id)
        if not payment:
            raise PaymentNotFound()

        if status == PaymentStatus.SUCCESS:
            return self._latch_success(payment_id, provider_payment_id)["payment"]

        def work(db: Session) -> PaymentModel:
            locked = self.repo.get_for_update(payment_id)
            if locked.status == SUCCESS and status != PaymentStatus.REFUNDED:
                raise PaymentAlreadyCompleted()
            locked.status = status.value
            if provider_payment_id:
                locked.provider_payment_id = provider_payment_id
            return locked

        updated = self.uow.run(work)
        logger.info(f"Payment {payment_id} manually set to {status.value}")
        return updated

    def get_payment_by_order(self, order_id: int, user_id: int, role=Role.USER) -> PaymentModel:
        order = self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound()

        if order.user_id != user_id and Role(role) != Role.ADMIN:
            raise Unauthorized()

        payment = self.repo.get_by_order(order_id)
        if not payment:
            raise PaymentNotFound("No payment found for this order")
        return payment

    # =====================================================
    # MOCK (dev / demo only)
    # =====================================================
    def process_mock_payment(self, order_id: int, user_id: int) -> Dict[str, Any]:
        """
        Settles an order without a provider. Reuses the order's payment row
        when there is one so the shared latch stays the only way to PAID.
        """
        if not self.mock_payments_enabled:
            raise NotFound("Mock payments are disabled")

        order = self.orders.get_order(order_id)
        if not order:
            raise OrderNotFound()

        if order.user_id != user_id:
            raise Unauthorized()

        if order.status == OrderStatus.CANCELLED.value:
            raise OrderCancelled()

        payment = self.repo.get_by_order(order_id)
        if not payment:
            def work(db: Session) -> PaymentModel:
                return self.repo.add_payment(
                    PaymentModel(
                        order_id=order_id,
                        provider=PaymentProvider.RAZORPAY.value,
                        provider_order_id=f"mock_order_{secrets.token_hex(8)}",
                        amount=order.total_amount,
                        currency=PAYMENT_CURRENCY,
                        status=PaymentStatus.PENDING.value,
                    )
                )

            payment = self.uow.run(work)

        logger.warning(f"Mock payment for order {order_id}")
        return self.handle_payment_success(payment.provider_order_id, f"mock_pay_{secrets.token_hex(8)}")
