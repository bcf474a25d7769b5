from decimal import Decimal

import pytest
import requests

from storefront.domain.errors import PaymentGatewayError
from storefront.services import payment_gateway
from storefront.services.payment_gateway import PaymentGateway, hmac_sha256_hex, to_minor_units


class FakeResponse:
    def __init__(self, data):
        self.data = data

    def raise_for_status(self):
        pass

    def json(self):
        return self.data


def test_minor_units():
    assert to_minor_units(Decimal("180.00")) == 18000
    assert to_minor_units(Decimal("0.01")) == 1


def test_payment_signature_roundtrip():
    gateway = PaymentGateway(key_id="", key_secret="s3cret", webhook_secret="wh")
    expected = hmac_sha256_hex("s3cret", b"order_1|pay_1")

    assert gateway.payment_signature("order_1", "pay_1") == expected
    assert gateway.verify_payment_signature("order_1", "pay_1", expected)
    assert not gateway.verify_payment_signature("order_1", "pay_2", expected)
    assert not gateway.verify_payment_signature("order_1", "pay_1", None)


def test_webhook_signature_uses_webhook_secret():
    gateway = PaymentGateway(key_id="", key_secret="s3cret", webhook_secret="wh")
    body = b'{"event":"payment.captured"}'

    assert gateway.verify_webhook_signature(body, hmac_sha256_hex("wh", body))
    assert not gateway.verify_webhook_signature(body, hmac_sha256_hex("s3cret", body))


def test_local_order_ids_without_keys():
    gateway = PaymentGateway(key_id="", key_secret="")

    assert not gateway.is_live
    assert gateway.create_order("RAZORPAY", Decimal("10.00"), "order_1").startswith("order_")
    assert gateway.public_key == "mock_key_id"


def test_live_order_creation(monkeypatch):
    seen = {}

    def fake_post(url, json=None, auth=None, timeout=None):
        seen.update(url=url, body=json, auth=auth)
        return FakeResponse({"id": "order_live_1"})

    monkeypatch.setattr(requests, "post", fake_post)
    gateway = PaymentGateway(key_id="rzp_test", key_secret="s3cret", base_url="https://pay.test/v1")

    provider_order_id = gateway.create_order("RAZORPAY", Decimal("180.00"), "order_7", {"orderId": "7"})

    assert provider_order_id == "order_live_1"
    assert seen["url"] == "https://pay.test/v1/orders"
    assert seen["auth"] == ("rzp_test", "s3cret")
    assert seen["body"]["amount"] == 18000


def test_live_order_failure(monkeypatch):
    def broken(*a, **kw):
        raise requests.Timeout("slow")

    monkeypatch.setattr(requests, "post", broken)
    gateway = PaymentGateway(key_id="rzp_test", key_secret="s3cret")

    with pytest.raises(PaymentGatewayError):
        gateway.create_order("RAZORPAY", Decimal("1.00"), "order_1")


def test_unset_secrets_reject_every_signature(monkeypatch):
    monkeypatch.setattr(payment_gateway, "RAZORPAY_KEY_SECRET", "")
    monkeypatch.setattr(payment_gateway, "RAZORPAY_WEBHOOK_SECRET", "")
    gateway = PaymentGateway()
    body = b'{"event":"payment.captured"}'

    for guess in ("", "mock_secret"):
        signature = hmac_sha256_hex(guess, b"order_x|pay_forged")
        assert not gateway.verify_payment_signature("order_x", "pay_forged", signature)
    for guess in ("", "mock_webhook_secret"):
        assert not gateway.verify_webhook_signature(body, hmac_sha256_hex(guess, body))
