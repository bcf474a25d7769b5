# storefront/services/payment_gateway.py
import hashlib
import hmac
import secrets
from decimal import Decimal

import requests
from requests import RequestException

from storefront.domain.errors import PaymentGatewayError
from storefront.domain.status import PaymentProvider
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    HTTP_TIMEOUT_SECONDS,
    PAYMENT_CURRENCY,
    RAZORPAY_API_URL,
    RAZORPAY_KEY_ID,
    RAZORPAY_KEY_SECRET,
    RAZORPAY_WEBHOOK_SECRET,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    # 180.00 INR -> 18000 paise
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, supplied: str | None) -> bool:
    #constant time, no early exit on the first differing byte
    if not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


class PaymentGateway:
    """
    Thin client for the payment provider.

    Creates provider-side orders and checks provider signatures. Without API
    keys (local runs, tests) and for providers we have no integration with,
    provider order ids are generated locally.
    """

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.key_id = RAZORPAY_KEY_ID if key_id is None else key_id
        self.key_secret = RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.webhook_secret = RAZORPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.base_url = (base_url or RAZORPAY_API_URL).rstrip("/")
        self.timeout = timeout

    @property
    def public_key(self) -> str:
        return self.key_id or "mock_key_id"

    @property
    def is_live(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(self, provider, amount: Decimal, receipt: str, notes: dict | None = None) -> str:
        """Returns the provider order id for a new payment attempt."""
        provider = PaymentProvider(provider)

        if provider != PaymentProvider.RAZORPAY or not self.is_live:
            logger.warning(f"No live {provider.value} integration, using a local provider order id")
            return f"order_{secrets.token_hex(8)}"

        try:
            data = self._post_order(
                {
                    "amount": to_minor_units(amount),
                    "currency": PAYMENT_CURRENCY,
                    "receipt": receipt[:40],
                    "notes": notes or {},
                }
            )
        except RequestException as e:
            logger.error(f"Razorpay order creation failed for receipt {receipt}: {e}")
            raise PaymentGatewayError()

        return data["id"]

    @http_retry()
    def _post_order(self, body: dict) -> dict:
        url = f"{self.base_url}/orders"
        logger.info(f"PaymentGateway POST {url}")

        resp = requests.post(
            url,
            json=body,
            auth=(self.key_id, self.key_secret),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    def payment_signature(self, provider_order_id: str, provider_payment_id: str) -> str:
        return hmac_sha256_hex(
            self.key_secret,
            f"{provider_order_id}|{provider_payment_id}".encode("utf-8"),
        )

    def verify_payment_signature(self, provider_order_id: str, provider_payment_id: str, signature: str | None) -> bool:
        if not self.key_secret:
            logger.error("RAZORPAY_KEY_SECRET is not set, payment signature rejected")
            return False
        expected = self.payment_signature(provider_order_id, provider_payment_id)
        return signatures_match(expected, signature)

    def verify_webhook_signature(self, raw_body: bytes, signature: str | None) -> bool:
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET is not set, webhook rejected")
            return False
        # over the bytes exactly as received, never a re-serialized body
        expected = hmac_sha256_hex(self.webhook_secret, raw_body)
        return signatures_match(expected, signature)
