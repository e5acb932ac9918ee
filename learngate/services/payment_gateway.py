"""Payment gateway boundary — Razorpay orders, signatures and payment lookups."""

import asyncio
import hashlib
import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from learngate.config import get_settings
from learngate.constants import CURRENCY_MINOR_UNITS, RAZORPAY_RECEIPT_MAX_LENGTH
from learngate.errors import GatewayUnavailable
from learngate.http_client import get_http_client

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    order_id: str
    amount: int  # minor units (paise)
    currency: str
    receipt: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentDetails:
    payment_id: str
    status: str | None = None
    method: str | None = None
    bank: str | None = None
    wallet: str | None = None
    vpa: str | None = None
    error_code: str | None = None
    error_description: str | None = None


class PaymentGateway(Protocol):
    """Protocol for payment gateways (Razorpay, test fakes)."""

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        """Create an order for *amount* major currency units."""
        ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the checkout callback signature for an order/payment pair."""
        ...

    async def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        """Fetch instrument metadata for a settled payment."""
        ...


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id`` keyed by *secret*."""
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def signature_matches(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature or "")


def webhook_signature_matches(body: bytes, signature: str, secret: str) -> bool:
    """Verify the ``X-Razorpay-Signature`` header against the raw webhook body."""
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature or "")


def make_receipt(subscription_id: int, timestamp_ms: int) -> str:
    """Build a gateway receipt of at most 40 characters.

    The suffix is a hash of the full subscription id and timestamp, so two
    receipts only collide when both inputs are identical.
    """
    digest = hashlib.sha256(f"{subscription_id}:{timestamp_ms}".encode()).hexdigest()[:20]
    return f"sub_{subscription_id}_{digest}"[:RAZORPAY_RECEIPT_MAX_LENGTH]


def to_minor_units(amount: int) -> int:
    return amount * CURRENCY_MINOR_UNITS


class RazorpayGateway:
    """Razorpay REST client over the shared httpx.AsyncClient.

    Any transport failure, timeout or non-2xx answer surfaces as
    GatewayUnavailable; callers decide whether to retry.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_base: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise GatewayUnavailable("Payment gateway is not configured", code="gateway_not_configured")

    async def _request(self, method: str, path: str, json_payload: dict[str, Any] | None = None) -> dict[str, Any]:
        self._ensure_configured()
        client = self._client or get_http_client()
        url = f"{self.api_base}/{path.lstrip('/')}"
        try:
            response = await asyncio.wait_for(
                client.request(
                    method,
                    url,
                    auth=(self.key_id, self.key_secret),
                    json=json_payload,
                    timeout=httpx.Timeout(self.timeout),
                ),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.error("Razorpay %s %s failed: %s", method, path, e)
            raise GatewayUnavailable("Payment gateway is unreachable") from e

        if response.status_code >= 400:
            description = _error_description(response)
            logger.error("Razorpay %s %s returned %s: %s", method, path, response.status_code, description)
            raise GatewayUnavailable(
                "Payment gateway rejected the request",
                gateway_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GatewayUnavailable("Invalid response received from payment gateway") from e
        if not isinstance(payload, dict):
            raise GatewayUnavailable("Unexpected response format from payment gateway")
        return payload

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        payload = await self._request(
            "POST",
            "/orders",
            {
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt[:RAZORPAY_RECEIPT_MAX_LENGTH],
            },
        )
        order_id = payload.get("id")
        if not order_id:
            raise GatewayUnavailable("Payment gateway returned an order without an id")
        logger.info("Created Razorpay order %s (%s %s)", order_id, amount, currency)
        return GatewayOrder(
            order_id=order_id,
            amount=payload.get("amount", to_minor_units(amount)),
            currency=payload.get("currency", currency),
            receipt=payload.get("receipt", receipt),
            raw=payload,
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret:
            raise GatewayUnavailable("Payment gateway is not configured", code="gateway_not_configured")
        return signature_matches(order_id, payment_id, signature, self.key_secret)

    async def fetch_payment_details(self, payment_id: str) -> PaymentDetails:
        payload = await self._request("GET", f"/payments/{payment_id}")
        return PaymentDetails(
            payment_id=payload.get("id", payment_id),
            status=payload.get("status"),
            method=payload.get("method"),
            bank=payload.get("bank"),
            wallet=payload.get("wallet"),
            vpa=payload.get("vpa"),
            error_code=payload.get("error_code"),
            error_description=payload.get("error_description"),
        )


def _error_description(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["description"]
    except (ValueError, KeyError, TypeError):
        return response.text[:200]


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency: Razorpay gateway built from settings."""
    settings = get_settings()
    return RazorpayGateway(
        key_id=settings.razorpay_key_id,
        key_secret=settings.razorpay_key_secret,
        api_base=settings.razorpay_api_base,
        timeout=settings.gateway_timeout,
    )
