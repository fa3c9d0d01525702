"""Payment gateway adapters.

`RazorpayGateway` talks to the Razorpay REST API over httpx; `MockGateway`
keeps orders and payments in memory for local development and tests. Both
share the HMAC signature checks, which only need the configured secrets.

Amounts cross this boundary as Decimal rupees; the gateway API itself works
in integer paise.
"""
import hashlib
import hmac
import re
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from threading import Lock
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

import httpx

from salonbook.api.middleware.error_handler import CorrelationException, GatewayException
from salonbook.lib.logging import get_logger
from salonbook.lib.settings import settings

logger = get_logger(__name__)

RECEIPT_PATTERN = re.compile(r"^booking_(.+)$")


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def from_paise(amount: int) -> Decimal:
    return (Decimal(int(amount)) / 100).quantize(Decimal("0.01"))


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def build_receipt(booking_id: Optional[UUID] = None) -> str:
    """Order receipt: `booking_<id>` for a booking, else `order_<epoch ms>`."""
    if booking_id is not None:
        return f"booking_{booking_id}"
    return f"order_{int(time.time() * 1000)}"


def parse_receipt(receipt: Optional[str]) -> UUID:
    """
    Extract the booking id from a `booking_<uuid>` receipt.

    Raises:
        CorrelationException: If the receipt is missing or malformed
    """
    match = RECEIPT_PATTERN.match(receipt or "")
    if not match:
        raise CorrelationException("Invalid receipt format", details={"receipt": receipt})
    try:
        return UUID(match.group(1))
    except ValueError:
        raise CorrelationException("Invalid receipt format", details={"receipt": receipt})


class PaymentGateway(ABC):
    """Base class for payment gateways."""

    name = "base"

    def __init__(self, key_secret: str, webhook_secret: str):
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Checkout signature: HMAC-SHA256 of "order_id|payment_id" with the key secret."""
        if not self.key_secret:
            return False
        expected = compute_hmac_sha256(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return constant_time_compare(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Webhook signature: HMAC-SHA256 of the raw request body with the webhook secret."""
        if not self.webhook_secret:
            return False
        return constant_time_compare(compute_hmac_sha256(self.webhook_secret, body), signature)

    @abstractmethod
    def create_order(
        self, amount: Decimal, currency: str, receipt: str, notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Create an order; returns the gateway's order entity (amount in paise)."""

    @abstractmethod
    def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        """Fetch a payment entity (id, order_id, amount in paise, status, notes)."""

    @abstractmethod
    def refund_payment(
        self, payment_id: str, amount: Optional[Decimal] = None, notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Ask the gateway to refund a payment (full refund when amount is None)."""

    @abstractmethod
    def create_payout(
        self, fund_account_id: str, amount: Decimal, currency: str, reference_id: str
    ) -> Dict[str, Any]:
        """Send money to an owner's fund account."""


class RazorpayGateway(PaymentGateway):
    """Razorpay (and RazorpayX payouts) over the REST API."""

    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        api_base: str = "https://api.razorpay.com/v1",
        account_number: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__(key_secret, webhook_secret)
        self.account_number = account_number
        self.client = httpx.Client(
            base_url=api_base,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport,
        )

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "Gateway request failed",
                extra={"gateway": self.name, "path": path, "error": str(exc)},
            )
            raise GatewayException("Payment gateway unavailable", details={"path": path})

        if response.is_error:
            try:
                error = response.json().get("error", {})
            except ValueError:
                error = {}
            logger.warning(
                "Gateway returned an error",
                extra={"gateway": self.name, "path": path, "status_code": response.status_code, "error": error},
            )
            raise GatewayException(
                error.get("description") or f"Payment gateway error ({response.status_code})",
                details={"path": path, "status_code": response.status_code, "code": error.get("code")},
            )
        return response.json()

    def create_order(self, amount, currency, receipt, notes=None):
        payload = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        return self._request("POST", "/orders", json=payload)

    def fetch_payment(self, payment_id):
        return self._request("GET", f"/payments/{payment_id}")

    def refund_payment(self, payment_id, amount=None, notes=None):
        payload: Dict[str, Any] = {"notes": notes or {}}
        if amount is not None:
            payload["amount"] = to_paise(amount)
        return self._request("POST", f"/payments/{payment_id}/refund", json=payload)

    def create_payout(self, fund_account_id, amount, currency, reference_id):
        payload = {
            "account_number": self.account_number,
            "fund_account_id": fund_account_id,
            "amount": to_paise(amount),
            "currency": currency,
            "mode": "IMPS",
            "purpose": "payout",
            "queue_if_low_balance": True,
            "reference_id": reference_id,
        }
        return self._request(
            "POST",
            "/payouts",
            json=payload,
            headers={"X-Payout-Idempotency": reference_id},
        )

    def close(self) -> None:
        self.client.close()


class MockGateway(PaymentGateway):
    """In-memory gateway for local development.

    Orders are created immediately; `simulate_capture` stands in for the
    customer completing checkout and returns a valid checkout signature.
    """

    name = "mock"

    def __init__(self, key_secret: str = "mock_key_secret", webhook_secret: str = "mock_webhook_secret"):
        super().__init__(key_secret, webhook_secret)
        self._lock = Lock()
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.refunds: Dict[str, Dict[str, Any]] = {}
        self.payouts: Dict[str, Dict[str, Any]] = {}

    def create_order(self, amount, currency, receipt, notes=None):
        order = {
            "id": f"order_{uuid4().hex[:14]}",
            "entity": "order",
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        with self._lock:
            self.orders[order["id"]] = order
        return dict(order)

    def simulate_capture(self, order_id: str, amount: Optional[Decimal] = None, status: str = "captured"):
        """Record a payment against an order; returns (payment, signature)."""
        with self._lock:
            order = self.orders.get(order_id)
            if order is None:
                raise GatewayException("Order not found", details={"order_id": order_id})
            payment = {
                "id": f"pay_{uuid4().hex[:14]}",
                "entity": "payment",
                "order_id": order_id,
                "amount": to_paise(amount) if amount is not None else order["amount"],
                "currency": order["currency"],
                "status": status,
                "notes": dict(order["notes"]),
            }
            self.payments[payment["id"]] = payment
        signature = compute_hmac_sha256(self.key_secret, f"{order_id}|{payment['id']}".encode("utf-8"))
        return dict(payment), signature

    def fetch_payment(self, payment_id):
        with self._lock:
            payment = self.payments.get(payment_id)
        if payment is None:
            raise GatewayException("Payment not found", details={"payment_id": payment_id})
        return dict(payment)

    def refund_payment(self, payment_id, amount=None, notes=None):
        payment = self.fetch_payment(payment_id)
        refund = {
            "id": f"rfnd_{uuid4().hex[:14]}",
            "entity": "refund",
            "payment_id": payment_id,
            "amount": to_paise(amount) if amount is not None else payment["amount"],
            "notes": notes or {},
            "status": "pending",
        }
        with self._lock:
            self.refunds[refund["id"]] = refund
        return dict(refund)

    def create_payout(self, fund_account_id, amount, currency, reference_id):
        payout = {
            "id": f"pout_{uuid4().hex[:14]}",
            "entity": "payout",
            "fund_account_id": fund_account_id,
            "amount": to_paise(amount),
            "currency": currency,
            "reference_id": reference_id,
            "status": "processed",
        }
        with self._lock:
            self.payouts[payout["id"]] = payout
        return dict(payout)


# Global singleton instance
_gateway: Optional[PaymentGateway] = None
_gateway_lock = Lock()


def build_gateway(name: Optional[str] = None) -> PaymentGateway:
    """Construct the gateway selected by settings.payment_gateway."""
    name = (name or settings.payment_gateway).lower()
    if name == "razorpay":
        return RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            api_base=settings.razorpay_api_base,
            account_number=settings.razorpayx_account_number,
            timeout=settings.gateway_timeout_seconds,
        )
    if name == "mock":
        return MockGateway(
            key_secret=settings.razorpay_key_secret or "mock_key_secret",
            webhook_secret=settings.razorpay_webhook_secret or "mock_webhook_secret",
        )
    raise ValueError(f"Unknown payment gateway: {name}")


def get_payment_gateway() -> PaymentGateway:
    """Get the process-wide gateway instance."""
    global _gateway
    if _gateway is None:
        with _gateway_lock:
            if _gateway is None:
                _gateway = build_gateway()
                logger.info("Payment gateway initialized", extra={"gateway": _gateway.name})
    return _gateway


def set_payment_gateway(gateway: Optional[PaymentGateway]) -> None:
    """Swap the process-wide gateway (tests, scripts)."""
    global _gateway
    with _gateway_lock:
        _gateway = gateway
