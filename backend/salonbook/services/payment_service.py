"""Payment reconciliation service.

Every way money reaches a booking (checkout confirmation from the app, the
gateway's webhook, a direct payment at the counter, a refund) becomes one
ledger event processed the same way:

    lock booking row -> ledger lookup on (kind, external id) -> transition -> insert event -> commit

so retries and the webhook/client race collapse into a single applied event
and the rest are reported as duplicates.
"""
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from salonbook.api.middleware.error_handler import (
    AppException,
    ConflictException,
    CorrelationException,
    NotFoundException,
    SignatureException,
    ValidationException,
)
from salonbook.lib.logging import get_logger
from salonbook.lib.metrics import get_metrics_collector
from salonbook.lib.request_context import Actor
from salonbook.lib.settings import settings
from salonbook.models.bookings import Booking, BookingStatus, PaymentStatus
from salonbook.models.payment_events import (
    EventOutcome,
    PaymentEvent,
    PaymentEventKind,
    PaymentEventSource,
    SettlementStatus,
)
from salonbook.services.ownership import get_owned_store
from salonbook.services.payment_gateway import (
    PaymentGateway,
    build_receipt,
    from_paise,
    get_payment_gateway,
    parse_receipt,
)
from salonbook.services.reconciliation import (
    PaymentState,
    apply_capture,
    apply_failure,
    apply_refund,
)

logger = get_logger(__name__)

DIRECT_PAYMENT_METHODS = ("CARD", "CASH", "ONLINE")

WEBHOOK_EVENT_KINDS = {
    "payment.captured": PaymentEventKind.CAPTURED,
    "payment.failed": PaymentEventKind.FAILED,
    "refund.processed": PaymentEventKind.REFUNDED,
    "refund.failed": PaymentEventKind.REFUND_FAILED,
}

# Events that move money the owner is eventually paid (or charged) for
SETTLED_KINDS = (PaymentEventKind.CAPTURED, PaymentEventKind.REFUNDED)
# Money that reached the salon directly; the gateway never holds it
UNSETTLED_SOURCES = (PaymentEventSource.DIRECT,)


@dataclass
class PaymentResult:
    event: str
    outcome: EventOutcome
    booking_id: Optional[UUID] = None
    booking: Optional[Booking] = None


def _entity(payload: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Webhook payloads wrap entities as {"payment": {"entity": {...}}}."""
    wrapper = payload.get(name) or {}
    if isinstance(wrapper, dict) and isinstance(wrapper.get("entity"), dict):
        return wrapper["entity"]
    return wrapper if isinstance(wrapper, dict) else {}


def _amount_in_paise(entity: Dict[str, Any], event: str, required: bool = True) -> Decimal:
    """Gateway amounts are positive integers in paise.

    A failed payment may omit the amount; it is then recorded as zero.

    Raises:
        ValidationException: Missing, non-integer or non-positive amount
    """
    amount = entity.get("amount")
    if amount is None and not required:
        return Decimal("0")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationException(
            "Payment amount must be a positive integer in paise",
            errors={"event": event, "amount": amount},
        )
    return from_paise(amount)


class PaymentService:
    """Applies payment events to bookings and talks to the gateway."""

    def __init__(self, session: Session, gateway: Optional[PaymentGateway] = None):
        self.session = session
        self.gateway = gateway or get_payment_gateway()
        self.metrics = get_metrics_collector()

    # ===== Orders =====

    def create_order(
        self,
        actor: Actor,
        amount: Decimal,
        currency: Optional[str] = None,
        booking_id: Optional[UUID] = None,
    ) -> Dict[str, Any]:
        """Create a gateway order, tagged with the booking when one is given.

        Raises:
            ValidationException: If amount is not positive
            NotFoundException: If the booking is not the caller's
            GatewayException: If the gateway call fails
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationException("Amount must be greater than 0", errors={"amount": str(amount)})

        notes = {}
        if booking_id is not None:
            self._get_customer_booking(actor, booking_id)
            notes["booking_id"] = str(booking_id)

        receipt = build_receipt(booking_id)
        order = self.gateway.create_order(amount, currency or settings.currency, receipt, notes=notes)
        logger.info(
            "Gateway order created",
            extra={"order_id": order.get("id"), "receipt": receipt, "amount": str(amount)},
        )
        return order

    def verify_client_payment(
        self,
        actor: Actor,
        order_id: str,
        payment_id: str,
        signature: str,
        booking_id: Optional[UUID] = None,
    ) -> PaymentResult:
        """Apply a payment the app reports after checkout.

        The checkout signature is verified and the payment re-read from the
        gateway; only a payment the gateway reports as captured changes the
        booking. The capture is keyed by the gateway payment id, so a webhook
        for the same payment is a duplicate afterwards (and vice versa).

        Raises:
            ValidationException: Missing order id, payment id or signature
            SignatureException: Signature mismatch
            GatewayException: Payment could not be fetched
            NotFoundException: Booking is not the caller's
        """
        if not order_id or not payment_id or not signature:
            raise ValidationException("Order ID, Payment ID, and Signature are required")

        if not self.gateway.verify_payment_signature(order_id, payment_id, signature):
            logger.warning(
                "Payment signature mismatch",
                extra={"order_id": order_id, "payment_id": payment_id},
            )
            raise SignatureException("Invalid payment signature")

        payment = self.gateway.fetch_payment(payment_id)

        if booking_id is None:
            notes_booking = (payment.get("notes") or {}).get("booking_id")
            if not notes_booking:
                # Verified, but nothing to reconcile against
                self.metrics.increment_payment_events("CAPTURED", "CLIENT", EventOutcome.IGNORED.value)
                return PaymentResult(event="payment.verified", outcome=EventOutcome.IGNORED)
            booking_id = self._parse_booking_id(notes_booking)

        self._get_customer_booking(actor, booking_id)

        if payment.get("status") != "captured":
            logger.info(
                "Payment verified but not captured yet",
                extra={"payment_id": payment_id, "status": payment.get("status"), "booking_id": str(booking_id)},
            )
            self.metrics.increment_payment_events("CAPTURED", "CLIENT", EventOutcome.IGNORED.value)
            return PaymentResult(event="payment.verified", outcome=EventOutcome.IGNORED, booking_id=booking_id)

        return self._apply_event(
            event="payment.captured",
            booking_id=booking_id,
            kind=PaymentEventKind.CAPTURED,
            source=PaymentEventSource.CLIENT,
            external_id=payment_id,
            amount=_amount_in_paise(payment, "payment.captured"),
            method=payment.get("method"),
        )

    # ===== Direct payments =====

    def record_direct_payment(
        self,
        actor: Actor,
        booking_id: UUID,
        amount: Decimal,
        method: str,
        idempotency_key: Optional[str] = None,
    ) -> PaymentResult:
        """Record a payment made outside the gateway checkout.

        With an idempotency key a retried request is reported as a duplicate
        instead of being charged twice.

        Raises:
            ValidationException: Bad method, non-positive amount, cancelled
                booking, or amount over the remaining balance
            NotFoundException: Booking is not the caller's
        """
        method = (method or "").upper()
        if method not in DIRECT_PAYMENT_METHODS:
            raise ValidationException(
                "Invalid payment method",
                errors={"method": method, "allowed": list(DIRECT_PAYMENT_METHODS)},
            )
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationException("Amount must be greater than 0", errors={"amount": str(amount)})

        def guard(booking: Booking) -> None:
            if booking.status == BookingStatus.CANCELLED:
                raise ValidationException("Cannot make payment for cancelled booking")
            remaining = Decimal(booking.total_price) - Decimal(booking.paid_amount)
            if amount > remaining:
                raise ValidationException(
                    "Payment amount exceeds remaining balance",
                    errors={"amount": str(amount), "remaining": str(remaining)},
                )

        return self._apply_event(
            event="payment.direct",
            booking_id=booking_id,
            kind=PaymentEventKind.CAPTURED,
            source=PaymentEventSource.DIRECT,
            external_id=idempotency_key or f"direct_{uuid4().hex}",
            amount=amount,
            method=method,
            owner_check=lambda booking: self._check_customer(actor, booking),
            guard=guard,
        )

    # ===== Webhooks =====

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> PaymentResult:
        """Verify and apply a gateway webhook.

        Unknown event types are acknowledged and ignored.

        Raises:
            SignatureException: Missing or invalid X-Razorpay-Signature
            ValidationException: Body or payload is not a JSON object, an id
                is missing, or an amount is not a positive integer in paise
            CorrelationException: Event cannot be tied to a booking
        """
        if not self.gateway.webhook_secret:
            logger.error("Webhook secret not configured")
            raise AppException("Webhook secret not configured")

        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning("Invalid webhook signature", extra={"signature_present": bool(signature)})
            raise SignatureException("Invalid webhook signature")

        try:
            body = json.loads(raw_body)
        except ValueError:
            raise ValidationException("Malformed webhook body")
        if not isinstance(body, dict):
            raise ValidationException("Malformed webhook body")

        event = body.get("event") or ""
        data = body.get("payload") or {}
        if not isinstance(data, dict):
            raise ValidationException("Malformed webhook payload", errors={"event": event})
        kind = WEBHOOK_EVENT_KINDS.get(event)
        if kind is None:
            logger.info("Unhandled webhook event", extra={"event": event})
            return PaymentResult(event=event, outcome=EventOutcome.IGNORED)

        if kind in (PaymentEventKind.CAPTURED, PaymentEventKind.FAILED):
            payment = _entity(data, "payment")
            if not payment.get("id"):
                raise ValidationException("Webhook payload has no payment id", errors={"event": event})
            booking_id = self._correlate(payment.get("notes"), _entity(data, "order"))
            return self._apply_event(
                event=event,
                booking_id=booking_id,
                kind=kind,
                source=PaymentEventSource.WEBHOOK,
                external_id=payment["id"],
                amount=_amount_in_paise(payment, event, required=kind == PaymentEventKind.CAPTURED),
                method=payment.get("method"),
            )

        refund = _entity(data, "refund")
        if not refund.get("id"):
            raise ValidationException("Webhook payload has no refund id", errors={"event": event})
        booking_id = self._correlate(refund.get("notes"), _entity(data, "order"), refund.get("payment_id"))
        return self._apply_event(
            event=event,
            booking_id=booking_id,
            kind=kind,
            source=PaymentEventSource.WEBHOOK,
            external_id=refund["id"],
            amount=_amount_in_paise(refund, event, required=kind == PaymentEventKind.REFUNDED),
            payment_ref=refund.get("payment_id"),
        )

    # ===== Refunds =====

    def request_refund(
        self,
        actor: Actor,
        booking_id: UUID,
        payment_id: str,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Owner asks the gateway to refund a captured payment of a booking.

        The booking is not changed here; the `refund.processed` webhook
        applies the refund once the gateway has actually moved the money.

        Raises:
            NotFoundException: Booking not in the caller's store
            ValidationException: Payment not captured for this booking, or
                amount above the captured amount
            GatewayException: The gateway rejected the refund
        """
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        try:
            get_owned_store(self.session, actor, booking.store_id)
        except NotFoundException:
            raise NotFoundException("Booking", str(booking_id))

        capture = self.session.execute(
            select(PaymentEvent).where(
                PaymentEvent.kind == PaymentEventKind.CAPTURED,
                PaymentEvent.external_id == payment_id,
                PaymentEvent.booking_id == booking_id,
            )
        ).scalar_one_or_none()
        if capture is None:
            raise ValidationException(
                "Payment was not captured for this booking",
                errors={"payment_id": payment_id},
            )
        if amount is not None:
            amount = Decimal(amount)
            if amount <= 0 or amount > Decimal(capture.amount):
                raise ValidationException(
                    "Refund amount must be positive and not exceed the captured amount",
                    errors={"amount": str(amount), "captured": str(capture.amount)},
                )

        notes = {"booking_id": str(booking_id)}
        if reason:
            notes["reason"] = reason
        refund = self.gateway.refund_payment(payment_id, amount, notes=notes)
        logger.info(
            "Refund requested",
            extra={"booking_id": str(booking_id), "payment_id": payment_id, "refund_id": refund.get("id")},
        )
        return refund

    # ===== Status =====

    def get_payment_status(self, actor: Actor, booking_id: UUID) -> Dict[str, Any]:
        booking = self._get_customer_booking(actor, booking_id)
        total = Decimal(booking.total_price)
        paid = Decimal(booking.paid_amount)
        return {
            "booking_id": booking.id,
            "payment_status": booking.payment_status,
            "total_price": total,
            "paid_amount": paid,
            "remaining_amount": total - paid,
            "is_fully_paid": booking.payment_status == PaymentStatus.FULL,
        }

    # ===== Internals =====

    def _apply_event(
        self,
        event: str,
        booking_id: UUID,
        kind: PaymentEventKind,
        source: PaymentEventSource,
        external_id: str,
        amount: Decimal,
        payment_ref: Optional[str] = None,
        method: Optional[str] = None,
        owner_check: Optional[Callable[[Booking], None]] = None,
        guard: Optional[Callable[[Booking], None]] = None,
    ) -> PaymentResult:
        """Apply one event to a booking exactly once.

        `owner_check` runs before the duplicate lookup (callers must not learn
        about other people's bookings); `guard` runs after it (a replayed
        request is a duplicate even if it would no longer validate).
        """
        log_extra = {
            "event": event,
            "kind": kind.value,
            "source": source.value,
            "external_id": external_id,
            "booking_id": str(booking_id),
        }
        try:
            booking = self.session.execute(
                select(Booking)
                    .where(Booking.id == booking_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if booking is None:
                if owner_check is not None:
                    raise NotFoundException("Booking", str(booking_id))
                raise CorrelationException(
                    "No booking for payment event",
                    details={"booking_id": str(booking_id), "external_id": external_id},
                )
            if owner_check is not None:
                owner_check(booking)

            existing = self.session.execute(
                select(PaymentEvent.id).where(
                    PaymentEvent.kind == kind,
                    PaymentEvent.external_id == external_id,
                )
            ).first()
            if existing is not None:
                self.session.commit()
                return self._duplicate(event, kind, source, booking, log_extra)

            if guard is not None:
                guard(booking)

            state = PaymentState.from_booking(booking)
            if kind == PaymentEventKind.CAPTURED:
                transition = apply_capture(state, amount)
                if transition.excess > 0:
                    logger.warning(
                        "Captured amount exceeds booking total",
                        extra={**log_extra, "excess": str(transition.excess)},
                    )
                transition.state.apply_to(booking)
            elif kind == PaymentEventKind.FAILED:
                apply_failure(state).state.apply_to(booking)
            elif kind == PaymentEventKind.REFUNDED:
                apply_refund(state, amount).state.apply_to(booking)

            self.session.add(
                PaymentEvent(
                    booking_id=booking.id,
                    kind=kind,
                    source=source,
                    external_id=external_id,
                    payment_ref=payment_ref,
                    amount=amount,
                    method=method,
                    outcome=EventOutcome.APPLIED,
                    payout_status=(
                        SettlementStatus.PENDING
                        if kind in SETTLED_KINDS and source not in UNSETTLED_SOURCES
                        else SettlementStatus.NOT_APPLICABLE
                    ),
                )
            )
            self.session.flush()
            self.session.commit()
        except IntegrityError:
            # Lost the insert race against the same event on another connection
            self.session.rollback()
            booking = self.session.get(Booking, booking_id)
            return self._duplicate(event, kind, source, booking, log_extra)
        except StaleDataError:
            self.session.rollback()
            raise ConflictException("Booking was modified concurrently, retry the request")
        except Exception:
            self.session.rollback()
            raise

        self.metrics.increment_payment_events(kind.value, source.value, EventOutcome.APPLIED.value)
        logger.info(
            "Payment event applied",
            extra={
                **log_extra,
                "amount": str(amount),
                "paid_amount": str(booking.paid_amount),
                "payment_status": booking.payment_status.value,
                "status": booking.status.value,
            },
        )
        return PaymentResult(event=event, outcome=EventOutcome.APPLIED, booking_id=booking.id, booking=booking)

    def _duplicate(self, event, kind, source, booking, log_extra) -> PaymentResult:
        self.metrics.increment_payment_events(kind.value, source.value, EventOutcome.DUPLICATE.value)
        logger.info("Duplicate payment event", extra=log_extra)
        return PaymentResult(
            event=event,
            outcome=EventOutcome.DUPLICATE,
            booking_id=booking.id if booking is not None else None,
            booking=booking,
        )

    def _correlate(
        self,
        notes: Optional[Dict[str, Any]],
        order: Dict[str, Any],
        payment_ref: Optional[str] = None,
    ) -> UUID:
        """Find the booking an event belongs to.

        Tried in order: notes.booking_id, the order receipt, and for refunds
        the booking of the captured payment being refunded.
        """
        booking_ref = (notes or {}).get("booking_id") if isinstance(notes, dict) else None
        if booking_ref:
            return self._parse_booking_id(booking_ref)

        if order.get("receipt"):
            return parse_receipt(order["receipt"])

        if payment_ref:
            booking_id = self.session.execute(
                select(PaymentEvent.booking_id).where(
                    PaymentEvent.kind == PaymentEventKind.CAPTURED,
                    PaymentEvent.external_id == payment_ref,
                )
            ).scalar_one_or_none()
            if booking_id is not None:
                return booking_id

        raise CorrelationException(
            "Cannot correlate payment event to a booking",
            details={"payment_ref": payment_ref},
        )

    @staticmethod
    def _parse_booking_id(value: Any) -> UUID:
        try:
            return UUID(str(value))
        except ValueError:
            raise CorrelationException("Invalid booking id", details={"booking_id": str(value)})

    def _check_customer(self, actor: Actor, booking: Booking) -> None:
        if not (actor.is_admin or booking.customer_id == actor.user_id):
            raise NotFoundException("Booking", str(booking.id))

    def _get_customer_booking(self, actor: Actor, booking_id: UUID) -> Booking:
        booking = self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundException("Booking", str(booking_id))
        self._check_customer(actor, booking)
        return booking
