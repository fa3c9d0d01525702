"""
Payment state transitions for a booking.

Pure functions over `PaymentState`; no storage, no clock. The payment service
loads a locked booking, runs one transition, and writes the result back.

Rules:
- capture(a): paid grows by a, capped at total. FULL payment confirms a
  PENDING booking. COMPLETED and CANCELLED bookings keep their status.
- failure: a PENDING booking with nothing paid is cancelled; a booking that
  holds a deposit keeps its reservation. Paid money is never touched.
- refund(r): paid shrinks by r, floored at zero; status is untouched.
"""
from dataclasses import dataclass, replace
from decimal import Decimal

from salonbook.models.bookings import Booking, BookingStatus, PaymentStatus

ZERO = Decimal("0")


@dataclass(frozen=True)
class PaymentState:
    total_price: Decimal
    paid_amount: Decimal
    payment_status: PaymentStatus
    status: BookingStatus

    @classmethod
    def from_booking(cls, booking: Booking) -> "PaymentState":
        return cls(
            total_price=Decimal(booking.total_price),
            paid_amount=Decimal(booking.paid_amount),
            payment_status=PaymentStatus(booking.payment_status),
            status=BookingStatus(booking.status),
        )

    def apply_to(self, booking: Booking) -> None:
        booking.paid_amount = self.paid_amount
        booking.payment_status = self.payment_status
        booking.status = self.status

    @property
    def remaining(self) -> Decimal:
        return self.total_price - self.paid_amount


@dataclass(frozen=True)
class Transition:
    """New state plus any captured amount that did not fit under the total."""

    state: PaymentState
    excess: Decimal = ZERO


def payment_status_for(paid: Decimal, total: Decimal, status: BookingStatus) -> PaymentStatus:
    if paid >= total:
        return PaymentStatus.FULL
    if paid > ZERO:
        return PaymentStatus.PARTIAL
    if status == BookingStatus.CANCELLED:
        return PaymentStatus.REFUNDED
    return PaymentStatus.PENDING


def apply_capture(state: PaymentState, amount: Decimal) -> Transition:
    """
    Add a captured amount.

    Raises:
        ValueError: If amount is not positive
    """
    amount = Decimal(amount)
    if amount <= ZERO:
        raise ValueError("Captured amount must be positive")

    raw_paid = state.paid_amount + amount
    paid = min(state.total_price, raw_paid)
    excess = raw_paid - paid

    status = state.status
    payment_status = payment_status_for(paid, state.total_price, status)
    if payment_status == PaymentStatus.FULL and status == BookingStatus.PENDING:
        status = BookingStatus.CONFIRMED

    return Transition(
        state=replace(state, paid_amount=paid, payment_status=payment_status, status=status),
        excess=excess,
    )


def apply_failure(state: PaymentState) -> Transition:
    """A failed payment cancels a PENDING booking that has nothing paid yet.

    A booking holding a deposit stays reserved when a later payment fails.
    """
    if state.status != BookingStatus.PENDING or state.paid_amount > ZERO:
        return Transition(state=state)
    return Transition(state=replace(state, status=BookingStatus.CANCELLED))


def apply_refund(state: PaymentState, amount: Decimal) -> Transition:
    """
    Remove a refunded amount.

    Raises:
        ValueError: If amount is not positive
    """
    amount = Decimal(amount)
    if amount <= ZERO:
        raise ValueError("Refunded amount must be positive")

    paid = max(ZERO, state.paid_amount - amount)
    payment_status = payment_status_for(paid, state.total_price, state.status)
    return Transition(state=replace(state, paid_amount=paid, payment_status=payment_status))
