"""
Payment event ledger - one row per distinct gateway or client payment event.

The unique (kind, external_id) pair is the idempotency gate: a webhook retry,
a client confirmation of an already-webhooked payment, or a replayed direct
payment all collide here and are reported as duplicates.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Numeric,
    DateTime,
    ForeignKey,
    Uuid,
    Enum as SQLEnum,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from salonbook.lib.db import Base


class PaymentEventKind(str, enum.Enum):
    CAPTURED = "CAPTURED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    REFUND_FAILED = "REFUND_FAILED"


class PaymentEventSource(str, enum.Enum):
    WEBHOOK = "WEBHOOK"
    CLIENT = "CLIENT"
    DIRECT = "DIRECT"


class EventOutcome(str, enum.Enum):
    """Result of processing an event (also returned to callers)."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class SettlementStatus(str, enum.Enum):
    """Whether the money moved by this event has been paid out to the owner."""
    PENDING = "PENDING"
    PAID_OUT = "PAID_OUT"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class PaymentEvent(Base):
    __tablename__ = "payment_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[PaymentEventKind] = mapped_column(
        SQLEnum(PaymentEventKind, name="payment_event_kind"),
        nullable=False,
    )
    source: Mapped[PaymentEventSource] = mapped_column(
        SQLEnum(PaymentEventSource, name="payment_event_source"),
        nullable=False,
    )
    # Gateway payment/refund id, or the client's Idempotency-Key
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    # Gateway payment a refund belongs to
    payment_ref: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    method: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    outcome: Mapped[EventOutcome] = mapped_column(
        SQLEnum(EventOutcome, name="payment_event_outcome", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EventOutcome.APPLIED,
    )

    payout_status: Mapped[SettlementStatus] = mapped_column(
        SQLEnum(SettlementStatus, name="settlement_status"),
        nullable=False,
        default=SettlementStatus.NOT_APPLICABLE,
        index=True,
    )
    payout_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("owner_payouts.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("kind", "external_id", name="uq_payment_events_kind_external_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<PaymentEvent(kind={self.kind}, external_id={self.external_id}, "
            f"booking_id={self.booking_id}, amount={self.amount})>"
        )
