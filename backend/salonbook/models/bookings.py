"""
Booking model - a reserved slot at a store, with its payment state.

Status machine: PENDING -> CONFIRMED -> COMPLETED, PENDING/CONFIRMED -> CANCELLED.
Payment status follows paid_amount: PENDING (nothing paid), PARTIAL, FULL,
REFUNDED (cancelled booking refunded to zero).
"""
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Text,
    Integer,
    Numeric,
    Date,
    DateTime,
    ForeignKey,
    Uuid,
    Index,
    Enum as SQLEnum,
    CheckConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from salonbook.lib.db import Base


class BookingStatus(str, enum.Enum):
    """Booking status state machine."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    """Payment status derived from paid_amount against total_price."""
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    FULL = "FULL"
    REFUNDED = "REFUNDED"


# Statuses that hold a slot
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

_ACTIVE_SLOT_PREDICATE = text("status IN ('PENDING', 'CONFIRMED')")


class Booking(Base):
    """
    Booking entity. Never deleted, only status-transitioned.
    `version` is bumped on every UPDATE; a concurrent writer holding a stale
    copy gets StaleDataError instead of silently overwriting.
    """
    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    customer_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    store_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    store_service_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("store_services.id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timing (calendar date + wall-clock HH:MM)
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    # Payment
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        default=Decimal("0"),
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="booking_paid_non_negative"),
        CheckConstraint("paid_amount <= total_price", name="booking_paid_within_total"),
        CheckConstraint("start_time < end_time", name="booking_start_before_end"),
        # Storage-level backstop against two active bookings on the same start
        Index(
            "uq_bookings_active_slot",
            "store_id",
            "booking_date",
            "start_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_store_date", "store_id", "booking_date"),
    )

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.total_price) - Decimal(self.paid_amount)

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, store_id={self.store_id}, date={self.booking_date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
