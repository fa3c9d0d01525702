"""
Store, store service and store working-hours models.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Numeric,
    DateTime,
    ForeignKey,
    Uuid,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from salonbook.lib.db import Base


class Store(Base):
    """A salon location owned by one OWNER user."""
    __tablename__ = "stores"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, name={self.name}, owner_id={self.owner_id})>"


class StoreService(Base):
    """
    A service offered at a store, with the store's own price and duration.
    The price is copied onto each booking at reservation time.
    """
    __tablename__ = "store_services"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    store_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("price >= 0", name="store_service_price_non_negative"),
        CheckConstraint("duration_minutes > 0", name="store_service_duration_positive"),
    )

    def __repr__(self) -> str:
        return f"<StoreService(id={self.id}, name={self.name}, duration={self.duration_minutes})>"


class StoreAvailability(Base):
    """
    Weekly opening window for a store.
    day_of_week: 0 = Sunday ... 6 = Saturday. Times are "HH:MM".
    """
    __tablename__ = "store_availability"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    store_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="store_availability_day_range"),
    )

    def __repr__(self) -> str:
        return (
            f"<StoreAvailability(store_id={self.store_id}, day={self.day_of_week}, "
            f"{self.start_time}-{self.end_time})>"
        )
