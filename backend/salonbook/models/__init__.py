"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from salonbook.models.users import User, UserRole
from salonbook.models.stores import Store, StoreService, StoreAvailability
from salonbook.models.employees import Employee, EmployeeAvailability
from salonbook.models.bookings import Booking, BookingStatus, PaymentStatus
from salonbook.models.payouts import OwnerPayout, PayoutStatus
from salonbook.models.payment_events import (
    PaymentEvent,
    PaymentEventKind,
    PaymentEventSource,
    EventOutcome,
    SettlementStatus,
)

__all__ = [
    "User",
    "UserRole",
    "Store",
    "StoreService",
    "StoreAvailability",
    "Employee",
    "EmployeeAvailability",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "OwnerPayout",
    "PayoutStatus",
    "PaymentEvent",
    "PaymentEventKind",
    "PaymentEventSource",
    "EventOutcome",
    "SettlementStatus",
]
