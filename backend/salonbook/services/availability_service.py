"""Availability resolution and working-hours management.

Slots are derived on every request from weekly windows minus the store's
active bookings; nothing about availability is cached.

Example:
    >>> windows = [Window(day_of_week=1, start_time="09:00", end_time="12:00")]
    >>> compute_available_slots(windows, date(2030, 1, 7), 60, [])
    [Slot(start_time='09:00', end_time='10:00'), Slot(...'09:30'...), ...]
"""
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from salonbook.api.middleware.error_handler import NotFoundException, ValidationException
from salonbook.lib.logging import get_logger
from salonbook.lib.request_context import Actor
from salonbook.lib.settings import settings
from salonbook.lib.timeutils import (
    InvalidTimeFormat,
    day_of_week,
    intervals_overlap,
    minutes_to_time,
    normalize_time,
    slot_starts,
    time_to_minutes,
)
from salonbook.models.bookings import Booking, BLOCKING_STATUSES
from salonbook.models.employees import Employee, EmployeeAvailability
from salonbook.models.stores import StoreAvailability, StoreService
from salonbook.services.ownership import get_owned_store

logger = get_logger(__name__)


@dataclass(frozen=True)
class Slot:
    start_time: str
    end_time: str


@dataclass(frozen=True)
class Window:
    """A weekly working window (0 = Sunday)."""

    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool = True


def compute_available_slots(
    windows: Iterable,
    booking_date: date,
    duration_minutes: int,
    existing_bookings: Iterable,
    stride_minutes: int = 30,
) -> List[Slot]:
    """Expand the day's active windows into free slots of `duration_minutes`.

    Args:
        windows: Objects with day_of_week, start_time, end_time, is_active
        booking_date: Calendar date being queried
        duration_minutes: Service duration; every slot is exactly this long
        existing_bookings: Objects with start_time, end_time, status; only
            PENDING and CONFIRMED ones block a slot
        stride_minutes: Distance between candidate starts

    Returns:
        Free slots in generation order (window by window, chronological
        within each window). A slot produced by two windows appears once.
    """
    weekday = day_of_week(booking_date)
    day_windows = [w for w in windows if w.is_active and w.day_of_week == weekday]
    if not day_windows:
        return []

    taken = [
        (time_to_minutes(b.start_time), time_to_minutes(b.end_time))
        for b in existing_bookings
        if b.status in BLOCKING_STATUSES
    ]

    slots: List[Slot] = []
    seen = set()
    for window in day_windows:
        window_start = time_to_minutes(window.start_time)
        window_end = time_to_minutes(window.end_time)
        for start in slot_starts(window_start, window_end, duration_minutes, stride_minutes):
            end = start + duration_minutes
            if (start, end) in seen:
                continue
            if any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end in taken):
                continue
            seen.add((start, end))
            slots.append(Slot(start_time=minutes_to_time(start), end_time=minutes_to_time(end)))
    return slots


def validate_windows(windows: Sequence[Window]) -> List[Window]:
    """Check and normalize a replacement set of windows.

    Raises:
        ValidationException: On a bad day, bad time, empty window, or two
            active windows on the same day that overlap
    """
    errors = {}
    normalized: List[Window] = []
    for index, window in enumerate(windows):
        key = f"availability[{index}]"
        if not isinstance(window.day_of_week, int) or not 0 <= window.day_of_week <= 6:
            errors[key] = "day_of_week must be between 0 (Sunday) and 6 (Saturday)"
            continue
        try:
            start = normalize_time(window.start_time)
            end = normalize_time(window.end_time)
        except InvalidTimeFormat as exc:
            errors[key] = str(exc)
            continue
        if time_to_minutes(start) >= time_to_minutes(end):
            errors[key] = "start_time must be before end_time"
            continue
        normalized.append(Window(window.day_of_week, start, end, window.is_active))

    if errors:
        raise ValidationException("Invalid availability", errors=errors)

    for i, first in enumerate(normalized):
        for second in normalized[i + 1:]:
            # Inactive windows are never expanded into slots
            if first.day_of_week != second.day_of_week or not (first.is_active and second.is_active):
                continue
            if intervals_overlap(
                time_to_minutes(first.start_time), time_to_minutes(first.end_time),
                time_to_minutes(second.start_time), time_to_minutes(second.end_time),
            ):
                raise ValidationException(
                    "Availability windows overlap",
                    errors={
                        "day_of_week": first.day_of_week,
                        "windows": [
                            f"{first.start_time}-{first.end_time}",
                            f"{second.start_time}-{second.end_time}",
                        ],
                    },
                )
    return normalized


class AvailabilityService:
    """Reads free slots and replaces store/employee working hours."""

    def __init__(self, session: Session, stride_minutes: Optional[int] = None):
        self.session = session
        self.stride_minutes = stride_minutes or settings.slot_stride_minutes

    def get_available_slots(
        self,
        store_id: UUID,
        store_service_id: UUID,
        booking_date: date,
        employee_id: Optional[UUID] = None,
    ) -> List[Slot]:
        """Free slots for a service at a store on a date.

        Uses the employee's windows at this store when `employee_id` is given,
        otherwise the store's windows. Conflicts are checked against every
        active booking at the store that day.

        Raises:
            NotFoundException: Unknown/inactive service, service of another
                store, or an employee who does not work at the store
        """
        service = self.session.get(StoreService, store_service_id)
        if service is None or not service.is_active or service.store_id != store_id:
            raise NotFoundException("Store service", str(store_service_id))

        if employee_id is not None:
            employee = self.session.get(Employee, employee_id)
            if employee is None or not employee.is_active or employee.store_id != store_id:
                raise NotFoundException("Employee", str(employee_id))
            windows = self.session.execute(
                select(EmployeeAvailability).where(
                    EmployeeAvailability.employee_id == employee_id,
                    EmployeeAvailability.store_id == store_id,
                )
            ).scalars().all()
        else:
            windows = self.session.execute(
                select(StoreAvailability).where(StoreAvailability.store_id == store_id)
            ).scalars().all()

        bookings = self.session.execute(
            select(Booking).where(
                Booking.store_id == store_id,
                Booking.booking_date == booking_date,
                Booking.status.in_(BLOCKING_STATUSES),
            )
        ).scalars().all()

        return compute_available_slots(
            windows,
            booking_date,
            service.duration_minutes,
            bookings,
            stride_minutes=self.stride_minutes,
        )

    def list_store_availability(self, store_id: UUID) -> List[StoreAvailability]:
        return list(
            self.session.execute(
                select(StoreAvailability)
                .where(StoreAvailability.store_id == store_id)
                .order_by(StoreAvailability.day_of_week, StoreAvailability.start_time)
            ).scalars()
        )

    def list_employee_availability(
        self, actor: Actor, employee_id: UUID, store_id: UUID
    ) -> List[EmployeeAvailability]:
        self._get_store_employee(actor, employee_id, store_id)
        return list(
            self.session.execute(
                select(EmployeeAvailability)
                .where(
                    EmployeeAvailability.employee_id == employee_id,
                    EmployeeAvailability.store_id == store_id,
                )
                .order_by(EmployeeAvailability.day_of_week, EmployeeAvailability.start_time)
            ).scalars()
        )

    def replace_store_availability(
        self, actor: Actor, store_id: UUID, windows: Sequence[Window]
    ) -> List[StoreAvailability]:
        """Replace all of a store's windows in one transaction."""
        try:
            get_owned_store(self.session, actor, store_id)
            normalized = validate_windows(windows)
            self.session.execute(
                delete(StoreAvailability).where(StoreAvailability.store_id == store_id)
            )
            rows = [
                StoreAvailability(
                    store_id=store_id,
                    day_of_week=w.day_of_week,
                    start_time=w.start_time,
                    end_time=w.end_time,
                    is_active=w.is_active,
                )
                for w in normalized
            ]
            self.session.add_all(rows)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Store availability replaced",
            extra={"store_id": str(store_id), "windows": len(rows)},
        )
        return self.list_store_availability(store_id)

    def replace_employee_availability(
        self, actor: Actor, employee_id: UUID, store_id: UUID, windows: Sequence[Window]
    ) -> List[EmployeeAvailability]:
        """Replace all of an employee's windows at one store in one transaction."""
        try:
            self._get_store_employee(actor, employee_id, store_id)
            normalized = validate_windows(windows)
            self.session.execute(
                delete(EmployeeAvailability).where(
                    EmployeeAvailability.employee_id == employee_id,
                    EmployeeAvailability.store_id == store_id,
                )
            )
            rows = [
                EmployeeAvailability(
                    employee_id=employee_id,
                    store_id=store_id,
                    day_of_week=w.day_of_week,
                    start_time=w.start_time,
                    end_time=w.end_time,
                    is_active=w.is_active,
                )
                for w in normalized
            ]
            self.session.add_all(rows)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Employee availability replaced",
            extra={"employee_id": str(employee_id), "store_id": str(store_id), "windows": len(rows)},
        )
        return self.list_employee_availability(actor, employee_id, store_id)

    def _get_store_employee(self, actor: Actor, employee_id: UUID, store_id: UUID) -> Employee:
        get_owned_store(self.session, actor, store_id)
        employee = self.session.get(Employee, employee_id)
        if employee is None or not employee.is_active or employee.store_id != store_id:
            raise NotFoundException("Employee", str(employee_id))
        return employee
