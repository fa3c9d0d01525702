"""Booking reservation engine.

Reserving a slot is one transaction: lock the store's schedule, re-read the
day's active bookings, reject any overlap, insert. Concurrent requests for the
same store queue on the lock, so at most one of two overlapping reservations
commits. A partial unique index on (store, date, start) catches anything that
slips past the lock.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from salonbook.api.middleware.error_handler import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from salonbook.lib.logging import get_logger
from salonbook.lib.metrics import get_metrics_collector
from salonbook.lib.request_context import Actor
from salonbook.lib.timeutils import (
    InvalidTimeFormat,
    MINUTES_PER_DAY,
    intervals_overlap,
    minutes_to_time,
    time_to_minutes,
)
from salonbook.models.bookings import Booking, BookingStatus, PaymentStatus, BLOCKING_STATUSES
from salonbook.models.employees import Employee
from salonbook.models.stores import Store, StoreService
from salonbook.services.ownership import get_owned_store

logger = get_logger(__name__)

ALLOWED_PAYMENT_PERCENTAGES = (50, 100)
CENT = Decimal("0.01")

# Owner-driven status changes
STATUS_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}
OWNER_SETTABLE_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    """Creates bookings and moves them through their lifecycle.

    Args:
        session: SQLAlchemy session for database operations
        now_fn: Clock used for the future-date rule (defaults to UTC now;
            a naive datetime is read as UTC)
    """

    def __init__(self, session: Session, now_fn: Optional[Callable[[], datetime]] = None):
        self.session = session
        self.now_fn = now_fn or _utc_now
        self.metrics = get_metrics_collector()

    def _now(self) -> datetime:
        now = self.now_fn()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now

    def create_booking(
        self,
        actor: Actor,
        store_id: Optional[UUID],
        store_service_id: Optional[UUID],
        booking_date: Optional[date],
        start_time: Optional[str],
        payment_percentage: Optional[int],
        notes: Optional[str] = None,
        employee_id: Optional[UUID] = None,
    ) -> Booking:
        """Reserve a slot for the calling customer.

        Checks run in order and stop at the first failure; nothing is written
        unless all of them pass.

        Returns:
            The new booking, status PENDING, with the deposit recorded as paid

        Raises:
            ValidationException: Missing fields, bad percentage, date not in
                the future, bad time, service of another store, or a slot
                running past midnight
            NotFoundException: Unknown or inactive store, service or employee
            ConflictException: The slot overlaps an active booking

        Example:
            >>> booking = service.create_booking(
            ...     actor, store.id, svc.id, date(2030, 1, 7), "10:00", 50
            ... )
            >>> booking.payment_status
            <PaymentStatus.PARTIAL: 'PARTIAL'>
        """
        if not actor.is_customer:
            raise ForbiddenException("Only customers can create bookings")

        try:
            if any(
                value is None or value == ""
                for value in (store_id, store_service_id, booking_date, start_time, payment_percentage)
            ):
                raise ValidationException("All booking details are required")

            if payment_percentage not in ALLOWED_PAYMENT_PERCENTAGES:
                raise ValidationException(
                    "Payment percentage must be 50 or 100",
                    errors={"payment_percentage": payment_percentage},
                )

            if datetime.combine(booking_date, time.min, tzinfo=timezone.utc) <= self._now():
                raise ValidationException(
                    "Booking date must be in the future",
                    errors={"booking_date": booking_date.isoformat()},
                )

            try:
                start_minutes = time_to_minutes(start_time)
            except InvalidTimeFormat as exc:
                raise ValidationException(str(exc), errors={"start_time": start_time})

            service = self.session.get(StoreService, store_service_id)
            if service is None or not service.is_active:
                raise NotFoundException("Store service", str(store_service_id))
            if service.store_id != store_id:
                raise ValidationException(
                    "Service does not belong to this store",
                    errors={"store_service_id": str(store_service_id)},
                )

            if employee_id is not None:
                employee = self.session.get(Employee, employee_id)
                if employee is None or not employee.is_active or employee.store_id != store_id:
                    raise NotFoundException("Employee", str(employee_id))

            end_minutes = start_minutes + service.duration_minutes
            if end_minutes >= MINUTES_PER_DAY:
                raise ValidationException(
                    "Booking cannot run past midnight",
                    errors={"start_time": start_time, "duration_minutes": service.duration_minutes},
                )

            # Serialize reservations per store
            store = self.session.execute(
                select(Store)
                    .where(Store.id == store_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if store is None or not store.is_active:
                raise NotFoundException("Store", str(store_id))

            self._ensure_slot_free(store_id, booking_date, start_minutes, end_minutes)

            total_price = Decimal(service.price)
            paid_amount = (total_price * payment_percentage / 100).quantize(CENT, rounding=ROUND_HALF_UP)
            booking = Booking(
                customer_id=actor.user_id,
                store_id=store_id,
                store_service_id=store_service_id,
                employee_id=employee_id,
                booking_date=booking_date,
                start_time=minutes_to_time(start_minutes),
                end_time=minutes_to_time(end_minutes),
                total_price=total_price,
                paid_amount=paid_amount,
                payment_status=PaymentStatus.FULL if payment_percentage == 100 else PaymentStatus.PARTIAL,
                status=BookingStatus.PENDING,
                notes=notes,
            )
            self.session.add(booking)
            self.session.flush()
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            self.metrics.increment_booking_conflicts()
            logger.warning(
                "Slot taken at insert",
                extra={"store_id": str(store_id), "booking_date": str(booking_date), "start_time": start_time},
            )
            raise ConflictException("Time slot not available")
        except Exception:
            self.session.rollback()
            raise

        self.metrics.increment_bookings_created(payment_percentage)
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "store_id": str(store_id),
                "booking_date": booking.booking_date.isoformat(),
                "start_time": booking.start_time,
                "end_time": booking.end_time,
                "payment_percentage": payment_percentage,
            },
        )
        return booking

    def _ensure_slot_free(self, store_id: UUID, booking_date: date, start: int, end: int) -> None:
        existing = self.session.execute(
            select(Booking).where(
                Booking.store_id == store_id,
                Booking.booking_date == booking_date,
                Booking.status.in_(BLOCKING_STATUSES),
            )
        ).scalars().all()
        for other in existing:
            if intervals_overlap(start, end, time_to_minutes(other.start_time), time_to_minutes(other.end_time)):
                self.metrics.increment_booking_conflicts()
                logger.info(
                    "Booking conflict",
                    extra={
                        "store_id": str(store_id),
                        "booking_date": booking_date.isoformat(),
                        "requested": f"{minutes_to_time(start)}-{minutes_to_time(end)}",
                        "conflicting_booking_id": str(other.id),
                    },
                )
                raise ConflictException("Time slot not available")

    def get_booking(self, actor: Actor, booking_id: UUID) -> Booking:
        """Load a booking visible to the caller.

        Customers see their own bookings, owners the bookings of their
        stores, admins everything.

        Raises:
            NotFoundException: If missing or not visible
        """
        booking = self.session.get(Booking, booking_id)
        if booking is None or not self._can_view(actor, booking):
            raise NotFoundException("Booking", str(booking_id))
        return booking

    def _can_view(self, actor: Actor, booking: Booking) -> bool:
        if actor.is_admin:
            return True
        if actor.is_customer:
            return booking.customer_id == actor.user_id
        store = self.session.get(Store, booking.store_id)
        return store is not None and store.owner_id == actor.user_id

    def list_customer_bookings(
        self,
        actor: Actor,
        status: Optional[BookingStatus] = None,
        booking_date: Optional[date] = None,
    ) -> List[Booking]:
        """The caller's bookings, newest date first."""
        stmt = select(Booking).where(Booking.customer_id == actor.user_id)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        if booking_date is not None:
            stmt = stmt.where(Booking.booking_date == booking_date)
        stmt = stmt.order_by(Booking.booking_date.desc(), Booking.start_time.desc())
        return list(self.session.execute(stmt).scalars())

    def list_store_bookings(
        self,
        actor: Actor,
        store_id: UUID,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        """A store's bookings in schedule order (date, then start time)."""
        get_owned_store(self.session, actor, store_id)
        stmt = select(Booking).where(Booking.store_id == store_id)
        if booking_date is not None:
            stmt = stmt.where(Booking.booking_date == booking_date)
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        stmt = stmt.order_by(Booking.booking_date.asc(), Booking.start_time.asc())
        return list(self.session.execute(stmt).scalars())

    def update_status(self, actor: Actor, booking_id: UUID, status) -> Booking:
        """Owner moves a booking of their store to a new status.

        Raises:
            ValidationException: Unknown target status or a transition the
                lifecycle does not allow (terminal states never change)
            NotFoundException: Booking missing or not in the caller's store
            ConflictException: The booking changed underneath this update
        """
        try:
            target = BookingStatus(status)
        except ValueError:
            target = None
        if target not in OWNER_SETTABLE_STATUSES:
            raise ValidationException(
                "Invalid status",
                errors={"status": str(status), "allowed": [s.value for s in OWNER_SETTABLE_STATUSES]},
            )

        try:
            booking = self.session.execute(
                select(Booking)
                    .where(Booking.id == booking_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if booking is None:
                raise NotFoundException("Booking", str(booking_id))
            get_owned_store(self.session, actor, booking.store_id)

            current = BookingStatus(booking.status)
            if target not in STATUS_TRANSITIONS[current]:
                raise ValidationException(
                    f"Cannot change booking status from {current.value} to {target.value}",
                    errors={"from": current.value, "to": target.value},
                )

            booking.status = target
            self.session.commit()
        except NotFoundException as exc:
            self.session.rollback()
            if exc.details.get("resource") == "Store":
                raise NotFoundException("Booking", str(booking_id))
            raise
        except StaleDataError:
            self.session.rollback()
            raise ConflictException("Booking was modified concurrently, retry the request")
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Booking status updated",
            extra={"booking_id": str(booking_id), "from": current.value, "to": target.value},
        )
        return booking
