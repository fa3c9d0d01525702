"""
Booking API routes: reservation, listings, status changes and free slots.
"""
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from salonbook.api.dependencies import get_db, get_current_actor, require_customer, require_owner
from salonbook.lib.request_context import Actor
from salonbook.models.bookings import BookingStatus, PaymentStatus
from salonbook.services.availability_service import AvailabilityService
from salonbook.services.booking_service import BookingService


# Pydantic schemas
class BookingCreateRequest(BaseModel):
    """Create booking request. Presence of fields is checked by the service."""
    store_id: Optional[UUID] = None
    store_service_id: Optional[UUID] = None
    booking_date: Optional[date] = None
    start_time: Optional[str] = Field(None, examples=["10:00"])
    payment_percentage: Optional[int] = Field(None, description="50 (deposit) or 100 (full)")
    notes: Optional[str] = Field(None, max_length=1000)
    employee_id: Optional[UUID] = None


class BookingStatusUpdateRequest(BaseModel):
    status: str = Field(..., description="CONFIRMED, COMPLETED or CANCELLED")


class BookingResponse(BaseModel):
    id: UUID
    customer_id: UUID
    store_id: UUID
    store_service_id: UUID
    employee_id: Optional[UUID] = None
    booking_date: date
    start_time: str
    end_time: str
    status: BookingStatus
    payment_status: PaymentStatus
    total_price: float
    paid_amount: float
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SlotResponse(BaseModel):
    start_time: str
    end_time: str

    model_config = {"from_attributes": True}


class AvailabilityResponse(BaseModel):
    store_id: UUID
    service_id: UUID
    date: date
    employee_id: Optional[UUID] = None
    slots: List[SlotResponse]


# Router
router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    actor: Actor = Depends(require_customer),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Reserve a slot.

    The booking starts PENDING with the chosen share of the price recorded as
    paid (PARTIAL for 50%, FULL for 100%).

    Errors:
    - 422: missing fields, bad percentage, past date, bad time, slot past midnight
    - 404: store, service or employee not found
    - 409: slot overlaps an existing booking
    """
    booking = booking_service.create_booking(
        actor,
        store_id=request.store_id,
        store_service_id=request.store_service_id,
        booking_date=request.booking_date,
        start_time=request.start_time,
        payment_percentage=request.payment_percentage,
        notes=request.notes,
        employee_id=request.employee_id,
    )
    return BookingResponse.model_validate(booking)


@router.get("/my-bookings", response_model=List[BookingResponse])
def list_my_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    booking_date: Optional[date] = Query(None, alias="date"),
    actor: Actor = Depends(require_customer),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """The caller's bookings, newest first."""
    bookings = booking_service.list_customer_bookings(actor, status=status_filter, booking_date=booking_date)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/store/{store_id}", response_model=List[BookingResponse])
def list_store_bookings(
    store_id: UUID,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    booking_date: Optional[date] = Query(None, alias="date"),
    actor: Actor = Depends(require_owner),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """A store's schedule (owner only), ordered by date and start time."""
    bookings = booking_service.list_store_bookings(
        actor, store_id, booking_date=booking_date, status=status_filter
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/availability/{store_id}/{service_id}/{booking_date}", response_model=AvailabilityResponse)
def get_availability(
    store_id: UUID,
    service_id: UUID,
    booking_date: date,
    employee_id: Optional[UUID] = Query(None, description="Use this employee's hours instead of the store's"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Free slots for a service on a date. An empty list means fully booked or closed."""
    slots = availability_service.get_available_slots(
        store_id, service_id, booking_date, employee_id=employee_id
    )
    return AvailabilityResponse(
        store_id=store_id,
        service_id=service_id,
        date=booking_date,
        employee_id=employee_id,
        slots=[SlotResponse.model_validate(s) for s in slots],
    )


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return BookingResponse.model_validate(booking_service.get_booking(actor, booking_id))


@router.patch("/{booking_id}/status", response_model=BookingResponse)
def update_booking_status(
    booking_id: UUID,
    request: BookingStatusUpdateRequest,
    actor: Actor = Depends(require_owner),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Move a booking of the owner's store to CONFIRMED, COMPLETED or CANCELLED.

    Allowed: PENDING -> CONFIRMED/CANCELLED, CONFIRMED -> COMPLETED/CANCELLED.
    """
    booking = booking_service.update_status(actor, booking_id, request.status)
    return BookingResponse.model_validate(booking)
