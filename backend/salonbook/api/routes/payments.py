"""
Payment API routes: gateway orders, checkout verification, direct payments,
refunds, payment status and the gateway webhook.
"""
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from salonbook.api.dependencies import get_db, get_raw_body, require_customer, require_owner
from salonbook.api.routes.bookings import BookingResponse
from salonbook.lib.request_context import Actor
from salonbook.models.bookings import PaymentStatus
from salonbook.models.payment_events import EventOutcome
from salonbook.services.payment_service import PaymentResult, PaymentService


# Pydantic schemas
class CreateOrderRequest(BaseModel):
    amount: Decimal = Field(..., description="Amount in rupees")
    currency: Optional[str] = Field(None, examples=["INR"])
    booking_id: Optional[UUID] = None


class CreateOrderResponse(BaseModel):
    message: str
    order: Dict[str, Any]


class VerifyPaymentRequest(BaseModel):
    order_id: str = Field("", description="Gateway order id")
    payment_id: str = Field("", description="Gateway payment id")
    signature: str = Field("", description="Checkout signature")
    booking_id: Optional[UUID] = None


class DirectPaymentRequest(BaseModel):
    amount: Decimal
    method: str = Field(..., description="CARD, CASH or ONLINE")


class RefundRequest(BaseModel):
    payment_id: str
    amount: Optional[Decimal] = Field(None, description="Partial refund amount; full refund when omitted")
    reason: Optional[str] = Field(None, max_length=255)


class PaymentEventResponse(BaseModel):
    message: str
    event: str
    outcome: EventOutcome
    booking_id: Optional[UUID] = None
    booking: Optional[BookingResponse] = None


class PaymentStatusResponse(BaseModel):
    booking_id: UUID
    payment_status: PaymentStatus
    total_price: float
    paid_amount: float
    remaining_amount: float
    is_fully_paid: bool


class RefundResponse(BaseModel):
    message: str
    refund: Dict[str, Any]


# Router
router = APIRouter(prefix="/payments", tags=["payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def _event_response(result: PaymentResult, message: str) -> PaymentEventResponse:
    return PaymentEventResponse(
        message=message,
        event=result.event,
        outcome=result.outcome,
        booking_id=result.booking_id,
        booking=BookingResponse.model_validate(result.booking) if result.booking is not None else None,
    )


@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    request: CreateOrderRequest,
    actor: Actor = Depends(require_customer),
    payment_service: PaymentService = Depends(get_payment_service),
) -> CreateOrderResponse:
    """Create a gateway order. With a booking id the receipt is `booking_<id>`."""
    order = payment_service.create_order(
        actor, request.amount, currency=request.currency, booking_id=request.booking_id
    )
    return CreateOrderResponse(message="Order created successfully", order=order)


@router.post("/verify-payment", response_model=PaymentEventResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    actor: Actor = Depends(require_customer),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentEventResponse:
    """
    Confirm a checkout from the app.

    Errors:
    - 400: signature mismatch
    - 502: gateway could not return the payment
    """
    result = payment_service.verify_client_payment(
        actor,
        order_id=request.order_id,
        payment_id=request.payment_id,
        signature=request.signature,
        booking_id=request.booking_id,
    )
    return _event_response(result, "Payment verified successfully")


@router.post(
    "/booking/{booking_id}",
    response_model=PaymentEventResponse,
    status_code=status.HTTP_201_CREATED,
)
def record_direct_payment(
    booking_id: UUID,
    request: DirectPaymentRequest,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    actor: Actor = Depends(require_customer),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentEventResponse:
    """
    Pay (part of) the remaining balance directly.

    Send an `Idempotency-Key` header to make retries safe.
    """
    result = payment_service.record_direct_payment(
        actor, booking_id, request.amount, request.method, idempotency_key=idempotency_key
    )
    return _event_response(result, "Payment processed successfully")


@router.get("/booking/{booking_id}/status", response_model=PaymentStatusResponse)
def get_payment_status(
    booking_id: UUID,
    actor: Actor = Depends(require_customer),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentStatusResponse:
    return PaymentStatusResponse(**payment_service.get_payment_status(actor, booking_id))


@router.post("/booking/{booking_id}/refund", response_model=RefundResponse)
def request_refund(
    booking_id: UUID,
    request: RefundRequest,
    actor: Actor = Depends(require_owner),
    payment_service: PaymentService = Depends(get_payment_service),
) -> RefundResponse:
    """Ask the gateway to refund a captured payment; the booking updates on `refund.processed`."""
    refund = payment_service.request_refund(
        actor, booking_id, request.payment_id, amount=request.amount, reason=request.reason
    )
    return RefundResponse(message="Refund requested", refund=refund)


@router.post("/webhook", response_model=PaymentEventResponse)
def payment_webhook(
    body: bytes = Depends(get_raw_body),
    x_razorpay_signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentEventResponse:
    """
    Gateway webhook (payment.captured, payment.failed, refund.processed, refund.failed).

    Replays are acknowledged with outcome `duplicate`; other events with `ignored`.
    """
    result = payment_service.handle_webhook(body, x_razorpay_signature)
    return _event_response(result, "Webhook processed")
