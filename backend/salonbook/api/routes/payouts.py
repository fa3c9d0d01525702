"""
Owner payout API routes.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from salonbook.api.dependencies import get_db, require_owner
from salonbook.lib.request_context import Actor
from salonbook.models.payouts import PayoutStatus
from salonbook.services.payout_service import PayoutService


class PayoutResponse(BaseModel):
    id: UUID
    owner_id: UUID
    amount: float
    currency: str
    status: PayoutStatus
    gateway_payout_id: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


router = APIRouter(prefix="/payouts", tags=["payouts"])


def get_payout_service(db: Session = Depends(get_db)) -> PayoutService:
    return PayoutService(db)


@router.get("", response_model=List[PayoutResponse])
def list_payouts(
    actor: Actor = Depends(require_owner),
    payout_service: PayoutService = Depends(get_payout_service),
) -> List[PayoutResponse]:
    """The caller's payout history, newest first."""
    return [PayoutResponse.model_validate(p) for p in payout_service.list_payouts(actor)]
