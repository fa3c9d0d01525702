"""
Working-hours API routes for stores and employees.

PUT replaces the whole weekly schedule in one transaction.
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from salonbook.api.dependencies import get_db, require_owner
from salonbook.lib.request_context import Actor
from salonbook.services.availability_service import AvailabilityService, Window


class WindowRequest(BaseModel):
    day_of_week: int = Field(..., description="0 = Sunday ... 6 = Saturday")
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["18:00"])
    is_active: bool = True

    def to_window(self) -> Window:
        return Window(self.day_of_week, self.start_time, self.end_time, self.is_active)


class StoreAvailabilityRequest(BaseModel):
    availability: List[WindowRequest]


class EmployeeAvailabilityRequest(BaseModel):
    store_id: UUID
    availability: List[WindowRequest]


class WindowResponse(BaseModel):
    id: UUID
    day_of_week: int
    start_time: str
    end_time: str
    is_active: bool

    model_config = {"from_attributes": True}


store_router = APIRouter(prefix="/stores", tags=["availability"])
employee_router = APIRouter(prefix="/employees", tags=["availability"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


@store_router.get("/{store_id}/availability", response_model=List[WindowResponse])
def get_store_availability(
    store_id: UUID,
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[WindowResponse]:
    windows = availability_service.list_store_availability(store_id)
    return [WindowResponse.model_validate(w) for w in windows]


@store_router.put("/{store_id}/availability", response_model=List[WindowResponse])
def replace_store_availability(
    store_id: UUID,
    request: StoreAvailabilityRequest,
    actor: Actor = Depends(require_owner),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[WindowResponse]:
    """Replace the store's weekly windows. Overlapping windows on one day are rejected (422)."""
    windows = availability_service.replace_store_availability(
        actor, store_id, [w.to_window() for w in request.availability]
    )
    return [WindowResponse.model_validate(w) for w in windows]


@employee_router.get("/{employee_id}/availability/{store_id}", response_model=List[WindowResponse])
def get_employee_availability(
    employee_id: UUID,
    store_id: UUID,
    actor: Actor = Depends(require_owner),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[WindowResponse]:
    windows = availability_service.list_employee_availability(actor, employee_id, store_id)
    return [WindowResponse.model_validate(w) for w in windows]


@employee_router.put("/{employee_id}/availability", response_model=List[WindowResponse])
def replace_employee_availability(
    employee_id: UUID,
    request: EmployeeAvailabilityRequest,
    actor: Actor = Depends(require_owner),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[WindowResponse]:
    windows = availability_service.replace_employee_availability(
        actor, employee_id, request.store_id, [w.to_window() for w in request.availability]
    )
    return [WindowResponse.model_validate(w) for w in windows]
