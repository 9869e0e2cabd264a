"""
Availability routes - public slot listing for a barber.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from barbershop.api.dependencies import get_availability_service
from barbershop.api.middleware.error_handler import raise_for_failure
from barbershop.services.availability_service import AvailabilityService
from barbershop.services.types import AvailabilityDaySummary, DailySlots, TimeSlot


router = APIRouter(prefix="/barbers/{barber_id}/availability", tags=["availability"])


class NextSlotResponse(BaseModel):
    barber_id: UUID
    slot: Optional[TimeSlot] = None


@router.get("", response_model=List[DailySlots])
def list_slots(
    barber_id: UUID,
    start_date: date = Query(..., description="First day (inclusive)"),
    end_date: date = Query(..., description="Last day (inclusive)"),
    service_id: Optional[UUID] = Query(None, description="Service whose duration sizes the slots"),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[DailySlots]:
    """
    Bookable slots per day. Days without a slot are omitted and dates
    before today are clamped to today.
    """
    return raise_for_failure(
        service.compute_bookable_slots(barber_id, start_date, end_date, service_id)
    )


@router.get("/summary", response_model=List[AvailabilityDaySummary])
def availability_summary(
    barber_id: UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service_id: Optional[UUID] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
) -> List[AvailabilityDaySummary]:
    return raise_for_failure(
        service.get_availability_summary(barber_id, start_date, end_date, service_id)
    )


@router.get("/next", response_model=NextSlotResponse)
def next_available_slot(
    barber_id: UUID,
    service_id: Optional[UUID] = Query(None),
    max_days_ahead: int = Query(30, ge=1, le=90),
    service: AvailabilityService = Depends(get_availability_service),
) -> NextSlotResponse:
    slot = raise_for_failure(service.get_next_available_slot(barber_id, service_id, max_days_ahead))
    return NextSlotResponse(barber_id=barber_id, slot=slot)
