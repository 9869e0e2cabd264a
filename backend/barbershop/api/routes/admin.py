"""
Admin routes - booking maintenance and customer no-show management.
"""
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from barbershop.api.dependencies import get_lifecycle_service, get_no_show_service, require_roles
from barbershop.api.middleware.error_handler import raise_for_failure
from barbershop.models.users import UserRole
from barbershop.services.lifecycle_service import AppointmentLifecycleService
from barbershop.services.no_show_policy import NoShowService
from barbershop.services.types import NoShowStatus, StaleCleanupResult, SweepResult


router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles(UserRole.ADMIN))],
)


class NoShowResetResponse(BaseModel):
    customer_id: UUID
    previous_count: int
    count: int = 0


@router.post("/no-show-sweep", response_model=SweepResult)
def run_no_show_sweep(
    service: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> SweepResult:
    return service.run_no_show_sweep()


@router.post("/stale-bookings/cleanup", response_model=StaleCleanupResult)
def cleanup_stale_bookings(
    service: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> StaleCleanupResult:
    return service.cancel_stale_bookings()


@router.get("/customers/{customer_id}/no-shows", response_model=NoShowStatus)
def get_no_show_status(
    customer_id: UUID,
    service: NoShowService = Depends(get_no_show_service),
) -> NoShowStatus:
    return raise_for_failure(service.get_status(customer_id))


@router.post("/customers/{customer_id}/no-shows/reset", response_model=NoShowResetResponse)
def reset_no_shows(
    customer_id: UUID,
    service: NoShowService = Depends(get_no_show_service),
) -> NoShowResetResponse:
    previous = raise_for_failure(service.reset(customer_id))
    return NoShowResetResponse(customer_id=customer_id, previous_count=previous)
