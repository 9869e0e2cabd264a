"""
Appointment routes.

Provides:
- POST /appointments: book a slot (retried on concurrent modification)
- POST /appointments/validate: dry-run the booking rules
- GET /appointments/me: the caller's appointments
- POST /appointments/{id}/cancel | /complete | /no-show: lifecycle transitions
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from barbershop.api.dependencies import (
    get_booking_service,
    get_current_principal,
    get_lifecycle_service,
    require_roles,
)
from barbershop.api.middleware.error_handler import ForbiddenException, raise_for_failure
from barbershop.lib.logging import get_logger
from barbershop.models.users import UserRole
from barbershop.services.access import Principal
from barbershop.services.booking_service import BookingService
from barbershop.services.lifecycle_service import AppointmentLifecycleService
from barbershop.services.types import AppointmentOut, CancellationOut, NoShowOut, TimeSlot


logger = get_logger(__name__)
router = APIRouter(prefix="/appointments", tags=["appointments"])

staff_only = require_roles(UserRole.BARBER, UserRole.SHOP_OWNER, UserRole.ADMIN)


class BookingRequest(BaseModel):
    barber_id: UUID
    service_id: UUID
    start_time: datetime = Field(description="Slot start, ISO 8601 with offset")
    customer_id: Optional[UUID] = Field(
        default=None,
        description="Admins may book on behalf of a customer; ignored otherwise",
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


def _booking_customer(request: BookingRequest, principal: Principal) -> UUID:
    if principal.role == UserRole.ADMIN and request.customer_id:
        return request.customer_id
    if principal.role != UserRole.CUSTOMER:
        raise ForbiddenException("Only customers can book appointments")
    return principal.user_id


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: BookingRequest,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service),
) -> AppointmentOut:
    customer_id = _booking_customer(request, principal)
    result = service.create_appointment_with_retry(
        barber_id=request.barber_id,
        customer_id=customer_id,
        service_id=request.service_id,
        start_time=request.start_time,
    )
    return raise_for_failure(result)


@router.post("/validate", response_model=TimeSlot)
def validate_appointment(
    request: BookingRequest,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service),
) -> TimeSlot:
    customer_id = _booking_customer(request, principal)
    return raise_for_failure(service.validate_appointment_slot(
        barber_id=request.barber_id,
        customer_id=customer_id,
        service_id=request.service_id,
        start_time=request.start_time,
    ))


@router.get("/me", response_model=List[AppointmentOut])
def my_appointments(
    principal: Principal = Depends(require_roles(UserRole.CUSTOMER)),
    service: BookingService = Depends(get_booking_service),
) -> List[AppointmentOut]:
    return service.list_customer_appointments(principal.user_id)


@router.post("/{appointment_id}/cancel", response_model=CancellationOut)
def cancel_appointment(
    appointment_id: UUID,
    request: Optional[CancelRequest] = None,
    principal: Principal = Depends(get_current_principal),
    service: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> CancellationOut:
    reason = request.reason if request else None
    return raise_for_failure(service.cancel_appointment(appointment_id, principal, reason))


@router.post("/{appointment_id}/complete", response_model=AppointmentOut)
def complete_appointment(
    appointment_id: UUID,
    principal: Principal = Depends(staff_only),
    service: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> AppointmentOut:
    return raise_for_failure(service.complete_appointment(appointment_id, principal))


@router.post("/{appointment_id}/no-show", response_model=NoShowOut)
def mark_no_show(
    appointment_id: UUID,
    principal: Principal = Depends(staff_only),
    service: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> NoShowOut:
    return raise_for_failure(service.mark_no_show(appointment_id, principal))
