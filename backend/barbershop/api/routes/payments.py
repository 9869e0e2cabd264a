"""
Payment routes - deposit payment intents.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status

from barbershop.api.dependencies import get_current_principal, get_payment_service
from barbershop.api.middleware.error_handler import raise_for_failure
from barbershop.services.access import Principal
from barbershop.services.payment_service import PaymentService
from barbershop.services.types import PaymentIntentOut


router = APIRouter(tags=["payments"])


@router.post(
    "/appointments/{appointment_id}/pay",
    response_model=PaymentIntentOut,
    status_code=status.HTTP_201_CREATED,
)
def create_payment_intent(
    appointment_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentOut:
    """Create the deposit payment for a BOOKED appointment."""
    return raise_for_failure(service.create_payment_intent(appointment_id, principal))
