"""
Payment provider webhooks.

Handles:
- payment_intent.succeeded: payment PAID, appointment CONFIRMED
- payment_intent.payment_failed: payment FAILED
Other event types are acknowledged and ignored.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from barbershop.api.dependencies import get_gateway, get_lifecycle_service
from barbershop.api.middleware.error_handler import BadRequestException, raise_for_failure
from barbershop.lib.logging import get_logger
from barbershop.services.lifecycle_service import AppointmentLifecycleService
from barbershop.services.payment_gateway import PaymentGateway, WebhookVerificationError


logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    gateway: PaymentGateway = Depends(get_gateway),
    lifecycle: AppointmentLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    payload = await request.body()
    try:
        event = gateway.parse_webhook(payload, stripe_signature)
    except WebhookVerificationError as e:
        logger.warning(f"Rejected webhook: {e.message}")
        raise BadRequestException(e.message)

    if event.type == "payment_intent.succeeded":
        result = raise_for_failure(lifecycle.confirm_payment(event.payment_reference_id))
        return {"received": True, "applied": result.applied}
    if event.type == "payment_intent.payment_failed":
        result = raise_for_failure(lifecycle.mark_payment_failed(event.payment_reference_id))
        return {"received": True, "applied": result.applied}

    logger.info(f"Ignoring webhook event {event.type}")
    return {"received": True, "applied": False}
