"""Deposit payments for booked appointments."""
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from barbershop.lib.db import SessionLocal, session_scope
from barbershop.lib.logging import get_logger, log_with_context
from barbershop.lib.timeutils import utc_now
from barbershop.models.appointments import Appointment, AppointmentStatus
from barbershop.models.payments import Payment, PaymentStatus
from barbershop.services.access import Principal, can_access_appointment
from barbershop.services.payment_gateway import PaymentGateway, PaymentGatewayError
from barbershop.services.types import (
    BookingConfig,
    ErrorCode,
    PaymentIntentOut,
    ServiceResult,
    failure,
    success,
)

logger = get_logger(__name__)


class PaymentService:
    def __init__(
        self,
        gateway: PaymentGateway,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[BookingConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.gateway = gateway
        self.session_factory = session_factory or SessionLocal
        self.config = config or BookingConfig.from_settings()
        self.clock = clock

    def create_payment_intent(self, appointment_id: UUID, actor: Principal) -> ServiceResult[PaymentIntentOut]:
        """
        Start the deposit payment for a BOOKED appointment.

        The gateway is called outside any transaction; the Payment row is
        written afterwards in REQUIRES_PAYMENT and confirmed by the webhook.
        """
        session = self.session_factory()
        try:
            appointment = session.get(Appointment, appointment_id)
            if appointment is None:
                return failure(ErrorCode.APPOINTMENT_NOT_FOUND, "Appointment not found", appointment_id=str(appointment_id))
            if not can_access_appointment(session, actor, appointment):
                return failure(ErrorCode.FORBIDDEN, "Not allowed to pay for this appointment")
            if appointment.status != AppointmentStatus.BOOKED:
                return failure(
                    ErrorCode.INVALID_APPOINTMENT_STATE,
                    f"Cannot pay for an appointment that is {appointment.status.value}",
                    status=appointment.status.value,
                )
            existing = session.execute(
                select(Payment.id).where(Payment.appointment_id == appointment_id)
            ).scalar_one_or_none()
            if existing is not None:
                return failure(
                    ErrorCode.PAYMENT_ALREADY_EXISTS,
                    "A payment already exists for this appointment",
                    payment_id=str(existing),
                )
            customer_id = appointment.customer_id
        finally:
            session.close()

        metadata = {
            "appointment_id": str(appointment_id),
            "customer_id": str(customer_id),
        }
        try:
            intent = self.gateway.create_payment_intent(
                self.config.deposit_amount_cents,
                self.config.payment_currency,
                metadata,
                idempotency_key=f"deposit-{appointment_id}",
            )
        except PaymentGatewayError as e:
            return failure(ErrorCode.GATEWAY_ERROR, "Failed to create payment", provider_code=e.provider_code)

        now = self.clock()
        try:
            with session_scope(self.session_factory) as session:
                payment = Payment(
                    appointment_id=appointment_id,
                    customer_id=customer_id,
                    provider_payment_id=intent.id,
                    amount_cents=self.config.deposit_amount_cents,
                    currency=self.config.payment_currency,
                    status=PaymentStatus.REQUIRES_PAYMENT,
                    created_at=now,
                    updated_at=now,
                )
                session.add(payment)
                session.flush()
                created = PaymentIntentOut(
                    payment_id=payment.id,
                    appointment_id=appointment_id,
                    provider_payment_id=intent.id,
                    client_secret=intent.client_secret,
                    amount_cents=payment.amount_cents,
                    currency=payment.currency,
                    status=payment.status,
                )
        except IntegrityError:
            return failure(
                ErrorCode.PAYMENT_ALREADY_EXISTS,
                "A payment already exists for this appointment",
            )

        log_with_context(
            logger, "info", "Deposit payment created",
            appointment_id=str(appointment_id), payment_reference_id=intent.id,
            amount_cents=created.amount_cents,
        )
        return success(created)
