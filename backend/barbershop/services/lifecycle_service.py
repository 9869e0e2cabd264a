"""Appointment lifecycle state machine.

    BOOKED ──► CONFIRMED ──► CANCELLED | COMPLETED | NO_SHOW
       └──────────────────► CANCELLED | COMPLETED | NO_SHOW

CANCELLED, COMPLETED and NO_SHOW are terminal. Transitions are committed
with a status guard so a concurrent transition is detected instead of
silently overwritten. Refunds are issued before the cancellation commits.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from barbershop.lib.db import SessionLocal, is_serialization_failure, session_scope
from barbershop.lib.logging import get_logger, log_with_context
from barbershop.lib.timeutils import difference_in_hours, utc_now
from barbershop.models.appointments import Appointment, AppointmentStatus
from barbershop.models.payments import Payment, PaymentStatus
from barbershop.services.access import Principal, can_access_appointment, can_manage_appointment
from barbershop.services.no_show_policy import increment_no_show_flag, is_blocked
from barbershop.services.payment_gateway import PaymentGateway, PaymentGatewayError
from barbershop.services.types import (
    AppointmentOut,
    BookingConfig,
    CancellationOut,
    ErrorCode,
    NoShowOut,
    PaymentConfirmation,
    ServiceResult,
    StaleCleanupResult,
    SweepDetail,
    SweepFailure,
    SweepResult,
    failure,
    success,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]

STALE_BOOKING_REASON = "Automatic cancellation: payment not completed within {minutes} minutes"


class AppointmentLifecycleService:
    """State transitions after an appointment has been booked.

    Args:
        gateway: Payment provider used for refunds
        session_factory: sessionmaker each operation opens its own session from
        config: Lifecycle policy (refund cutoff, grace period, ...)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[BookingConfig] = None,
        clock: Clock = utc_now,
    ):
        self.gateway = gateway
        self.session_factory = session_factory or SessionLocal
        self.config = config or BookingConfig.from_settings()
        self.clock = clock

    def _store_conflict(self, error: DBAPIError, operation: str, **context) -> ServiceResult:
        """Serialization failures and deadlocks become CONCURRENT_MODIFICATION; anything else propagates."""
        if not is_serialization_failure(error):
            raise error
        log_with_context(
            logger, "error" if "refunded_payment_reference_id" in context else "warning",
            f"{operation} aborted by a concurrent transaction",
            error=str(error.orig), **context,
        )
        return failure(
            ErrorCode.CONCURRENT_MODIFICATION,
            "Appointment was modified concurrently, please retry",
        )

    # Payment callbacks

    def confirm_payment(self, payment_reference_id: str) -> ServiceResult[PaymentConfirmation]:
        """
        Payment succeeded: mark it PAID and confirm a BOOKED appointment.
        Repeated deliveries of the same callback change nothing.
        """
        now = self.clock()
        try:
            with session_scope(self.session_factory) as session:
                appointment_id = session.execute(
                    select(Payment.appointment_id)
                    .where(Payment.provider_payment_id == payment_reference_id)
                ).scalar_one_or_none()
                if appointment_id is None:
                    logger.warning(f"Payment success for unknown reference {payment_reference_id}")
                    return success(PaymentConfirmation(payment_reference_id=payment_reference_id, applied=False))

                # Appointment row first, then payment: same order as cancellation
                appointment = session.get(Appointment, appointment_id, with_for_update=True)
                payment = session.execute(
                    select(Payment)
                    .where(Payment.provider_payment_id == payment_reference_id)
                    .with_for_update()
                ).scalar_one()
                if payment.status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
                    logger.info(f"Payment {payment_reference_id} already {payment.status.value}, skipping")
                    return success(PaymentConfirmation(
                        payment_reference_id=payment_reference_id,
                        applied=False,
                        payment_status=payment.status,
                        appointment_id=appointment.id,
                        appointment_status=appointment.status,
                    ))

                payment.status = PaymentStatus.PAID
                payment.updated_at = now
                if appointment.status == AppointmentStatus.BOOKED:
                    appointment.status = AppointmentStatus.CONFIRMED
                    appointment.updated_at = now
                else:
                    log_with_context(
                        logger, "warning", "Payment captured for an appointment that is no longer BOOKED",
                        payment_reference_id=payment_reference_id,
                        appointment_id=str(appointment.id),
                        appointment_status=appointment.status.value,
                    )

                confirmation = PaymentConfirmation(
                    payment_reference_id=payment_reference_id,
                    applied=True,
                    payment_status=payment.status,
                    appointment_id=appointment.id,
                    appointment_status=appointment.status,
                )
        except DBAPIError as e:
            return self._store_conflict(e, "Payment confirmation", payment_reference_id=payment_reference_id)

        logger.info(f"Payment {payment_reference_id} confirmed for appointment {confirmation.appointment_id}")
        return success(confirmation)

    def mark_payment_failed(self, payment_reference_id: str) -> ServiceResult[PaymentConfirmation]:
        """Payment failed: REQUIRES_PAYMENT becomes FAILED, anything else is left alone."""
        now = self.clock()
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(Payment)
                .where(
                    Payment.provider_payment_id == payment_reference_id,
                    Payment.status == PaymentStatus.REQUIRES_PAYMENT,
                )
                .values(status=PaymentStatus.FAILED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount > 0

        if applied:
            logger.info(f"Payment {payment_reference_id} marked FAILED")
        return success(PaymentConfirmation(
            payment_reference_id=payment_reference_id,
            applied=applied,
            payment_status=PaymentStatus.FAILED if applied else None,
        ))

    # Customer / staff transitions

    def cancel_appointment(
        self,
        appointment_id: UUID,
        actor: Principal,
        reason: Optional[str] = None,
    ) -> ServiceResult[CancellationOut]:
        """
        Cancel an upcoming appointment.

        A PAID deposit is refunded when cancelling at least the refund cutoff
        ahead of the start; otherwise it is forfeited. The refund happens
        before the cancellation commits, so a failed refund leaves the
        appointment untouched.
        """
        now = self.clock()

        session = self.session_factory()
        try:
            appointment = session.get(Appointment, appointment_id)
            if appointment is None:
                return failure(ErrorCode.APPOINTMENT_NOT_FOUND, "Appointment not found", appointment_id=str(appointment_id))
            if not can_access_appointment(session, actor, appointment):
                return failure(ErrorCode.FORBIDDEN, "Not allowed to cancel this appointment")
            if appointment.status.is_terminal:
                return failure(
                    ErrorCode.INVALID_APPOINTMENT_STATE,
                    f"Cannot cancel an appointment that is {appointment.status.value}",
                    status=appointment.status.value,
                )
            if now >= appointment.start_time:
                return failure(
                    ErrorCode.CANCELLATION_WINDOW_PASSED,
                    "Cannot cancel an appointment that has already started",
                )
            snapshot_status = appointment.status
            start_time = appointment.start_time
            payment = session.execute(
                select(Payment).where(Payment.appointment_id == appointment_id)
            ).scalar_one_or_none()
        finally:
            session.close()

        hours_until_start = difference_in_hours(start_time, now)
        refund_due = (
            payment is not None
            and payment.status == PaymentStatus.PAID
            and hours_until_start >= self.config.refund_cutoff_hours
        )

        if refund_due:
            try:
                self.gateway.refund(payment.provider_payment_id)
            except PaymentGatewayError as e:
                log_with_context(
                    logger, "error", "Refund failed, appointment not cancelled",
                    appointment_id=str(appointment_id),
                    payment_reference_id=payment.provider_payment_id,
                    error=e.message,
                )
                return failure(
                    ErrorCode.GATEWAY_ERROR,
                    "Failed to process refund",
                    provider_code=e.provider_code,
                )

        try:
            with session_scope(self.session_factory) as session:
                result = session.execute(
                    update(Appointment)
                    .where(Appointment.id == appointment_id, Appointment.status == snapshot_status)
                    .values(
                        status=AppointmentStatus.CANCELLED,
                        cancellation_reason=reason,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    if refund_due:
                        log_with_context(
                            logger, "error", "Refund issued but appointment changed before cancellation",
                            appointment_id=str(appointment_id),
                            payment_reference_id=payment.provider_payment_id,
                        )
                    return failure(
                        ErrorCode.CONCURRENT_MODIFICATION,
                        "Appointment was modified concurrently, please retry",
                    )

                payment_status = payment.status if payment else None
                if refund_due:
                    session.execute(
                        update(Payment)
                        .where(Payment.id == payment.id)
                        .values(status=PaymentStatus.REFUNDED, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    payment_status = PaymentStatus.REFUNDED

                cancelled = AppointmentOut.model_validate(session.get(Appointment, appointment_id))
        except DBAPIError as e:
            context = {"appointment_id": str(appointment_id)}
            if refund_due:
                context["refunded_payment_reference_id"] = payment.provider_payment_id
            return self._store_conflict(e, "Cancellation", **context)

        log_with_context(
            logger, "info", "Appointment cancelled",
            appointment_id=str(appointment_id), refund_issued=refund_due,
            cancelled_by=str(actor.user_id),
        )
        return success(CancellationOut(
            appointment=cancelled,
            refund_issued=refund_due,
            late_cancellation=hours_until_start < self.config.late_cancellation_hours,
            payment_status=payment_status,
        ))

    def complete_appointment(self, appointment_id: UUID, actor: Principal) -> ServiceResult[AppointmentOut]:
        """Mark an appointment COMPLETED. Staff only."""
        now = self.clock()
        with session_scope(self.session_factory) as session:
            appointment = session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                return failure(ErrorCode.APPOINTMENT_NOT_FOUND, "Appointment not found", appointment_id=str(appointment_id))
            if not can_manage_appointment(session, actor, appointment):
                return failure(ErrorCode.FORBIDDEN, "Only staff of this appointment can complete it")
            if appointment.status.is_terminal:
                return failure(
                    ErrorCode.APPOINTMENT_ALREADY_COMPLETED,
                    f"Appointment is already {appointment.status.value}",
                    status=appointment.status.value,
                )
            if appointment.status == AppointmentStatus.BOOKED:
                logger.warning(f"Completing appointment {appointment_id} whose deposit was never confirmed")

            appointment.status = AppointmentStatus.COMPLETED
            appointment.updated_at = now
            session.flush()
            completed = AppointmentOut.model_validate(appointment)

        logger.info(f"Appointment {appointment_id} completed")
        return success(completed)

    def mark_no_show(self, appointment_id: UUID, actor: Principal) -> ServiceResult[NoShowOut]:
        """
        Mark a started appointment NO_SHOW and add one to the customer's
        no-show count. The payment is not touched.
        """
        now = self.clock()
        with session_scope(self.session_factory) as session:
            appointment = session.get(Appointment, appointment_id, with_for_update=True)
            if appointment is None:
                return failure(ErrorCode.APPOINTMENT_NOT_FOUND, "Appointment not found", appointment_id=str(appointment_id))
            if not can_manage_appointment(session, actor, appointment):
                return failure(ErrorCode.FORBIDDEN, "Only staff of this appointment can mark a no-show")
            if appointment.status.is_terminal:
                return failure(
                    ErrorCode.INVALID_APPOINTMENT_STATE,
                    f"Cannot mark a {appointment.status.value} appointment as no-show",
                    status=appointment.status.value,
                )
            if now < appointment.start_time:
                return failure(
                    ErrorCode.BOOKING_IN_PAST,
                    "Cannot mark an appointment as no-show before it starts",
                    start_time=appointment.start_time.isoformat(),
                )

            appointment.status = AppointmentStatus.NO_SHOW
            appointment.updated_at = now
            session.flush()
            count = increment_no_show_flag(session, appointment.customer_id, now)
            marked = AppointmentOut.model_validate(appointment)

        log_with_context(
            logger, "info", "Appointment marked as no-show",
            appointment_id=str(appointment_id), customer_id=str(marked.customer_id),
            no_show_count=count,
        )
        return success(NoShowOut(
            appointment=marked,
            no_show_count=count,
            customer_blocked=is_blocked(count, self.config.max_no_show_count),
        ))

    # Batch jobs

    def run_no_show_sweep(self) -> SweepResult:
        """
        Mark every CONFIRMED appointment whose grace period has passed as
        NO_SHOW, one transaction per appointment. Running it again over the
        same data marks nothing.
        """
        now = self.clock()
        cutoff = now - timedelta(minutes=self.config.no_show_grace_period_minutes)

        session = self.session_factory()
        try:
            candidates = session.execute(
                select(Appointment.id, Appointment.customer_id, Appointment.start_time)
                .where(
                    Appointment.status == AppointmentStatus.CONFIRMED,
                    Appointment.start_time < cutoff,
                )
                .order_by(Appointment.start_time)
            ).all()
        finally:
            session.close()

        details = []
        failed = []
        for row in candidates:
            try:
                with session_scope(self.session_factory) as session:
                    result = session.execute(
                        update(Appointment)
                        .where(
                            Appointment.id == row.id,
                            Appointment.status == AppointmentStatus.CONFIRMED,
                        )
                        .values(status=AppointmentStatus.NO_SHOW, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        continue
                    count = increment_no_show_flag(session, row.customer_id, now)
            except SQLAlchemyError as e:
                logger.error(f"No-show sweep failed for appointment {row.id}: {e}", exc_info=True)
                failed.append(SweepFailure(appointment_id=row.id, error=str(e)))
                continue

            details.append(SweepDetail(
                appointment_id=row.id,
                customer_id=row.customer_id,
                start_time=row.start_time,
                no_show_count=count,
            ))

        log_with_context(
            logger, "info", "No-show sweep finished",
            scanned=len(candidates), marked=len(details), failed=len(failed),
        )
        return SweepResult(
            scanned=len(candidates),
            marked_count=len(details),
            details=details,
            failed=failed,
        )

    def cancel_stale_bookings(self) -> StaleCleanupResult:
        """
        Cancel BOOKED appointments whose deposit was not paid within the
        stale-booking window, failing any pending payment.
        """
        now = self.clock()
        cutoff = now - timedelta(minutes=self.config.stale_booking_minutes)
        reason = STALE_BOOKING_REASON.format(minutes=self.config.stale_booking_minutes)

        session = self.session_factory()
        try:
            candidates = session.execute(
                select(Appointment.id, Payment.id.label("payment_id"))
                .outerjoin(Payment, Payment.appointment_id == Appointment.id)
                .where(
                    Appointment.status == AppointmentStatus.BOOKED,
                    Appointment.created_at < cutoff,
                    (Payment.id.is_(None)) | (Payment.status == PaymentStatus.REQUIRES_PAYMENT),
                )
            ).all()
        finally:
            session.close()

        cancelled = []
        for row in candidates:
            try:
                with session_scope(self.session_factory) as session:
                    result = session.execute(
                        update(Appointment)
                        .where(
                            Appointment.id == row.id,
                            Appointment.status == AppointmentStatus.BOOKED,
                        )
                        .values(
                            status=AppointmentStatus.CANCELLED,
                            cancellation_reason=reason,
                            updated_at=now,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        continue
                    if row.payment_id is not None:
                        session.execute(
                            update(Payment)
                            .where(
                                Payment.id == row.payment_id,
                                Payment.status == PaymentStatus.REQUIRES_PAYMENT,
                            )
                            .values(status=PaymentStatus.FAILED, updated_at=now)
                            .execution_options(synchronize_session=False)
                        )
            except SQLAlchemyError as e:
                logger.error(f"Stale booking cleanup failed for appointment {row.id}: {e}", exc_info=True)
                continue
            cancelled.append(row.id)

        logger.info(f"Stale booking cleanup cancelled {len(cancelled)} of {len(candidates)} appointments")
        return StaleCleanupResult(scanned=len(candidates), cancelled=cancelled)
