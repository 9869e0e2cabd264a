"""Booking transaction engine.

Creates appointments inside a single SERIALIZABLE transaction:
1. Reject starts at or before the transaction's current time
2. Enforce the no-show block
3. Resolve barber, service and customer
4. Require the slot to fit inside one open availability window
5. Require no active appointment within the buffer
6. Insert the BOOKED appointment

Concurrent attempts for the same slot are decided by the database: the
first committer wins and the loser gets CONCURRENT_MODIFICATION or, having
waited for the winner, OVERLAPPING_APPOINTMENT.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from barbershop.lib.db import (
    SessionLocal,
    is_serialization_failure,
    is_statement_timeout,
    session_scope,
)
from barbershop.lib.logging import get_logger, log_with_context
from barbershop.lib.timeutils import (
    TimeRange,
    add_minutes,
    ensure_utc,
    get_shop_timezone,
    local_date,
    utc_now,
)
from barbershop.models.appointments import Appointment, AppointmentStatus
from barbershop.models.services import Service
from barbershop.models.users import User
from barbershop.services import availability_rules as rules_math
from barbershop.services.availability_service import (
    check_barber,
    check_service,
    load_active_appointments,
    load_rules,
)
from barbershop.services.no_show_policy import get_no_show_count, is_blocked
from barbershop.services.types import (
    AppointmentOut,
    BookingConfig,
    ErrorCode,
    Failure,
    ServiceResult,
    TimeSlot,
    failure,
    success,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class _ValidatedSlot:
    service: Service
    slot: TimeRange


def _is_concurrent_modification(result: ServiceResult) -> bool:
    return not result.ok and result.code == ErrorCode.CONCURRENT_MODIFICATION


class BookingService:
    """Appointment creation and customer booking queries.

    Args:
        session_factory: sessionmaker each operation opens its own session from
        config: Scheduling policy
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[BookingConfig] = None,
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory or SessionLocal
        self.config = config or BookingConfig.from_settings()
        self.clock = clock
        self.tz = get_shop_timezone(self.config.shop_timezone)

    def _validate(
        self,
        session: Session,
        now: datetime,
        barber_id: UUID,
        customer_id: UUID,
        service_id: UUID,
        start_time: datetime,
    ) -> Union[_ValidatedSlot, Failure]:
        """Run every booking rule in order; the first failure wins."""
        if start_time <= now:
            return failure(
                ErrorCode.BOOKING_IN_PAST,
                "Cannot book an appointment in the past",
                start_time=start_time.isoformat(),
            )

        no_shows = get_no_show_count(session, customer_id)
        if is_blocked(no_shows, self.config.max_no_show_count):
            return failure(
                ErrorCode.CUSTOMER_BLOCKED,
                "Customer is blocked from booking due to repeated no-shows",
                no_show_count=no_shows,
            )

        barber = check_barber(session, barber_id)
        if isinstance(barber, Failure):
            return barber

        service = check_service(session, barber, service_id)
        if isinstance(service, Failure):
            return service

        if session.get(User, customer_id) is None:
            return failure(ErrorCode.CUSTOMER_NOT_FOUND, "Customer not found", customer_id=str(customer_id))

        slot = TimeRange(start_time, add_minutes(start_time, service.duration_minutes))
        windows = rules_math.open_windows(
            load_rules(session, barber_id), local_date(start_time, self.tz), self.tz
        )
        if not rules_math.fits_within(windows, slot):
            return failure(
                ErrorCode.BARBER_UNAVAILABLE,
                "Requested time is outside the barber's availability",
                start_time=slot.start.isoformat(),
                end_time=slot.end.isoformat(),
            )

        buffer = self.config.buffer_minutes
        nearby = load_active_appointments(
            session, barber_id, add_minutes(slot.start, -buffer), add_minutes(slot.end, buffer)
        )
        if rules_math.conflicts_with(slot, nearby, buffer):
            return failure(
                ErrorCode.OVERLAPPING_APPOINTMENT,
                "Requested time overlaps an existing appointment",
                start_time=slot.start.isoformat(),
                buffer_minutes=buffer,
            )

        return _ValidatedSlot(service=service, slot=slot)

    def create_appointment(
        self,
        barber_id: UUID,
        customer_id: UUID,
        service_id: UUID,
        start_time: datetime,
    ) -> ServiceResult[AppointmentOut]:
        """Validate and insert a BOOKED appointment atomically."""
        start_time = ensure_utc(start_time)
        try:
            with session_scope(
                self.session_factory,
                serializable=True,
                timeout_ms=self.config.booking_transaction_timeout_ms,
            ) as session:
                now = self.clock()
                checked = self._validate(session, now, barber_id, customer_id, service_id, start_time)
                if isinstance(checked, Failure):
                    log_with_context(
                        logger, "info", "Booking rejected",
                        code=checked.code.value, barber_id=str(barber_id),
                        customer_id=str(customer_id), start_time=start_time.isoformat(),
                    )
                    return checked

                appointment = Appointment(
                    barber_id=barber_id,
                    customer_id=customer_id,
                    service_id=service_id,
                    start_time=checked.slot.start,
                    end_time=checked.slot.end,
                    status=AppointmentStatus.BOOKED,
                    created_at=now,
                    updated_at=now,
                )
                session.add(appointment)
                session.flush()
                created = AppointmentOut.model_validate(appointment)
        except IntegrityError as e:
            # Partial unique index on active (barber_id, start_time)
            logger.warning(f"Booking lost a race on insert for barber {barber_id}: {e.orig}")
            return failure(
                ErrorCode.CONCURRENT_MODIFICATION,
                "The slot was taken by a concurrent booking, please retry",
            )
        except DBAPIError as e:
            if is_serialization_failure(e):
                logger.warning(f"Booking serialization failure for barber {barber_id}: {e.orig}")
                return failure(
                    ErrorCode.CONCURRENT_MODIFICATION,
                    "The slot was modified concurrently, please retry",
                )
            if is_statement_timeout(e):
                logger.error(f"Booking transaction timed out for barber {barber_id}", exc_info=True)
                return failure(ErrorCode.INTERNAL_ERROR, "Booking transaction timed out")
            raise

        log_with_context(
            logger, "info", "Appointment booked",
            appointment_id=str(created.id), barber_id=str(barber_id),
            customer_id=str(customer_id), start_time=created.start_time.isoformat(),
        )
        return success(created)

    def create_appointment_with_retry(
        self,
        barber_id: UUID,
        customer_id: UUID,
        service_id: UUID,
        start_time: datetime,
        attempts: int = 3,
    ) -> ServiceResult[AppointmentOut]:
        """
        create_appointment, re-run while it reports CONCURRENT_MODIFICATION.
        Every attempt repeats the full validation.
        """
        retryer = Retrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.05, max=0.5),
            retry=retry_if_result(_is_concurrent_modification),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return retryer(self.create_appointment, barber_id, customer_id, service_id, start_time)

    def validate_appointment_slot(
        self,
        barber_id: UUID,
        customer_id: UUID,
        service_id: UUID,
        start_time: datetime,
    ) -> ServiceResult[TimeSlot]:
        """
        Dry run of the booking rules without inserting anything.
        Not a reservation: a later create_appointment may still fail.
        """
        start_time = ensure_utc(start_time)
        session = self.session_factory()
        try:
            checked = self._validate(
                session, self.clock(), barber_id, customer_id, service_id, start_time
            )
        finally:
            session.close()
        if isinstance(checked, Failure):
            return checked
        return success(TimeSlot(start_time=checked.slot.start, end_time=checked.slot.end))

    def list_customer_appointments(self, customer_id: UUID) -> List[AppointmentOut]:
        """Upcoming appointments soonest first, then past ones most recent first."""
        now = self.clock()
        session = self.session_factory()
        try:
            upcoming = session.execute(
                select(Appointment)
                .where(Appointment.customer_id == customer_id, Appointment.start_time >= now)
                .order_by(Appointment.start_time.asc())
            ).scalars().all()
            past = session.execute(
                select(Appointment)
                .where(Appointment.customer_id == customer_id, Appointment.start_time < now)
                .order_by(Appointment.start_time.desc())
            ).scalars().all()
            return [AppointmentOut.model_validate(a) for a in [*upcoming, *past]]
        finally:
            session.close()
