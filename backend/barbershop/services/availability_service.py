"""Availability resolver.

Computes bookable slots for a barber over a date range:
1. Resolve rules per day (date exceptions replace weekly rules)
2. Clip open windows to the current time
3. Subtract active appointments widened by the buffer
4. Quantize the remaining free windows into fixed-length slots

Read-only: nothing here writes to the database.
"""
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from barbershop.lib.logging import get_logger
from barbershop.lib.timeutils import (
    TimeRange,
    add_minutes,
    end_of_day,
    get_shop_timezone,
    iter_days,
    local_date,
    start_of_day,
    utc_now,
)
from barbershop.models.appointments import Appointment, ACTIVE_STATUSES
from barbershop.models.availability import Availability
from barbershop.models.barbers import Barber
from barbershop.models.services import Service
from barbershop.services import availability_rules as rules_math
from barbershop.services.types import (
    AvailabilityDaySummary,
    BookingConfig,
    DailySlots,
    ErrorCode,
    Failure,
    ServiceResult,
    TimeSlot,
    failure,
    success,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def load_rules(session: Session, barber_id: UUID) -> List[Availability]:
    return list(
        session.execute(select(Availability).where(Availability.barber_id == barber_id)).scalars()
    )


def load_active_appointments(
    session: Session,
    barber_id: UUID,
    range_start: datetime,
    range_end: datetime,
    exclude_id: Optional[UUID] = None,
) -> List[TimeRange]:
    """Active appointments of the barber intersecting [range_start, range_end)."""
    stmt = select(Appointment.start_time, Appointment.end_time).where(
        Appointment.barber_id == barber_id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.start_time < range_end,
        Appointment.end_time > range_start,
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    stmt = stmt.order_by(Appointment.start_time)
    return [TimeRange(row.start_time, row.end_time) for row in session.execute(stmt)]


def check_barber(session: Session, barber_id: UUID) -> Union[Barber, Failure]:
    barber = session.get(Barber, barber_id)
    if barber is None:
        return failure(ErrorCode.BARBER_NOT_FOUND, "Barber not found", barber_id=str(barber_id))
    if not barber.active:
        return failure(
            ErrorCode.BARBER_NOT_ACTIVE,
            "Barber is not currently accepting appointments",
            barber_id=str(barber_id),
        )
    return barber


def check_service(session: Session, barber: Barber, service_id: UUID) -> Union[Service, Failure]:
    """
    Service must exist and be offered by the barber: either scoped to this
    barber or shop-wide within the barber's shop.
    """
    service = session.get(Service, service_id)
    if service is None:
        return failure(ErrorCode.SERVICE_NOT_FOUND, "Service not found", service_id=str(service_id))
    offered = (
        service.barber_id == barber.id
        if service.barber_id is not None
        else service.shop_id == barber.shop_id
    )
    if not offered:
        return failure(
            ErrorCode.SERVICE_NOT_FOUND,
            "Service is not offered by this barber",
            service_id=str(service_id),
            barber_id=str(barber.id),
        )
    return service


class AvailabilityService:
    """Slot computation for one barber at a time.

    Args:
        session: SQLAlchemy session used for reads only
        config: Scheduling policy (buffer, interval, timezone)
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        session: Session,
        config: Optional[BookingConfig] = None,
        clock: Clock = utc_now,
    ):
        self.session = session
        self.config = config or BookingConfig.from_settings()
        self.clock = clock
        self.tz = get_shop_timezone(self.config.shop_timezone)

    def open_windows_for(self, barber_id: UUID, day: date) -> List[TimeRange]:
        """Open windows of one day with no clipping and no appointments removed."""
        return rules_math.open_windows(load_rules(self.session, barber_id), day, self.tz)

    def _free_windows_by_day(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        now: datetime,
    ) -> Dict[date, List[TimeRange]]:
        today = local_date(now, self.tz)
        first_day = max(start_date, today)
        if first_day > end_date:
            return {}

        buffer = self.config.buffer_minutes
        rules = load_rules(self.session, barber_id)
        appointments = load_active_appointments(
            self.session,
            barber_id,
            add_minutes(start_of_day(first_day, self.tz), -buffer),
            add_minutes(end_of_day(end_date, self.tz), buffer),
        )

        result = {}
        for day in iter_days(first_day, end_date):
            windows = rules_math.clip_to(rules_math.open_windows(rules, day, self.tz), now)
            if not windows:
                continue
            result[day] = rules_math.free_windows(windows, appointments, buffer)
        return result

    def _validate(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        service_id: Optional[UUID],
    ) -> Union[int, Failure]:
        """Checks shared by every listing operation; returns the slot duration."""
        if start_date >= end_date:
            return failure(
                ErrorCode.INVALID_DATE_RANGE,
                "start_date must be before end_date",
                start_date=start_date.isoformat(),
                end_date=end_date.isoformat(),
            )
        barber = check_barber(self.session, barber_id)
        if isinstance(barber, Failure):
            return barber
        if service_id is None:
            return self.config.default_slot_duration_minutes
        service = check_service(self.session, barber, service_id)
        if isinstance(service, Failure):
            return service
        return service.duration_minutes

    def get_available_windows(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
    ) -> ServiceResult[Dict[date, List[TimeRange]]]:
        """Free windows per day, before slot quantization."""
        checked = self._validate(barber_id, start_date, end_date, None)
        if isinstance(checked, Failure):
            return checked
        windows = self._free_windows_by_day(barber_id, start_date, end_date, self.clock())
        return success({day: w for day, w in windows.items() if w})

    def get_bookable_slots(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        service_duration_minutes: int,
        slot_interval_minutes: Optional[int] = None,
    ) -> ServiceResult[List[DailySlots]]:
        """Slots of an explicit duration; days without a slot are omitted."""
        if service_duration_minutes <= 0:
            raise ValueError("service_duration_minutes must be positive")
        interval = self.config.slot_interval_minutes if slot_interval_minutes is None else slot_interval_minutes
        if interval <= 0:
            raise ValueError("slot_interval_minutes must be positive")
        checked = self._validate(barber_id, start_date, end_date, None)
        if isinstance(checked, Failure):
            return checked
        return success(
            self._slots(barber_id, start_date, end_date, service_duration_minutes, interval)
        )

    def compute_bookable_slots(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        service_id: Optional[UUID] = None,
    ) -> ServiceResult[List[DailySlots]]:
        """
        Bookable slots for ``[start_date, end_date]`` (both inclusive).

        Dates before today are clamped to today. Without a service the
        default slot duration is used.
        """
        duration = self._validate(barber_id, start_date, end_date, service_id)
        if isinstance(duration, Failure):
            logger.info(
                f"Slot computation rejected for barber {barber_id}: {duration.code.value}"
            )
            return duration
        return success(
            self._slots(barber_id, start_date, end_date, duration, self.config.slot_interval_minutes)
        )

    def _slots(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        duration: int,
        interval: int,
    ) -> List[DailySlots]:
        days = []
        free_by_day = self._free_windows_by_day(barber_id, start_date, end_date, self.clock())
        for day, windows in sorted(free_by_day.items()):
            slots = []
            for window in rules_math.long_enough(windows, duration):
                slots.extend(rules_math.quantize(window, duration, interval, self.tz))
            if slots:
                days.append(
                    DailySlots(
                        date=day,
                        slots=[TimeSlot(start_time=s.start, end_time=s.end) for s in slots],
                    )
                )
        return days

    def get_next_available_slot(
        self,
        barber_id: UUID,
        service_id: Optional[UUID] = None,
        max_days_ahead: int = 30,
    ) -> ServiceResult[Optional[TimeSlot]]:
        """First bookable slot within the next ``max_days_ahead`` days, or None."""
        today = local_date(self.clock(), self.tz)
        result = self.compute_bookable_slots(
            barber_id, today, today + timedelta(days=max_days_ahead), service_id
        )
        if not result.ok:
            return result
        for day in result.data:
            if day.slots:
                return success(day.slots[0])
        return success(None)

    def is_slot_available(
        self,
        barber_id: UUID,
        start_time: datetime,
        duration_minutes: int,
    ) -> bool:
        """
        True when [start_time, start_time + duration) lies inside a free window.
        Off-grid start times are accepted.
        """
        candidate = TimeRange(start_time, add_minutes(start_time, duration_minutes))
        now = self.clock()
        if candidate.start <= now:
            return False
        barber = check_barber(self.session, barber_id)
        if isinstance(barber, Failure):
            return False
        day = local_date(start_time, self.tz)
        free = self._free_windows_by_day(barber_id, day, day, now).get(day, [])
        return rules_math.fits_within(free, candidate)

    def get_availability_summary(
        self,
        barber_id: UUID,
        start_date: date,
        end_date: date,
        service_id: Optional[UUID] = None,
    ) -> ServiceResult[List[AvailabilityDaySummary]]:
        """One entry per day of the (clamped) range, including days without slots."""
        result = self.compute_bookable_slots(barber_id, start_date, end_date, service_id)
        if not result.ok:
            return result

        counts = {day.date: len(day.slots) for day in result.data}
        first_day = max(start_date, local_date(self.clock(), self.tz))
        return success([
            AvailabilityDaySummary(
                date=day,
                has_availability=counts.get(day, 0) > 0,
                slot_count=counts.get(day, 0),
            )
            for day in iter_days(first_day, end_date)
        ])
