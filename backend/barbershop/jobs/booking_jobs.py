"""
Periodic booking maintenance jobs.

- no_show_sweep: marks CONFIRMED appointments past their grace period as NO_SHOW
- stale_booking_cleanup: cancels BOOKED appointments whose deposit was never paid
"""
from typing import Optional

from barbershop.jobs.scheduler import SchedulerManager, get_scheduler, with_advisory_lock
from barbershop.lib.logging import get_logger
from barbershop.lib.settings import settings
from barbershop.services.lifecycle_service import AppointmentLifecycleService
from barbershop.services.payment_gateway import get_payment_gateway
from barbershop.services.types import SweepResult, StaleCleanupResult

logger = get_logger(__name__)

NO_SHOW_SWEEP_JOB_ID = "no_show_sweep"
STALE_BOOKING_JOB_ID = "stale_booking_cleanup"


def _lifecycle_service() -> AppointmentLifecycleService:
    return AppointmentLifecycleService(gateway=get_payment_gateway())


@with_advisory_lock(NO_SHOW_SWEEP_JOB_ID)
def no_show_sweep_job(service: Optional[AppointmentLifecycleService] = None) -> SweepResult:
    result = (service or _lifecycle_service()).run_no_show_sweep()
    if result.failed:
        logger.warning(f"No-show sweep left {len(result.failed)} appointments for the next run")
    return result


@with_advisory_lock(STALE_BOOKING_JOB_ID)
def stale_booking_cleanup_job(service: Optional[AppointmentLifecycleService] = None) -> StaleCleanupResult:
    return (service or _lifecycle_service()).cancel_stale_bookings()


def register_booking_jobs(scheduler: Optional[SchedulerManager] = None) -> SchedulerManager:
    """Add the booking maintenance jobs to the scheduler."""
    scheduler = scheduler or get_scheduler()
    scheduler.add_interval_job(
        no_show_sweep_job,
        NO_SHOW_SWEEP_JOB_ID,
        minutes=settings.no_show_sweep_interval_minutes,
    )
    scheduler.add_interval_job(
        stale_booking_cleanup_job,
        STALE_BOOKING_JOB_ID,
        minutes=settings.stale_booking_sweep_interval_minutes,
    )
    return scheduler
