"""No-show tracking and booking block policy.

A customer whose no-show count reaches the configured maximum cannot create
new appointments until an admin resets the counter.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from barbershop.lib.logging import get_logger, log_with_context
from barbershop.models.no_show_flags import NoShowFlag
from barbershop.models.users import User
from barbershop.services.types import (
    BookingConfig,
    ErrorCode,
    NoShowStatus,
    ServiceResult,
    failure,
    success,
)

logger = get_logger(__name__)


def is_blocked(count: int, max_no_show_count: int = 3) -> bool:
    return count >= max_no_show_count


def get_no_show_count(session: Session, customer_id: UUID) -> int:
    count = session.execute(
        select(NoShowFlag.count).where(NoShowFlag.customer_id == customer_id)
    ).scalar_one_or_none()
    return count or 0


def increment_no_show_flag(session: Session, customer_id: UUID, now: datetime) -> int:
    """
    Add one no-show to the customer's counter inside the caller's transaction.

    Creates the flag row on first use. When another transaction creates it
    first, the insert is rolled back to its savepoint and the increment
    is applied to the existing row instead.

    Returns:
        The new count
    """
    increment = (
        update(NoShowFlag)
        .where(NoShowFlag.customer_id == customer_id)
        .values(count=NoShowFlag.count + 1, last_flagged_at=now)
        .execution_options(synchronize_session=False)
    )
    if session.execute(increment).rowcount == 0:
        try:
            with session.begin_nested():
                session.add(NoShowFlag(customer_id=customer_id, count=1, last_flagged_at=now))
        except IntegrityError:
            session.execute(increment)

    return session.execute(
        select(NoShowFlag.count).where(NoShowFlag.customer_id == customer_id)
    ).scalar_one()


class NoShowService:
    """Read and reset customer no-show counters."""

    def __init__(self, session: Session, config: Optional[BookingConfig] = None):
        self.session = session
        self.config = config or BookingConfig.from_settings()

    def is_customer_blocked(self, customer_id: UUID) -> bool:
        return is_blocked(
            get_no_show_count(self.session, customer_id),
            self.config.max_no_show_count,
        )

    def get_status(self, customer_id: UUID) -> ServiceResult[NoShowStatus]:
        if self.session.get(User, customer_id) is None:
            return failure(ErrorCode.CUSTOMER_NOT_FOUND, "Customer not found", customer_id=str(customer_id))

        flag = self.session.execute(
            select(NoShowFlag).where(NoShowFlag.customer_id == customer_id)
        ).scalar_one_or_none()
        count = flag.count if flag else 0
        return success(NoShowStatus(
            customer_id=customer_id,
            count=count,
            last_flagged_at=flag.last_flagged_at if flag else None,
            blocked=is_blocked(count, self.config.max_no_show_count),
        ))

    def reset(self, customer_id: UUID) -> ServiceResult[int]:
        """
        Zero the counter and clear last_flagged_at.

        Returns:
            The count before the reset
        """
        if self.session.get(User, customer_id) is None:
            return failure(ErrorCode.CUSTOMER_NOT_FOUND, "Customer not found", customer_id=str(customer_id))

        flag = self.session.execute(
            select(NoShowFlag).where(NoShowFlag.customer_id == customer_id).with_for_update()
        ).scalar_one_or_none()
        previous = 0
        if flag is not None:
            previous = flag.count
            flag.count = 0
            flag.last_flagged_at = None
        self.session.commit()

        log_with_context(
            logger, "info", "No-show count reset",
            customer_id=str(customer_id), previous_count=previous,
        )
        return success(previous)
