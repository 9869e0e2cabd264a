"""
Availability model - recurring weekly hours and date-specific exceptions.
"""
from datetime import date as calendar_date, time
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import Date, Integer, Time, Uuid, ForeignKey, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base


class AvailabilityKind(str, enum.Enum):
    RECURRING = "RECURRING"
    EXCEPTION = "EXCEPTION"


class Availability(Base):
    """
    Availability rule for a barber.

    RECURRING rules apply every week on day_of_week (0 = Sunday).
    EXCEPTION rules apply to one date and replace every recurring rule for
    that date; an exception without times marks a day off.
    """
    __tablename__ = "availability"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    barber_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("barbers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[AvailabilityKind] = mapped_column(
        SQLEnum(AvailabilityKind, name="availability_kind"),
        nullable=False,
        default=AvailabilityKind.RECURRING,
    )

    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    date: Mapped[Optional[calendar_date]] = mapped_column(Date, nullable=True, index=True)
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)",
            name="availability_day_of_week_range",
        ),
        CheckConstraint(
            "(kind = 'RECURRING' AND day_of_week IS NOT NULL AND start_time IS NOT NULL "
            "AND end_time IS NOT NULL) OR (kind = 'EXCEPTION' AND date IS NOT NULL)",
            name="availability_kind_fields",
        ),
    )

    @property
    def is_day_off(self) -> bool:
        return self.start_time is None or self.end_time is None

    def __repr__(self) -> str:
        when = self.date if self.kind == AvailabilityKind.EXCEPTION else self.day_of_week
        return f"<Availability(barber_id={self.barber_id}, kind={self.kind}, when={when})>"
