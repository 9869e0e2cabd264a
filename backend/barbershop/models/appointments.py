"""
Appointment model - a customer's booking of one service with one barber.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Uuid, ForeignKey, Index, CheckConstraint, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base, UTCDateTime


class AppointmentStatus(str, enum.Enum):
    """
    Appointment state machine.
    BOOKED → CONFIRMED → CANCELLED | COMPLETED | NO_SHOW.
    BOOKED may also move straight to CANCELLED, COMPLETED or NO_SHOW.
    """
    BOOKED = "BOOKED"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Statuses that hold a slot on the barber's calendar
ACTIVE_STATUSES = frozenset({AppointmentStatus.BOOKED, AppointmentStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({
    AppointmentStatus.CANCELLED,
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
})

_ACTIVE_PREDICATE = text("status IN ('BOOKED', 'CONFIRMED')")


class Appointment(Base):
    """
    Appointment entity.
    end_time is fixed at creation from the service duration and never recomputed.
    """
    __tablename__ = "appointments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    barber_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("barbers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
    )

    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus, name="appointment_status"),
        nullable=False,
        default=AppointmentStatus.BOOKED,
        index=True,
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="appointment_end_after_start"),
        # Two active appointments can never share a barber and start time
        Index(
            "uq_appointments_barber_start_active",
            "barber_id",
            "start_time",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_appointments_barber_window", "barber_id", "start_time", "end_time"),
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, status={self.status}, start_time={self.start_time})>"
