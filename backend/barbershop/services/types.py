"""
Typed results, error codes and DTOs shared by the booking services.

Every core operation returns either ``Success(data)`` or
``Failure(ServiceError)``. Business-rule violations never raise out of the
service layer; unexpected store failures do.
"""
import enum
from dataclasses import dataclass, field
from datetime import date as calendar_date, datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from barbershop.lib.settings import Settings, settings as default_settings
from barbershop.models.appointments import AppointmentStatus
from barbershop.models.payments import PaymentStatus


T = TypeVar("T")


class ErrorCode(str, enum.Enum):
    """Failure codes returned by the service layer."""
    BOOKING_IN_PAST = "BOOKING_IN_PAST"
    CUSTOMER_BLOCKED = "CUSTOMER_BLOCKED"
    BARBER_NOT_FOUND = "BARBER_NOT_FOUND"
    BARBER_NOT_ACTIVE = "BARBER_NOT_ACTIVE"
    SERVICE_NOT_FOUND = "SERVICE_NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    BARBER_UNAVAILABLE = "BARBER_UNAVAILABLE"
    OVERLAPPING_APPOINTMENT = "OVERLAPPING_APPOINTMENT"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    APPOINTMENT_NOT_FOUND = "APPOINTMENT_NOT_FOUND"
    APPOINTMENT_ALREADY_COMPLETED = "APPOINTMENT_ALREADY_COMPLETED"
    INVALID_APPOINTMENT_STATE = "INVALID_APPOINTMENT_STATE"
    CANCELLATION_WINDOW_PASSED = "CANCELLATION_WINDOW_PASSED"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    PAYMENT_ALREADY_EXISTS = "PAYMENT_ALREADY_EXISTS"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ServiceError:
    code: ErrorCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Failure:
    error: ServiceError
    ok: bool = field(default=False, init=False)

    @property
    def code(self) -> ErrorCode:
        return self.error.code


ServiceResult = Union[Success[T], Failure]


def success(data: T) -> Success[T]:
    return Success(data)


def failure(code: ErrorCode, message: str, **details: Any) -> Failure:
    return Failure(ServiceError(code, message, details))


@dataclass(frozen=True)
class BookingConfig:
    """Scheduling and lifecycle policy values."""
    buffer_minutes: int = 10
    slot_interval_minutes: int = 15
    default_slot_duration_minutes: int = 30
    booking_transaction_timeout_ms: int = 10000
    refund_cutoff_hours: int = 24
    late_cancellation_hours: int = 6
    no_show_grace_period_minutes: int = 10
    max_no_show_count: int = 3
    stale_booking_minutes: int = 30
    deposit_amount_cents: int = 500
    payment_currency: str = "gbp"
    shop_timezone: str = "UTC"

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "BookingConfig":
        source = source or default_settings
        return cls(
            buffer_minutes=source.buffer_minutes,
            slot_interval_minutes=source.slot_interval_minutes,
            default_slot_duration_minutes=source.default_slot_duration_minutes,
            booking_transaction_timeout_ms=source.booking_transaction_timeout_ms,
            refund_cutoff_hours=source.refund_cutoff_hours,
            late_cancellation_hours=source.late_cancellation_hours,
            no_show_grace_period_minutes=source.no_show_grace_period_minutes,
            max_no_show_count=source.max_no_show_count,
            stale_booking_minutes=source.stale_booking_minutes,
            deposit_amount_cents=source.deposit_amount_cents,
            payment_currency=source.payment_currency,
            shop_timezone=source.shop_timezone,
        )


# Pydantic DTOs returned inside Success

class TimeSlot(BaseModel):
    start_time: datetime
    end_time: datetime


class DailySlots(BaseModel):
    date: calendar_date
    slots: List[TimeSlot]


class AvailabilityDaySummary(BaseModel):
    date: calendar_date
    has_availability: bool
    slot_count: int


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    barber_id: UUID
    customer_id: UUID
    service_id: UUID
    start_time: datetime
    end_time: datetime
    status: AppointmentStatus
    cancellation_reason: Optional[str] = None
    created_at: datetime


class CancellationOut(BaseModel):
    appointment: AppointmentOut
    refund_issued: bool
    late_cancellation: bool
    payment_status: Optional[PaymentStatus] = None


class NoShowOut(BaseModel):
    appointment: AppointmentOut
    no_show_count: int
    customer_blocked: bool


class SweepDetail(BaseModel):
    appointment_id: UUID
    customer_id: UUID
    start_time: datetime
    no_show_count: int


class SweepFailure(BaseModel):
    appointment_id: UUID
    error: str


class SweepResult(BaseModel):
    scanned: int
    marked_count: int
    details: List[SweepDetail] = []
    failed: List[SweepFailure] = []


class PaymentConfirmation(BaseModel):
    payment_reference_id: str
    applied: bool
    payment_status: Optional[PaymentStatus] = None
    appointment_id: Optional[UUID] = None
    appointment_status: Optional[AppointmentStatus] = None


class PaymentIntentOut(BaseModel):
    payment_id: UUID
    appointment_id: UUID
    provider_payment_id: str
    client_secret: Optional[str]
    amount_cents: int
    currency: str
    status: PaymentStatus


class NoShowStatus(BaseModel):
    customer_id: UUID
    count: int
    last_flagged_at: Optional[datetime] = None
    blocked: bool


class StaleCleanupResult(BaseModel):
    scanned: int
    cancelled: List[UUID] = []
