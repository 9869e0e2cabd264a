"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from barbershop.models.users import User, UserRole
from barbershop.models.shops import Shop
from barbershop.models.barbers import Barber
from barbershop.models.services import Service
from barbershop.models.availability import Availability, AvailabilityKind
from barbershop.models.appointments import (
    Appointment,
    AppointmentStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from barbershop.models.payments import Payment, PaymentStatus
from barbershop.models.no_show_flags import NoShowFlag

__all__ = [
    "User",
    "UserRole",
    "Shop",
    "Barber",
    "Service",
    "Availability",
    "AvailabilityKind",
    "Appointment",
    "AppointmentStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Payment",
    "PaymentStatus",
    "NoShowFlag",
]
