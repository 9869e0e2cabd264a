"""
API dependencies for FastAPI dependency injection.

Provides database sessions, the authenticated principal and service
instances. Tests override the provider functions through
``app.dependency_overrides``.
"""
from typing import Callable, Generator
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import InvalidTokenError
from sqlalchemy.orm import Session, sessionmaker

from barbershop.api.middleware.error_handler import ForbiddenException, UnauthorizedException
from barbershop.lib.db import SessionLocal
from barbershop.lib.jwt import verify_token
from barbershop.lib.timeutils import utc_now
from barbershop.models.users import UserRole
from barbershop.services.access import Principal
from barbershop.services.availability_service import AvailabilityService
from barbershop.services.booking_service import BookingService
from barbershop.services.lifecycle_service import AppointmentLifecycleService
from barbershop.services.no_show_policy import NoShowService
from barbershop.services.payment_gateway import PaymentGateway, get_payment_gateway
from barbershop.services.payment_service import PaymentService
from barbershop.services.types import BookingConfig


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)) -> Generator[Session, None, None]:
    """Request-scoped session from the configured factory."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def get_booking_config() -> BookingConfig:
    return BookingConfig.from_settings()


def get_clock() -> Callable:
    return utc_now


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """
    Decode the bearer token into a Principal.

    Raises:
        UnauthorizedException: 401 if the token is missing or invalid
    """
    if credentials is None:
        raise UnauthorizedException("Missing bearer token")
    try:
        payload = verify_token(credentials.credentials)
        return Principal(
            user_id=UUID(payload["sub"]),
            role=UserRole(payload.get("role", UserRole.CUSTOMER.value)),
            barber_id=UUID(payload["barber_id"]) if payload.get("barber_id") else None,
            shop_id=UUID(payload["shop_id"]) if payload.get("shop_id") else None,
        )
    except (InvalidTokenError, KeyError, ValueError) as e:
        raise UnauthorizedException(f"Could not validate credentials: {e}")


def require_roles(*roles: UserRole):
    """Dependency factory restricting a route to the given roles."""

    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise ForbiddenException(
                f"Requires one of: {', '.join(role.value for role in roles)}"
            )
        return principal

    return checker


def get_availability_service(
    db: Session = Depends(get_db),
    config: BookingConfig = Depends(get_booking_config),
    clock: Callable = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, config=config, clock=clock)


def get_booking_service(
    session_factory: sessionmaker = Depends(get_session_factory),
    config: BookingConfig = Depends(get_booking_config),
    clock: Callable = Depends(get_clock),
) -> BookingService:
    return BookingService(session_factory, config=config, clock=clock)


def get_lifecycle_service(
    gateway: PaymentGateway = Depends(get_gateway),
    session_factory: sessionmaker = Depends(get_session_factory),
    config: BookingConfig = Depends(get_booking_config),
    clock: Callable = Depends(get_clock),
) -> AppointmentLifecycleService:
    return AppointmentLifecycleService(gateway, session_factory=session_factory, config=config, clock=clock)


def get_payment_service(
    gateway: PaymentGateway = Depends(get_gateway),
    session_factory: sessionmaker = Depends(get_session_factory),
    config: BookingConfig = Depends(get_booking_config),
    clock: Callable = Depends(get_clock),
) -> PaymentService:
    return PaymentService(gateway, session_factory=session_factory, config=config, clock=clock)


def get_no_show_service(
    db: Session = Depends(get_db),
    config: BookingConfig = Depends(get_booking_config),
) -> NoShowService:
    return NoShowService(db, config=config)
