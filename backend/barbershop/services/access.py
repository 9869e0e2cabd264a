"""
Ownership checks for appointment operations.

The HTTP layer already restricts routes by role; these checks run again in
the service layer against the loaded rows.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from barbershop.models.appointments import Appointment
from barbershop.models.barbers import Barber
from barbershop.models.shops import Shop
from barbershop.models.users import UserRole


STAFF_ROLES = frozenset({UserRole.BARBER, UserRole.SHOP_OWNER, UserRole.ADMIN})


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as decoded from the access token."""
    user_id: UUID
    role: UserRole
    barber_id: Optional[UUID] = None
    shop_id: Optional[UUID] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def _barber_shop_id(session: Session, barber_id: UUID) -> Optional[UUID]:
    barber = session.get(Barber, barber_id)
    return barber.shop_id if barber else None


def _owned_shop_id(session: Session, principal: Principal) -> Optional[UUID]:
    if principal.shop_id:
        return principal.shop_id
    shop = session.execute(select(Shop).where(Shop.owner_id == principal.user_id)).scalar_one_or_none()
    return shop.id if shop else None


def _barber_profile_id(session: Session, principal: Principal) -> Optional[UUID]:
    if principal.barber_id:
        return principal.barber_id
    barber = session.execute(select(Barber).where(Barber.user_id == principal.user_id)).scalar_one_or_none()
    return barber.id if barber else None


def can_access_appointment(session: Session, principal: Principal, appointment: Appointment) -> bool:
    """
    Admins see everything, customers their own bookings, barbers the
    appointments assigned to them and shop owners the appointments in their shop.
    """
    if principal.role == UserRole.ADMIN:
        return True
    if principal.role == UserRole.CUSTOMER:
        return appointment.customer_id == principal.user_id
    if principal.role == UserRole.BARBER:
        return appointment.barber_id == _barber_profile_id(session, principal)
    if principal.role == UserRole.SHOP_OWNER:
        shop_id = _owned_shop_id(session, principal)
        return shop_id is not None and _barber_shop_id(session, appointment.barber_id) == shop_id
    return False


def can_manage_appointment(session: Session, principal: Principal, appointment: Appointment) -> bool:
    """Staff-only operations (completion, no-show marking)."""
    return principal.is_staff and can_access_appointment(session, principal, appointment)
