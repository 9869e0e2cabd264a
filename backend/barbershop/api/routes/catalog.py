"""
Catalog API routes - shops, their barbers and the services they offer.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from pydantic import BaseModel

from barbershop.api.dependencies import get_db
from barbershop.api.middleware.error_handler import NotFoundException
from barbershop.models.barbers import Barber
from barbershop.models.services import Service
from barbershop.models.shops import Shop
from barbershop.models.users import User


class ShopResponse(BaseModel):
    id: UUID
    name: str
    location: Optional[str] = None

    model_config = {"from_attributes": True}


class BarberResponse(BaseModel):
    id: UUID
    shop_id: UUID
    name: str
    active: bool


class ServiceResponse(BaseModel):
    """A bookable service. barber_id is null when every barber of the shop offers it."""
    id: UUID
    name: str
    duration_minutes: int
    price_cents: int
    shop_id: UUID
    barber_id: Optional[UUID] = None

    model_config = {"from_attributes": True}


router = APIRouter(tags=["catalog"])


def _barbers(db: Session, shop_id: Optional[UUID], active_only: bool) -> List[BarberResponse]:
    stmt = select(Barber, User.name).join(User, User.id == Barber.user_id)
    if shop_id is not None:
        stmt = stmt.where(Barber.shop_id == shop_id)
    if active_only:
        stmt = stmt.where(Barber.active.is_(True))
    stmt = stmt.order_by(User.name)

    return [
        BarberResponse(id=barber.id, shop_id=barber.shop_id, name=name, active=barber.active)
        for barber, name in db.execute(stmt).all()
    ]


def _require_shop(db: Session, shop_id: UUID) -> Shop:
    shop = db.get(Shop, shop_id)
    if shop is None:
        raise NotFoundException("Shop", str(shop_id))
    return shop


@router.get("/shops", response_model=List[ShopResponse])
def list_shops(db: Session = Depends(get_db)) -> List[ShopResponse]:
    shops = db.execute(select(Shop).order_by(Shop.name)).scalars().all()
    return [ShopResponse.model_validate(s) for s in shops]


@router.get("/barbers", response_model=List[BarberResponse])
def list_barbers(
    active_only: bool = Query(True, description="Show only barbers taking bookings"),
    db: Session = Depends(get_db),
) -> List[BarberResponse]:
    return _barbers(db, None, active_only)


@router.get("/shops/{shop_id}/barbers", response_model=List[BarberResponse])
def list_shop_barbers(
    shop_id: UUID,
    active_only: bool = Query(True, description="Show only barbers taking bookings"),
    db: Session = Depends(get_db),
) -> List[BarberResponse]:
    _require_shop(db, shop_id)
    return _barbers(db, shop_id, active_only)


@router.get("/services", response_model=List[ServiceResponse])
def list_services(db: Session = Depends(get_db)) -> List[ServiceResponse]:
    services = db.execute(select(Service).order_by(Service.name)).scalars().all()
    return [ServiceResponse.model_validate(s) for s in services]


@router.get("/shops/{shop_id}/services", response_model=List[ServiceResponse])
def list_shop_services(shop_id: UUID, db: Session = Depends(get_db)) -> List[ServiceResponse]:
    """Every service of the shop, shop-wide and barber-specific."""
    _require_shop(db, shop_id)
    stmt = select(Service).where(Service.shop_id == shop_id).order_by(Service.name)
    return [ServiceResponse.model_validate(s) for s in db.execute(stmt).scalars().all()]


@router.get("/barbers/{barber_id}/services", response_model=List[ServiceResponse])
def list_barber_services(barber_id: UUID, db: Session = Depends(get_db)) -> List[ServiceResponse]:
    """
    Services bookable with this barber: their own plus the shop-wide ones.
    """
    barber = db.get(Barber, barber_id)
    if barber is None:
        raise NotFoundException("Barber", str(barber_id))

    stmt = (
        select(Service)
        .where(
            Service.shop_id == barber.shop_id,
            or_(Service.barber_id == barber.id, Service.barber_id.is_(None)),
        )
        .order_by(Service.name)
    )
    return [ServiceResponse.model_validate(s) for s in db.execute(stmt).scalars().all()]
