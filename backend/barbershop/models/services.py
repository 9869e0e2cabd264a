"""
Service model - a bookable treatment offered by a shop or a single barber.
"""
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Integer, Uuid, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base


class Service(Base):
    """
    Service entity.
    barber_id NULL means every barber of the shop offers it.
    """
    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    shop_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    barber_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("barbers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="service_duration_positive"),
        CheckConstraint("price_cents >= 0", name="service_price_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, duration={self.duration_minutes})>"
