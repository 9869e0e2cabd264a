"""
Barber model - a BARBER user's working profile within a shop.
"""
from datetime import datetime, timezone
from uuid import uuid4, UUID

from sqlalchemy import Boolean, Uuid, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base, UTCDateTime


class Barber(Base):
    """
    Barber entity.
    Deactivation only removes the barber from future bookability;
    existing appointments are left untouched.
    """
    __tablename__ = "barbers"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    shop_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("shops.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Barber(id={self.id}, shop_id={self.shop_id}, active={self.active})>"
