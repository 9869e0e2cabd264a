"""
NoShowFlag model - running no-show counter per customer.
"""
from datetime import datetime
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import Integer, Uuid, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base, UTCDateTime


class NoShowFlag(Base):
    __tablename__ = "no_show_flags"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_flagged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint("count >= 0", name="no_show_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<NoShowFlag(customer_id={self.customer_id}, count={self.count})>"
