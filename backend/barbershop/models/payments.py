"""
Payment model - the deposit attached to an appointment.
"""
from datetime import datetime, timezone
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, Uuid, ForeignKey, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from barbershop.lib.db import Base, UTCDateTime


class PaymentStatus(str, enum.Enum):
    """Payment status enumeration."""
    REQUIRES_PAYMENT = "REQUIRES_PAYMENT"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class Payment(Base):
    """
    Payment entity - at most one per appointment.
    provider_payment_id is the gateway's payment intent id.
    """
    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    appointment_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    customer_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_payment_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.REQUIRES_PAYMENT,
        index=True,
    )

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
        CheckConstraint("amount_cents > 0", name="payment_amount_positive"),
    )

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, status={self.status}, appointment_id={self.appointment_id})>"
