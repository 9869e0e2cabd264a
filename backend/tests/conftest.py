"""
Shared fixtures: a throwaway SQLite database per test, a frozen clock, an
in-memory payment gateway and a small shop with one barber and one customer.
"""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional
from uuid import uuid4

import pytest

import barbershop.models  # noqa: F401
from barbershop.lib.db import create_db_engine, init_db, make_session_factory, session_scope
from barbershop.models import (
    Appointment,
    AppointmentStatus,
    Availability,
    AvailabilityKind,
    Barber,
    Payment,
    PaymentStatus,
    Service,
    Shop,
    User,
    UserRole,
)
from barbershop.services.access import Principal
from barbershop.services.payment_gateway import (
    PaymentGateway,
    PaymentGatewayError,
    PaymentIntent,
    WebhookEvent,
    WebhookVerificationError,
)
from barbershop.services.types import BookingConfig


# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 7, 7, 0, tzinfo=timezone.utc)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway(PaymentGateway):
    """In-memory PaymentGateway recording every call."""

    def __init__(self):
        self.intents: List[Dict] = []
        self.refunds: List[str] = []
        self.fail_refunds = False
        self.fail_intents = False
        self.on_refund: Optional[Callable[[str], None]] = None

    def create_payment_intent(self, amount_cents, currency, metadata, idempotency_key=None):
        if self.fail_intents:
            raise PaymentGatewayError("card_declined", "card_declined")
        intent_id = f"pi_{len(self.intents) + 1}"
        self.intents.append({
            "id": intent_id,
            "amount_cents": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret")

    def refund(self, payment_reference_id):
        if self.fail_refunds:
            raise PaymentGatewayError("refund declined", "charge_already_refunded")
        if self.on_refund:
            self.on_refund(payment_reference_id)
        self.refunds.append(payment_reference_id)

    def parse_webhook(self, payload, signature):
        if signature != "valid":
            raise WebhookVerificationError("Invalid signature")
        event = json.loads(payload)
        obj = event["data"]["object"]
        return WebhookEvent(type=event["type"], payment_reference_id=obj.get("id"), payload=obj)


@pytest.fixture
def engine(tmp_path):
    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'barbershop.db'}")
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def config():
    return BookingConfig()


@pytest.fixture
def gateway():
    return FakeGateway()


def _add_user(session, role: UserRole, name: str) -> User:
    user = User(id=uuid4(), email=f"{name}-{uuid4().hex[:8]}@example.com", name=name, role=role)
    session.add(user)
    return user


@pytest.fixture
def world(session_factory):
    """
    One shop with an owner, an active barber working Monday to Friday
    09:00-17:00 UTC, a shop-wide 30 minute service and a customer.
    """
    with session_scope(session_factory) as session:
        owner = _add_user(session, UserRole.SHOP_OWNER, "owner")
        barber_user = _add_user(session, UserRole.BARBER, "barber")
        customer = _add_user(session, UserRole.CUSTOMER, "customer")
        other_customer = _add_user(session, UserRole.CUSTOMER, "other")
        admin = _add_user(session, UserRole.ADMIN, "admin")
        session.flush()

        shop = Shop(id=uuid4(), name="Fade Street", location="London", owner_id=owner.id)
        session.add(shop)
        session.flush()

        barber = Barber(id=uuid4(), user_id=barber_user.id, shop_id=shop.id, active=True)
        session.add(barber)
        session.flush()

        service = Service(
            id=uuid4(), name="Haircut", duration_minutes=30, price_cents=2500, shop_id=shop.id
        )
        session.add(service)
        for weekday in range(1, 6):
            session.add(Availability(
                barber_id=barber.id,
                kind=AvailabilityKind.RECURRING,
                day_of_week=weekday,
                start_time=time(9, 0),
                end_time=time(17, 0),
            ))

        ids = SimpleNamespace(
            owner_id=owner.id,
            shop_id=shop.id,
            barber_user_id=barber_user.id,
            barber_id=barber.id,
            customer_id=customer.id,
            other_customer_id=other_customer.id,
            admin_id=admin.id,
            service_id=service.id,
        )
    return ids


@pytest.fixture
def principals(world):
    return SimpleNamespace(
        customer=Principal(user_id=world.customer_id, role=UserRole.CUSTOMER),
        other_customer=Principal(user_id=world.other_customer_id, role=UserRole.CUSTOMER),
        barber=Principal(user_id=world.barber_user_id, role=UserRole.BARBER, barber_id=world.barber_id),
        owner=Principal(user_id=world.owner_id, role=UserRole.SHOP_OWNER, shop_id=world.shop_id),
        admin=Principal(user_id=world.admin_id, role=UserRole.ADMIN),
    )


@pytest.fixture
def make_appointment(session_factory, world):
    """Insert an appointment directly, bypassing booking validation."""

    def factory(
        start: datetime,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        duration_minutes: int = 30,
        customer_id=None,
        created_at: Optional[datetime] = None,
    ) -> Appointment:
        with session_scope(session_factory) as session:
            appointment = Appointment(
                barber_id=world.barber_id,
                customer_id=customer_id or world.customer_id,
                service_id=world.service_id,
                start_time=start,
                end_time=start + timedelta(minutes=duration_minutes),
                status=status,
                created_at=created_at or NOW - timedelta(days=1),
                updated_at=created_at or NOW - timedelta(days=1),
            )
            session.add(appointment)
        return appointment

    return factory


@pytest.fixture
def make_payment(session_factory, world):
    counter = {"n": 0}

    def factory(appointment: Appointment, status: PaymentStatus = PaymentStatus.PAID) -> Payment:
        counter["n"] += 1
        with session_scope(session_factory) as session:
            payment = Payment(
                appointment_id=appointment.id,
                customer_id=appointment.customer_id,
                provider_payment_id=f"pi_test_{counter['n']}",
                amount_cents=500,
                currency="gbp",
                status=status,
            )
            session.add(payment)
        return payment

    return factory


@pytest.fixture
def reload(session_factory):
    """Fetch a fresh copy of a row."""

    def fetch(model, row_id):
        session = session_factory()
        try:
            return session.get(model, row_id)
        finally:
            session.close()

    return fetch
