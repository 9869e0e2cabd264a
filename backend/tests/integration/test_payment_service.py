"""
Integration tests for deposit payment creation.
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from barbershop.models import AppointmentStatus, Payment, PaymentStatus
from barbershop.services.payment_service import PaymentService
from barbershop.services.types import ErrorCode


START = datetime(2030, 1, 9, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def payments(gateway, session_factory, config, clock, world):
    return PaymentService(gateway, session_factory=session_factory, config=config, clock=clock)


@pytest.mark.integration
def test_create_payment_intent(payments, principals, gateway, make_appointment, reload):
    appointment = make_appointment(START, status=AppointmentStatus.BOOKED)

    result = payments.create_payment_intent(appointment.id, principals.customer)

    assert result.ok
    intent = result.data
    assert intent.provider_payment_id == "pi_1"
    assert intent.client_secret == "pi_1_secret"
    assert intent.amount_cents == 500
    assert intent.currency == "gbp"
    assert intent.status == PaymentStatus.REQUIRES_PAYMENT

    stored = reload(Payment, intent.payment_id)
    assert stored.appointment_id == appointment.id
    assert stored.customer_id == appointment.customer_id

    call = gateway.intents[0]
    assert call["idempotency_key"] == f"deposit-{appointment.id}"
    assert call["metadata"]["appointment_id"] == str(appointment.id)


@pytest.mark.integration
def test_second_payment_is_rejected(payments, principals, gateway, make_appointment):
    appointment = make_appointment(START, status=AppointmentStatus.BOOKED)
    assert payments.create_payment_intent(appointment.id, principals.customer).ok

    again = payments.create_payment_intent(appointment.id, principals.customer)

    assert again.code == ErrorCode.PAYMENT_ALREADY_EXISTS
    assert len(gateway.intents) == 1


@pytest.mark.integration
@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED],
)
def test_only_booked_appointments_take_payment(payments, principals, make_appointment, status):
    appointment = make_appointment(START, status=status)

    result = payments.create_payment_intent(appointment.id, principals.customer)

    assert result.code == ErrorCode.INVALID_APPOINTMENT_STATE


@pytest.mark.integration
def test_payment_access_checks(payments, principals, make_appointment):
    appointment = make_appointment(START, status=AppointmentStatus.BOOKED)

    assert payments.create_payment_intent(uuid4(), principals.customer).code == ErrorCode.APPOINTMENT_NOT_FOUND
    assert payments.create_payment_intent(
        appointment.id, principals.other_customer
    ).code == ErrorCode.FORBIDDEN


@pytest.mark.integration
def test_gateway_failure_stores_nothing(payments, principals, gateway, session_factory, make_appointment):
    appointment = make_appointment(START + timedelta(hours=1), status=AppointmentStatus.BOOKED)
    gateway.fail_intents = True

    result = payments.create_payment_intent(appointment.id, principals.customer)

    assert result.code == ErrorCode.GATEWAY_ERROR
    assert result.error.details["provider_code"] == "card_declined"
    gateway.fail_intents = False
    assert payments.create_payment_intent(appointment.id, principals.customer).ok
