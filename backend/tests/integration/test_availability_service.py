"""
Integration tests for slot computation against a real database.

Barber works Monday to Friday 09:00-17:00 UTC; the clock is frozen at
Monday 07:00 UTC.
"""
from datetime import date, datetime, time, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import delete

from barbershop.models import AppointmentStatus, Availability, AvailabilityKind, Barber, Service
from barbershop.services.availability_service import AvailabilityService
from barbershop.services.types import ErrorCode


MONDAY = date(2030, 1, 7)
TUESDAY = MONDAY + timedelta(days=1)


def at(day, hour, minute=0):
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


@pytest.fixture
def service(db_session, config, clock, world):
    return AvailabilityService(db_session, config=config, clock=clock)


def slot_starts(days, day):
    for entry in days:
        if entry.date == day:
            return [slot.start_time for slot in entry.slots]
    return []


@pytest.mark.integration
def test_booking_scenario_with_buffer(service, world, make_appointment):
    """10:00-10:30 booked: 09:15 is the last morning slot and 10:45 the first after."""
    make_appointment(at(MONDAY, 10))

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, world.service_id)

    assert result.ok
    monday = slot_starts(result.data, MONDAY)
    assert monday[:3] == [at(MONDAY, 9), at(MONDAY, 9, 15), at(MONDAY, 10, 45)]
    assert at(MONDAY, 9, 30) not in monday
    assert at(MONDAY, 10, 30) not in monday
    assert monday[-1] == at(MONDAY, 16, 30)
    assert len(monday) == 26
    assert len(slot_starts(result.data, TUESDAY)) == 31


@pytest.mark.integration
def test_cancelled_and_no_show_appointments_do_not_block(service, world, make_appointment):
    make_appointment(at(MONDAY, 10), status=AppointmentStatus.CANCELLED)
    make_appointment(at(MONDAY, 11), status=AppointmentStatus.NO_SHOW)

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, world.service_id)

    monday = slot_starts(result.data, MONDAY)
    assert at(MONDAY, 10) in monday
    assert at(MONDAY, 11) in monday


@pytest.mark.integration
def test_booked_appointments_block_like_confirmed(service, world, make_appointment):
    make_appointment(at(MONDAY, 10), status=AppointmentStatus.BOOKED)

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, world.service_id)

    assert at(MONDAY, 10) not in slot_starts(result.data, MONDAY)


@pytest.mark.integration
def test_exception_overrides_weekly_hours(service, world, session_factory):
    with session_factory.begin() as session:
        session.add(Availability(
            barber_id=world.barber_id,
            kind=AvailabilityKind.EXCEPTION,
            date=MONDAY,
            start_time=time(12, 0),
            end_time=time(14, 0),
        ))

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, world.service_id)

    monday = slot_starts(result.data, MONDAY)
    assert monday[0] == at(MONDAY, 12)
    assert monday[-1] == at(MONDAY, 13, 30)
    assert slot_starts(result.data, TUESDAY)[0] == at(TUESDAY, 9)


@pytest.mark.integration
def test_day_off_exception_removes_the_day(service, world, session_factory):
    with session_factory.begin() as session:
        session.add(Availability(barber_id=world.barber_id, kind=AvailabilityKind.EXCEPTION, date=MONDAY))

    next_monday = MONDAY + timedelta(days=7)
    result = service.compute_bookable_slots(world.barber_id, MONDAY, next_monday, world.service_id)

    days = [entry.date for entry in result.data]
    assert MONDAY not in days
    assert days[0] == TUESDAY
    # Only that date is off; the weekly Monday hours still apply a week later
    assert slot_starts(result.data, next_monday)[0] == at(next_monday, 9)
    assert len(slot_starts(result.data, next_monday)) == 31


@pytest.mark.integration
def test_past_dates_are_clamped_to_today(service, world):
    result = service.compute_bookable_slots(
        world.barber_id, MONDAY - timedelta(days=7), MONDAY, world.service_id
    )

    assert result.ok
    assert [entry.date for entry in result.data] == [MONDAY]


@pytest.mark.integration
def test_elapsed_part_of_today_is_excluded(service, world, clock):
    clock.advance(hours=3, minutes=5)  # 10:05

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, world.service_id)

    assert slot_starts(result.data, MONDAY)[0] == at(MONDAY, 10, 15)


@pytest.mark.integration
def test_range_entirely_in_the_past_is_empty(service, world):
    result = service.compute_bookable_slots(
        world.barber_id, MONDAY - timedelta(days=14), MONDAY - timedelta(days=7)
    )

    assert result.ok
    assert result.data == []


@pytest.mark.integration
def test_invalid_date_range(service, world):
    result = service.compute_bookable_slots(world.barber_id, TUESDAY, MONDAY)

    assert not result.ok
    assert result.code == ErrorCode.INVALID_DATE_RANGE


@pytest.mark.integration
def test_unknown_and_inactive_barbers(service, world, session_factory):
    with session_factory.begin() as session:
        session.get(Barber, world.barber_id).active = False

    assert service.compute_bookable_slots(uuid4(), MONDAY, TUESDAY).code == ErrorCode.BARBER_NOT_FOUND
    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY)
    assert result.code == ErrorCode.BARBER_NOT_ACTIVE


@pytest.mark.integration
def test_service_must_be_offered_by_the_barber(service, world, session_factory):
    with session_factory.begin() as session:
        other_barber_service = Service(
            id=uuid4(),
            name="Beard trim",
            duration_minutes=15,
            price_cents=1000,
            shop_id=world.shop_id,
            barber_id=uuid4(),
        )
        session.add(other_barber_service)
        other_id = other_barber_service.id

    assert service.compute_bookable_slots(
        world.barber_id, MONDAY, TUESDAY, uuid4()
    ).code == ErrorCode.SERVICE_NOT_FOUND
    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, other_id)
    assert result.code == ErrorCode.SERVICE_NOT_FOUND


@pytest.mark.integration
def test_service_duration_drives_slot_length(service, world, session_factory):
    with session_factory.begin() as session:
        long_service = Service(
            id=uuid4(), name="Colour", duration_minutes=90, price_cents=6000, shop_id=world.shop_id
        )
        session.add(long_service)
        long_id = long_service.id

    result = service.compute_bookable_slots(world.barber_id, MONDAY, TUESDAY, long_id)

    monday = result.data[0].slots
    assert monday[-1].start_time == at(MONDAY, 15, 30)
    assert all(s.end_time - s.start_time == timedelta(minutes=90) for s in monday)


@pytest.mark.integration
def test_get_bookable_slots_with_explicit_duration(service, world):
    result = service.get_bookable_slots(world.barber_id, MONDAY, TUESDAY, 60, slot_interval_minutes=30)

    monday = slot_starts(result.data, MONDAY)
    assert monday[:2] == [at(MONDAY, 9), at(MONDAY, 9, 30)]
    assert monday[-1] == at(MONDAY, 16)


@pytest.mark.integration
def test_get_bookable_slots_rejects_non_positive_duration(service, world):
    with pytest.raises(ValueError):
        service.get_bookable_slots(world.barber_id, MONDAY, TUESDAY, 0)


@pytest.mark.integration
@pytest.mark.parametrize("interval", [0, -15])
def test_get_bookable_slots_rejects_non_positive_interval(service, world, interval):
    with pytest.raises(ValueError):
        service.get_bookable_slots(world.barber_id, MONDAY, TUESDAY, 30, slot_interval_minutes=interval)


@pytest.mark.integration
def test_available_windows(service, world, make_appointment):
    make_appointment(at(MONDAY, 12))

    result = service.get_available_windows(world.barber_id, MONDAY, TUESDAY)

    monday = result.data[MONDAY]
    assert [(w.start, w.end) for w in monday] == [
        (at(MONDAY, 9), at(MONDAY, 11, 50)),
        (at(MONDAY, 12, 40), at(MONDAY, 17)),
    ]


@pytest.mark.integration
def test_summary_includes_days_without_slots(service, world):
    saturday = date(2030, 1, 12)

    result = service.get_availability_summary(world.barber_id, MONDAY, saturday + timedelta(days=1))

    assert result.ok
    by_day = {entry.date: entry for entry in result.data}
    assert len(by_day) == 7
    assert by_day[MONDAY].has_availability
    assert by_day[MONDAY].slot_count == 31
    assert not by_day[saturday].has_availability
    assert by_day[saturday].slot_count == 0


@pytest.mark.integration
def test_next_available_slot(service, world, clock, make_appointment):
    make_appointment(at(MONDAY, 9))

    result = service.get_next_available_slot(world.barber_id, world.service_id)

    assert result.ok
    assert result.data.start_time == at(MONDAY, 9, 45)

    # Friday evening: next slot is Monday morning
    clock.now = at(date(2030, 1, 11), 18)
    result = service.get_next_available_slot(world.barber_id, world.service_id)
    assert result.data.start_time == at(date(2030, 1, 14), 9)


@pytest.mark.integration
def test_next_available_slot_none_when_closed(service, world, session_factory):
    with session_factory.begin() as session:
        session.execute(delete(Availability).where(Availability.barber_id == world.barber_id))

    result = service.get_next_available_slot(world.barber_id, max_days_ahead=7)

    assert result.ok
    assert result.data is None


@pytest.mark.integration
def test_is_slot_available(service, world, make_appointment):
    make_appointment(at(MONDAY, 10))

    assert service.is_slot_available(world.barber_id, at(MONDAY, 9), 30)
    # Off-grid start inside a free window
    assert service.is_slot_available(world.barber_id, at(MONDAY, 10, 42), 30)
    assert not service.is_slot_available(world.barber_id, at(MONDAY, 9, 30), 30)
    assert not service.is_slot_available(world.barber_id, at(MONDAY, 16, 45), 30)
    assert not service.is_slot_available(world.barber_id, at(MONDAY, 6), 30)
    assert not service.is_slot_available(uuid4(), at(MONDAY, 9), 30)


@pytest.mark.integration
def test_open_windows_for_ignores_appointments(service, world, make_appointment):
    make_appointment(at(MONDAY, 10))

    windows = service.open_windows_for(world.barber_id, MONDAY)

    assert [(w.start, w.end) for w in windows] == [(at(MONDAY, 9), at(MONDAY, 17))]
