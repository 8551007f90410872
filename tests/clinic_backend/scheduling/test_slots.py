from datetime import date, datetime, time, timedelta

import pytest

from conftest import make_booked

from clinic_backend.scheduling.intervals import overlaps
from clinic_backend.scheduling.slots import available_slots
from clinic_backend.scheduling.working_hours import WorkingHoursCalendar

DAY = date(2030, 1, 7)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime.combine(DAY, time(hour, minute))


def test_slots_skip_the_booked_half_hour() -> None:
    booked = [make_booked(at(9), at(9, 30))]

    slots = available_slots(1, DAY, 30, booked)

    assert at(9) not in slots
    assert slots[:7] == [at(8), at(8, 30), at(9, 30), at(10), at(10, 30), at(11), at(11, 30)]
    assert slots[7] == at(13, 30)
    assert slots[-1] == at(17)
    assert len(slots) == 15


def test_empty_day_offers_every_grid_slot_in_order() -> None:
    slots = available_slots(1, DAY, 30, [])

    assert len(slots) == 16
    assert slots == sorted(slots)
    assert at(12) not in slots
    assert at(13) not in slots


def test_no_slot_overlaps_an_active_booking() -> None:
    booked = [
        make_booked(at(8, 10), at(8, 50), appointment_id=1),
        make_booked(at(10, 45), at(11, 20), appointment_id=2),
        make_booked(at(14), at(15, 30), appointment_id=3),
        make_booked(at(16), at(16, 30), status='Cancelled', appointment_id=4),
    ]
    active = [appointment for appointment in booked if appointment.status != 'Cancelled']

    slots = available_slots(1, DAY, 20, booked)

    for slot in slots:
        for appointment in active:
            assert not overlaps(slot, slot + timedelta(minutes=20), appointment.start_at, appointment.end_at)
    assert at(16, 10) in slots


def test_grid_is_fixed_even_when_an_off_grid_gap_would_fit() -> None:
    booked = [
        make_booked(at(8), at(8, 20), appointment_id=1),
        make_booked(at(8, 50), at(9, 30), appointment_id=2),
    ]

    slots = available_slots(1, DAY, 30, booked)

    assert at(8, 20) not in slots
    assert at(8) not in slots
    assert at(8, 30) not in slots
    assert slots[0] == at(9, 30)


def test_slot_must_fit_inside_the_window() -> None:
    slots = available_slots(1, DAY, 90, [])

    assert slots == [at(8), at(9, 30), at(13, 30), at(15)]


def test_custom_calendar_is_used() -> None:
    calendar = WorkingHoursCalendar.from_string('09:00-10:00')

    assert available_slots(1, DAY, 30, [], calendar=calendar) == [at(9), at(9, 30)]


def test_other_doctors_bookings_do_not_block() -> None:
    booked = [make_booked(at(8), at(12), doctor_id=2)]

    assert at(8) in available_slots(1, DAY, 30, booked)


@pytest.mark.parametrize('duration', [0, -15])
def test_non_positive_duration_is_rejected(duration: int) -> None:
    with pytest.raises(ValueError):
        available_slots(1, DAY, duration, [])
