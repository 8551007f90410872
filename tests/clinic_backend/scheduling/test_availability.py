from datetime import datetime

from conftest import make_booked

from clinic_backend.scheduling.availability import find_conflict, is_available


def at(hour: int, minute: int = 0, day: int = 7) -> datetime:
    return datetime(2030, 1, day, hour, minute)


def test_free_when_no_appointments() -> None:
    assert is_available(1, at(9), at(9, 30), []) is True


def test_busy_when_active_appointment_overlaps() -> None:
    booked = [make_booked(at(9), at(9, 30))]

    assert is_available(1, at(9, 15), at(9, 45), booked) is False


def test_adjacent_appointment_is_not_a_conflict() -> None:
    booked = [make_booked(at(9), at(9, 30))]

    assert is_available(1, at(9, 30), at(10), booked) is True


def test_cancelled_and_no_show_appointments_are_ignored() -> None:
    booked = [
        make_booked(at(9), at(9, 30), status='Cancelled', appointment_id=1),
        make_booked(at(9), at(9, 30), status='NoShow', appointment_id=2),
    ]

    assert is_available(1, at(9), at(9, 30), booked) is True


def test_other_doctors_and_other_days_are_ignored() -> None:
    booked = [
        make_booked(at(9), at(9, 30), doctor_id=2, appointment_id=1),
        make_booked(at(9, day=8), at(9, 30, day=8), appointment_id=2),
    ]

    assert is_available(1, at(9), at(9, 30), booked) is True


def test_find_conflict_reports_earliest_start() -> None:
    booked = [
        make_booked(at(10), at(10, 30), appointment_id=7),
        make_booked(at(9), at(9, 30), appointment_id=9),
        make_booked(at(9, 30), at(10), appointment_id=3),
    ]

    conflict = find_conflict(1, at(8, 45), at(11), booked)

    assert conflict.id == 9


def test_find_conflict_breaks_start_ties_by_id() -> None:
    booked = [
        make_booked(at(9), at(9, 30), appointment_id=5),
        make_booked(at(9), at(10), appointment_id=2),
    ]

    assert find_conflict(1, at(9), at(9, 30), booked).id == 2


def test_candidate_spanning_midnight_only_checks_start_day() -> None:
    booked = [make_booked(at(0, 15, day=8), at(0, 45, day=8))]

    assert is_available(1, at(23, 30), at(0, 30, day=8), booked) is True
