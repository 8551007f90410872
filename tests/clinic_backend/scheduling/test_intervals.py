from datetime import datetime

import pytest

from clinic_backend.scheduling.intervals import overlaps


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute)


@pytest.mark.parametrize(
    ('a', 'b', 'expected'),
    [
        ((at(10), at(10, 30)), (at(10, 30), at(11)), False),
        ((at(10), at(11)), (at(10, 15), at(10, 45)), True),
        ((at(9), at(11)), (at(10), at(12)), True),
        ((at(9), at(10)), (at(11), at(12)), False),
        ((at(9), at(10)), (at(9), at(10)), True),
        ((at(9), at(9, 1)), (at(9), at(17)), True),
    ],
)
def test_overlaps_is_symmetric(a, b, expected) -> None:
    assert overlaps(*a, *b) is expected
    assert overlaps(*b, *a) is expected


def test_back_to_back_ranges_do_not_overlap() -> None:
    assert overlaps(at(10), at(10, 30), at(10, 30), at(11)) is False


def test_contained_range_overlaps() -> None:
    assert overlaps(at(10), at(11), at(10, 15), at(10, 45)) is True
