from datetime import datetime


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap test: [a_start, a_end) intersects [b_start, b_end).

    Back-to-back ranges (a_end == b_start) do not overlap. Both ranges must
    have end > start.
    """
    return a_end > b_start and a_start < b_end
