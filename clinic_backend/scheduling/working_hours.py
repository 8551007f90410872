"""Bookable working-hour windows per day."""

from __future__ import annotations

from datetime import date, datetime, time


DEFAULT_WORKING_HOURS = (
    (time(8, 0), time(12, 0)),
    (time(13, 30), time(17, 30)),
)


def _parse_clock(value: str) -> time:
    try:
        hour, minute = value.strip().split(':')
        return time(int(hour), int(minute))
    except ValueError as exc:
        raise ValueError(f'Invalid clock time {value!r}; expected HH:MM.') from exc


class WorkingHoursCalendar:
    """Fixed daily blocks applied uniformly to every day.

    Anything exposing ``windows_for(day)`` can stand in for this class, for
    example a per-doctor calendar backed by another service.
    """

    def __init__(self, blocks=DEFAULT_WORKING_HOURS) -> None:
        ordered = sorted(blocks)
        for start, end in ordered:
            if end <= start:
                raise ValueError(f'Working-hours block {start:%H:%M}-{end:%H:%M} ends before it starts.')
        for (_, previous_end), (next_start, _) in zip(ordered, ordered[1:]):
            if next_start < previous_end:
                raise ValueError('Working-hours blocks must not overlap.')
        self.blocks: tuple[tuple[time, time], ...] = tuple(ordered)

    @classmethod
    def from_string(cls, value: str) -> WorkingHoursCalendar:
        """Build a calendar from ``"08:00-12:00,13:30-17:30"``."""
        blocks = []
        for chunk in value.split(','):
            if not chunk.strip():
                continue
            try:
                start, end = chunk.split('-')
            except ValueError as exc:
                raise ValueError(f'Invalid working-hours block {chunk.strip()!r}; expected HH:MM-HH:MM.') from exc
            blocks.append((_parse_clock(start), _parse_clock(end)))
        if not blocks:
            raise ValueError('At least one working-hours block is required.')
        return cls(blocks)

    def windows_for(self, day: date) -> list[tuple[datetime, datetime]]:
        return [(datetime.combine(day, start), datetime.combine(day, end)) for start, end in self.blocks]
