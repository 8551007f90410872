from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from clinic_backend.scheduling.availability import active_appointments_on_day, is_available
from clinic_backend.scheduling.working_hours import WorkingHoursCalendar

logger = logging.getLogger(__name__)

default_calendar = WorkingHoursCalendar()


def available_slots(
    doctor_id: int,
    day: date,
    duration_minutes: int,
    booked_appointments,
    calendar=None,
) -> list[datetime]:
    """Return the free slot starts for ``doctor_id`` on ``day``, in order.

    Each working-hours window is walked on a fixed grid of ``duration_minutes``
    from its start; a slot is offered only if it fits the window and does not
    overlap an active appointment. Gaps that are off the grid are never offered.
    """
    if duration_minutes <= 0:
        raise ValueError('Slot duration must be a positive number of minutes.')

    calendar = calendar or default_calendar
    step = timedelta(minutes=duration_minutes)
    day_start = datetime.combine(day, datetime.min.time())
    booked = active_appointments_on_day(doctor_id, day_start, booked_appointments)

    slots: list[datetime] = []
    for window_start, window_end in calendar.windows_for(day):
        cursor = window_start
        while cursor + step <= window_end:
            if is_available(doctor_id, cursor, cursor + step, booked):
                slots.append(cursor)
            cursor += step

    logger.info(
        'Found %s available %s-minute slots for doctor %s on %s',
        len(slots),
        duration_minutes,
        doctor_id,
        day,
    )
    return slots
