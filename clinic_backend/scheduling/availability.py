"""Free/busy decisions for a single doctor.

Only appointments for the same doctor, starting on the same calendar day as
the candidate and not cancelled or marked no-show, count as conflicts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from clinic_backend.scheduling.intervals import overlaps
from clinic_backend.scheduling.lifecycle import is_active

logger = logging.getLogger(__name__)


def active_appointments_on_day(doctor_id: int, day_start: datetime, existing: Iterable) -> list:
    """Filter ``existing`` down to the doctor's active appointments in the day bucket of ``day_start``."""
    day = day_start.date()
    return [
        appointment
        for appointment in existing
        if appointment.doctor_id == doctor_id
        and appointment.start_at.date() == day
        and is_active(appointment.status)
    ]


def find_conflict(
    doctor_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    existing: Iterable,
):
    """Return the earliest-starting appointment overlapping the candidate, or None."""
    if candidate_end.date() != candidate_start.date():
        # Only the start-date bucket is consulted for ranges that cross midnight.
        logger.warning(
            'Candidate %s to %s for doctor %s spans midnight; checking %s only',
            candidate_start,
            candidate_end,
            doctor_id,
            candidate_start.date(),
        )

    conflicts = [
        appointment
        for appointment in active_appointments_on_day(doctor_id, candidate_start, existing)
        if overlaps(candidate_start, candidate_end, appointment.start_at, appointment.end_at)
    ]
    if not conflicts:
        return None

    conflict = min(conflicts, key=lambda appointment: (appointment.start_at, appointment.id or 0))
    logger.debug(
        'Doctor %s busy for %s to %s: conflicts with appointment %s (%s to %s)',
        doctor_id,
        candidate_start,
        candidate_end,
        conflict.id,
        conflict.start_at,
        conflict.end_at,
    )
    return conflict


def is_available(
    doctor_id: int,
    candidate_start: datetime,
    candidate_end: datetime,
    existing: Iterable,
) -> bool:
    return find_conflict(doctor_id, candidate_start, candidate_end, existing) is None
