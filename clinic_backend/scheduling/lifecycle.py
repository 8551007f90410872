"""Appointment status lifecycle.

Scheduled -> Confirmed -> InProgress -> Completed, with Cancelled reachable
from Scheduled and Confirmed, and NoShow reachable from any non-terminal
status. Completed, Cancelled and NoShow are terminal.
"""

from __future__ import annotations

import enum

from clinic_backend.scheduling.errors import InvalidTransition


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"


# Statuses that no longer hold their time range.
INACTIVE_STATUSES = frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW})

TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def coerce_status(value: AppointmentStatus | str) -> AppointmentStatus:
    """Accept either the enum or its stored string value."""
    if isinstance(value, AppointmentStatus):
        return value
    return AppointmentStatus(value)


def is_active(status: AppointmentStatus | str) -> bool:
    return coerce_status(status) not in INACTIVE_STATUSES


def is_terminal(status: AppointmentStatus | str) -> bool:
    return not TRANSITIONS[coerce_status(status)]


def allowed_targets(current: AppointmentStatus | str) -> frozenset[AppointmentStatus]:
    return TRANSITIONS[coerce_status(current)]


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return coerce_status(target) in allowed_targets(current)


def ensure_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> AppointmentStatus:
    """Return the target status, or raise InvalidTransition if it is unreachable."""
    current_status = coerce_status(current)
    target_status = coerce_status(target)
    if target_status not in TRANSITIONS[current_status]:
        raise InvalidTransition(current_status.value, target_status.value)
    return target_status
