"""Errors raised by the scheduling core.

Business errors all derive from SchedulingError and are scoped to a single
request. StorageUnavailable marks an unexpected store failure the caller may
retry.
"""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
    """Base class for every error the scheduling core raises."""


class InvalidTimeRange(SchedulingError):
    """The requested range ends before it starts, or starts in the past."""


class NotFound(SchedulingError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} {entity_id} not found.")


class DoctorTenantMismatch(SchedulingError):
    def __init__(self, doctor_id: int, tenant_id: int) -> None:
        self.doctor_id = doctor_id
        self.tenant_id = tenant_id
        super().__init__(f"Doctor {doctor_id} does not belong to tenant {tenant_id}.")


class SlotUnavailable(SchedulingError):
    """The doctor already has an active appointment overlapping the range.

    ``conflict`` is the earliest conflicting appointment, or None when the
    storage constraint rejected the insert and the winning row could not be
    read back.
    """

    def __init__(self, conflict: Any = None) -> None:
        self.conflict = conflict
        if conflict is None:
            message = "The doctor is not available for the requested time."
        else:
            message = (
                f"The doctor is not available for the requested time; conflicts with appointment "
                f"{conflict.id} ({conflict.start_at:%Y-%m-%d %H:%M} to {conflict.end_at:%H:%M})."
            )
        super().__init__(message)


class InvalidTransition(SchedulingError):
    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move appointment from {current} to {target}.")


class StorageUnavailable(Exception):
    """The appointment store failed unexpectedly."""


class ConflictError(Exception):
    """Raised by a store when an insert would double-book a doctor."""

    def __init__(self, conflict: Any = None) -> None:
        self.conflict = conflict
        super().__init__("Appointment overlaps an active appointment.")
