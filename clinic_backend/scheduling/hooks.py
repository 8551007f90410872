"""Post-transition side-effect hooks.

Payment and notification collaborators subscribe here:

    from clinic_backend.scheduling.hooks import appointment_hooks

    appointment_hooks.on_created(create_pending_payment)
    appointment_hooks.on_status_changed(send_status_notification)

Callbacks run synchronously after the appointment is committed. A failing
callback is logged and skipped; it never undoes the booking or transition.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

CreatedHandler = Callable[[Any], None]
StatusChangedHandler = Callable[[Any, str], None]


class AppointmentHooks:
    """Registry of appointment side-effect subscribers."""

    def __init__(self) -> None:
        self._created: list[CreatedHandler] = []
        self._status_changed: list[StatusChangedHandler] = []

    def on_created(self, handler: CreatedHandler) -> CreatedHandler:
        """Register ``handler(appointment)``; usable as a decorator."""
        self._created.append(handler)
        logger.info('Registered appointment-created hook: %s', getattr(handler, '__name__', handler))
        return handler

    def on_status_changed(self, handler: StatusChangedHandler) -> StatusChangedHandler:
        """Register ``handler(appointment, previous_status)``; usable as a decorator."""
        self._status_changed.append(handler)
        logger.info('Registered appointment-status hook: %s', getattr(handler, '__name__', handler))
        return handler

    def clear(self) -> None:
        self._created.clear()
        self._status_changed.clear()

    def fire_created(self, appointment) -> None:
        for handler in list(self._created):
            try:
                handler(appointment)
            except Exception:
                logger.exception(
                    'Appointment-created hook %s failed for appointment %s',
                    getattr(handler, '__name__', handler),
                    appointment.id,
                )

    def fire_status_changed(self, appointment, previous_status: str) -> None:
        for handler in list(self._status_changed):
            try:
                handler(appointment, previous_status)
            except Exception:
                logger.exception(
                    'Appointment-status hook %s failed for appointment %s (%s -> %s)',
                    getattr(handler, '__name__', handler),
                    appointment.id,
                    previous_status,
                    appointment.status,
                )


# Module-level singleton
appointment_hooks = AppointmentHooks()
