"""Booking orchestration: validate, check availability, insert, drive the lifecycle.

Every operation takes an explicit ``now``; when omitted the service's clock
is used. Business failures raise the SchedulingError subclasses from
``clinic_backend.scheduling.errors``; store failures surface as
StorageUnavailable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from clinic_backend.core import config
from clinic_backend.models.appointment import Appointment
from clinic_backend.scheduling import slots
from clinic_backend.scheduling.availability import find_conflict
from clinic_backend.scheduling.errors import (
    ConflictError,
    DoctorTenantMismatch,
    InvalidTimeRange,
    NotFound,
    SlotUnavailable,
)
from clinic_backend.scheduling.hooks import AppointmentHooks, appointment_hooks
from clinic_backend.scheduling.lifecycle import AppointmentStatus, coerce_status, ensure_transition
from clinic_backend.scheduling.store import AppointmentStore, day_bounds
from clinic_backend.scheduling.working_hours import WorkingHoursCalendar

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = 'App'


def _require_wall_clock(*values: datetime | None) -> None:
    for value in values:
        if value is not None and value.tzinfo is not None:
            raise InvalidTimeRange('Appointment times must be tenant-local wall-clock times without a UTC offset.')


@dataclass
class BookingRequest:
    tenant_id: int
    patient_id: int
    start_at: datetime
    type: str
    doctor_id: int | None = None
    end_at: datetime | None = None
    channel: str = DEFAULT_CHANNEL
    address: str | None = None


@dataclass
class AppointmentPage:
    items: list[Appointment] = field(default_factory=list)
    total_count: int = 0
    page_number: int = 1
    page_size: int = config.APPOINTMENT_PAGE_SIZE

    @property
    def total_pages(self) -> int:
        return -(-self.total_count // self.page_size)

    @property
    def has_previous_page(self) -> bool:
        return self.page_number > 1

    @property
    def has_next_page(self) -> bool:
        return self.page_number < self.total_pages


def _day_range(from_day: date | None, to_day: date | None) -> tuple[datetime | None, datetime | None]:
    """Turn an inclusive day range into ``[start, end)`` datetimes; either side may be open."""
    if from_day is not None and to_day is not None and to_day < from_day:
        raise InvalidTimeRange('The end of the range must not be before its start.')
    range_start = day_bounds(from_day)[0] if from_day is not None else None
    range_end = day_bounds(to_day)[1] if to_day is not None else None
    return range_start, range_end


class BookingService:
    """Entry point for booking appointments and moving them through their lifecycle."""

    def __init__(
        self,
        store: AppointmentStore,
        calendar=None,
        hooks: AppointmentHooks | None = None,
        clock: Callable[[], datetime] = datetime.now,
        default_duration_minutes: int = config.DEFAULT_APPOINTMENT_MINUTES,
    ) -> None:
        self.store = store
        self.calendar = calendar or WorkingHoursCalendar.from_string(config.WORKING_HOURS)
        self.hooks = hooks if hooks is not None else appointment_hooks
        self.clock = clock
        self.default_duration = timedelta(minutes=default_duration_minutes)

    def _now(self, now: datetime | None) -> datetime:
        return now if now is not None else self.clock()

    # ── Booking ──────────────────────────────────────────────────────

    def book(self, request: BookingRequest, now: datetime | None = None) -> Appointment:
        """Create a Scheduled appointment, or raise the first validation error hit.

        Checks run in order: start not in the past, end after start, patient
        exists, tenant exists, doctor exists and belongs to the tenant, doctor
        free. The final insert re-checks availability atomically, so a request
        that loses a race gets the same SlotUnavailable as a sequential one.
        """
        now = self._now(now)

        _require_wall_clock(request.start_at, request.end_at)
        if request.start_at < now:
            raise InvalidTimeRange('Appointments cannot be booked in the past.')

        end_at = request.end_at or request.start_at + self.default_duration
        if end_at <= request.start_at:
            raise InvalidTimeRange('Appointment end time must be after start time.')

        if not self.store.patient_exists(request.patient_id):
            raise NotFound('patient', request.patient_id)

        if not self.store.tenant_exists(request.tenant_id):
            raise NotFound('tenant', request.tenant_id)

        if request.doctor_id is not None:
            if not self.store.doctor_exists(request.doctor_id):
                raise NotFound('doctor', request.doctor_id)
            if not self.store.doctor_belongs_to_tenant(request.doctor_id, request.tenant_id):
                raise DoctorTenantMismatch(request.doctor_id, request.tenant_id)

            existing = self.store.appointments_for_doctor_on_date(
                request.doctor_id, request.start_at.date(), tenant_id=request.tenant_id
            )
            conflict = find_conflict(request.doctor_id, request.start_at, end_at, existing)
            if conflict is not None:
                logger.warning(
                    'Doctor %s unavailable for %s to %s: conflicts with appointment %s',
                    request.doctor_id,
                    request.start_at,
                    end_at,
                    conflict.id,
                )
                raise SlotUnavailable(conflict)

        appointment = Appointment(
            tenant_id=request.tenant_id,
            patient_id=request.patient_id,
            doctor_id=request.doctor_id,
            start_at=request.start_at,
            end_at=end_at,
            type=request.type,
            channel=request.channel or DEFAULT_CHANNEL,
            address=request.address,
            status=AppointmentStatus.SCHEDULED.value,
            created_at=now,
            updated_at=None,
        )

        try:
            appointment = self.store.insert_appointment(appointment)
        except ConflictError as exc:
            logger.warning(
                'Doctor %s lost booking race for %s to %s',
                request.doctor_id,
                request.start_at,
                end_at,
            )
            raise SlotUnavailable(exc.conflict) from exc

        logger.info(
            'Appointment created: id=%s tenant=%s patient=%s doctor=%s %s to %s',
            appointment.id,
            appointment.tenant_id,
            appointment.patient_id,
            appointment.doctor_id,
            appointment.start_at,
            appointment.end_at,
        )
        self.hooks.fire_created(appointment)
        return appointment

    # ── Availability ─────────────────────────────────────────────────

    def check_availability(self, doctor_id: int, start_at: datetime, end_at: datetime):
        """Return the earliest conflicting appointment, or None when the doctor is free."""
        _require_wall_clock(start_at, end_at)
        if end_at <= start_at:
            raise InvalidTimeRange('Appointment end time must be after start time.')
        if not self.store.doctor_exists(doctor_id):
            raise NotFound('doctor', doctor_id)

        existing = self.store.appointments_for_doctor_on_date(doctor_id, start_at.date())
        return find_conflict(doctor_id, start_at, end_at, existing)

    def available_slots(
        self,
        doctor_id: int,
        day: date,
        duration_minutes: int = config.DEFAULT_SLOT_MINUTES,
    ) -> list[datetime]:
        if not self.store.doctor_exists(doctor_id):
            raise NotFound('doctor', doctor_id)

        booked = self.store.appointments_for_doctor_on_date(doctor_id, day)
        return slots.available_slots(doctor_id, day, duration_minutes, booked, calendar=self.calendar)

    # ── Lifecycle ────────────────────────────────────────────────────

    def transition(
        self,
        appointment_id: int,
        target: AppointmentStatus | str,
        now: datetime | None = None,
        reason: str | None = None,
    ) -> Appointment:
        """Move an appointment to ``target`` if the lifecycle allows it.

        The store applies the change only if the status is still the one read
        here; a concurrent writer that got there first makes this call fail
        with InvalidTransition instead of overwriting it.
        """
        now = self._now(now)

        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFound('appointment', appointment_id)

        previous = coerce_status(appointment.status)
        target_status = ensure_transition(previous, target)

        appointment = self.store.update_appointment_status(
            appointment_id,
            previous,
            target_status,
            now,
            cancel_reason=reason if target_status is AppointmentStatus.CANCELLED else None,
        )

        logger.info('Appointment %s: %s -> %s', appointment_id, previous.value, target_status.value)
        self.hooks.fire_status_changed(appointment, previous.value)
        return appointment

    def confirm(self, appointment_id: int, now: datetime | None = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.CONFIRMED, now)

    def start(self, appointment_id: int, now: datetime | None = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.IN_PROGRESS, now)

    def complete(self, appointment_id: int, now: datetime | None = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.COMPLETED, now)

    def cancel(self, appointment_id: int, reason: str | None = None, now: datetime | None = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.CANCELLED, now, reason=reason)

    def mark_no_show(self, appointment_id: int, now: datetime | None = None) -> Appointment:
        return self.transition(appointment_id, AppointmentStatus.NO_SHOW, now)

    # ── Reads ────────────────────────────────────────────────────────

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise NotFound('appointment', appointment_id)
        return appointment

    def doctor_appointments(
        self,
        doctor_id: int,
        from_day: date | None = None,
        to_day: date | None = None,
        now: datetime | None = None,
    ) -> list[Appointment]:
        """Appointments for a doctor between two days inclusive, defaulting to the coming week."""
        today = self._now(now).date()
        range_start, range_end = _day_range(
            from_day or today,
            to_day or today + timedelta(days=config.DOCTOR_APPOINTMENTS_RANGE_DAYS),
        )
        return self.store.list_appointments(doctor_id=doctor_id, start_from=range_start, start_before=range_end)

    def tenant_appointments(
        self,
        tenant_id: int,
        from_day: date | None = None,
        to_day: date | None = None,
    ) -> list[Appointment]:
        """Every appointment of a tenant, oldest first, optionally bounded by an inclusive day range."""
        if not self.store.tenant_exists(tenant_id):
            raise NotFound('tenant', tenant_id)

        range_start, range_end = _day_range(from_day, to_day)
        return self.store.list_appointments(tenant_id=tenant_id, start_from=range_start, start_before=range_end)

    def search_appointments(
        self,
        *,
        tenant_id: int | None = None,
        patient_id: int | None = None,
        doctor_id: int | None = None,
        from_day: date | None = None,
        to_day: date | None = None,
        status: AppointmentStatus | str | None = None,
        type: str | None = None,
        page_number: int = 1,
        page_size: int = config.APPOINTMENT_PAGE_SIZE,
    ) -> AppointmentPage:
        """Filtered appointment listing ordered by start time, one page at a time.

        ``total_count`` counts every match, not just the rows on the page.
        """
        if page_number < 1 or page_size < 1:
            raise ValueError('page_number and page_size must be positive')

        range_start, range_end = _day_range(from_day, to_day)
        filters = {
            'tenant_id': tenant_id,
            'patient_id': patient_id,
            'doctor_id': doctor_id,
            'start_from': range_start,
            'start_before': range_end,
            'status': coerce_status(status) if status is not None else None,
            'type': type,
        }

        total_count = self.store.count_appointments(**filters)
        items = self.store.list_appointments(
            **filters,
            offset=(page_number - 1) * page_size,
            limit=page_size,
        )
        logger.debug('Appointment search %s matched %s (page %s)', filters, total_count, page_number)
        return AppointmentPage(items=items, total_count=total_count, page_number=page_number, page_size=page_size)

    def patient_appointments(self, patient_id: int, tenant_id: int | None = None) -> list[Appointment]:
        return self.store.list_appointments(patient_id=patient_id, tenant_id=tenant_id, newest_first=True)

    def today_appointments(self, tenant_id: int | None = None, now: datetime | None = None) -> list[Appointment]:
        day_start, day_end = day_bounds(self._now(now).date())
        return self.store.list_appointments(tenant_id=tenant_id, start_from=day_start, start_before=day_end)
