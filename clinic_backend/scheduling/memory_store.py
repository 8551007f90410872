"""In-process AppointmentStore for local runs and tests.

A single lock makes every insert and status update atomic, which is enough
inside one process. Multi-instance deployments need SqlAppointmentStore.
"""

from __future__ import annotations

import itertools
from datetime import date, datetime
from threading import Lock

from clinic_backend.models.appointment import Appointment
from clinic_backend.scheduling.availability import active_appointments_on_day, find_conflict
from clinic_backend.scheduling.errors import ConflictError, InvalidTransition, NotFound
from clinic_backend.scheduling.lifecycle import AppointmentStatus


class InMemoryAppointmentStore:
    def __init__(
        self,
        tenants: set[int] | None = None,
        patients: set[int] | None = None,
        doctors: dict[int, int] | None = None,
    ) -> None:
        self.tenants = set(tenants or ())
        self.patients = set(patients or ())
        # doctor id -> tenant id
        self.doctors = dict(doctors or {})
        self._appointments: dict[int, Appointment] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    def patient_exists(self, patient_id: int) -> bool:
        return patient_id in self.patients

    def tenant_exists(self, tenant_id: int) -> bool:
        return tenant_id in self.tenants

    def doctor_exists(self, doctor_id: int) -> bool:
        return doctor_id in self.doctors

    def doctor_belongs_to_tenant(self, doctor_id: int, tenant_id: int) -> bool:
        return self.doctors.get(doctor_id) == tenant_id

    def _active_on_date(self, doctor_id: int, day: date, tenant_id: int | None) -> list[Appointment]:
        day_start = datetime.combine(day, datetime.min.time())
        candidates = [
            appointment
            for appointment in self._appointments.values()
            if tenant_id is None or appointment.tenant_id == tenant_id
        ]
        return sorted(
            active_appointments_on_day(doctor_id, day_start, candidates),
            key=lambda appointment: (appointment.start_at, appointment.id),
        )

    def appointments_for_doctor_on_date(
        self, doctor_id: int, day: date, tenant_id: int | None = None
    ) -> list[Appointment]:
        with self._lock:
            return self._active_on_date(doctor_id, day, tenant_id)

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        with self._lock:
            if appointment.doctor_id is not None:
                existing = self._active_on_date(appointment.doctor_id, appointment.start_at.date(), appointment.tenant_id)
                conflict = find_conflict(appointment.doctor_id, appointment.start_at, appointment.end_at, existing)
                if conflict is not None:
                    raise ConflictError(conflict)

            appointment.id = next(self._ids)
            self._appointments[appointment.id] = appointment
            return appointment

    def update_appointment_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new_status: AppointmentStatus,
        now: datetime,
        cancel_reason: str | None = None,
    ) -> Appointment:
        with self._lock:
            appointment = self._appointments.get(appointment_id)
            if appointment is None:
                raise NotFound('appointment', appointment_id)
            if appointment.status != expected.value:
                raise InvalidTransition(appointment.status, new_status.value)

            appointment.status = new_status.value
            appointment.updated_at = now
            if cancel_reason is not None:
                appointment.cancel_reason = cancel_reason
            return appointment

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        with self._lock:
            return self._appointments.get(appointment_id)

    def _matching(
        self,
        tenant_id: int | None,
        doctor_id: int | None,
        patient_id: int | None,
        start_from: datetime | None,
        start_before: datetime | None,
        status: AppointmentStatus | None,
        type: str | None,
    ) -> list[Appointment]:
        return [
            appointment
            for appointment in self._appointments.values()
            if (tenant_id is None or appointment.tenant_id == tenant_id)
            and (doctor_id is None or appointment.doctor_id == doctor_id)
            and (patient_id is None or appointment.patient_id == patient_id)
            and (start_from is None or appointment.start_at >= start_from)
            and (start_before is None or appointment.start_at < start_before)
            and (status is None or appointment.status == status.value)
            and (type is None or appointment.type == type)
        ]

    def list_appointments(
        self,
        *,
        tenant_id: int | None = None,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        start_from: datetime | None = None,
        start_before: datetime | None = None,
        status: AppointmentStatus | None = None,
        type: str | None = None,
        newest_first: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Appointment]:
        with self._lock:
            appointments = self._matching(tenant_id, doctor_id, patient_id, start_from, start_before, status, type)
        ordered = sorted(
            appointments,
            key=lambda appointment: (appointment.start_at, appointment.id),
            reverse=newest_first,
        )
        end = None if limit is None else offset + limit
        return ordered[offset:end]

    def count_appointments(
        self,
        *,
        tenant_id: int | None = None,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        start_from: datetime | None = None,
        start_before: datetime | None = None,
        status: AppointmentStatus | None = None,
        type: str | None = None,
    ) -> int:
        with self._lock:
            return len(self._matching(tenant_id, doctor_id, patient_id, start_from, start_before, status, type))
