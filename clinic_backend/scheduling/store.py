"""Appointment store contract and its SQLAlchemy implementation."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.database import NO_OVERLAP_CONSTRAINT
from clinic_backend.models.appointment import Appointment
from clinic_backend.models.directory import Doctor, Patient, Tenant
from clinic_backend.scheduling.availability import find_conflict
from clinic_backend.scheduling.errors import ConflictError, InvalidTransition, NotFound, StorageUnavailable
from clinic_backend.scheduling.lifecycle import INACTIVE_STATUSES, AppointmentStatus

logger = logging.getLogger(__name__)

INACTIVE_STATUS_VALUES = [status.value for status in INACTIVE_STATUSES]


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class AppointmentStore(Protocol):
    """What the scheduling core needs from persistence and the directory."""

    def patient_exists(self, patient_id: int) -> bool: ...

    def tenant_exists(self, tenant_id: int) -> bool: ...

    def doctor_exists(self, doctor_id: int) -> bool: ...

    def doctor_belongs_to_tenant(self, doctor_id: int, tenant_id: int) -> bool: ...

    def appointments_for_doctor_on_date(
        self, doctor_id: int, day: date, tenant_id: int | None = None
    ) -> list[Appointment]: ...

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        """Persist ``appointment`` or raise ConflictError if it would double-book its doctor."""
        ...

    def update_appointment_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new_status: AppointmentStatus,
        now: datetime,
        cancel_reason: str | None = None,
    ) -> Appointment:
        """Move ``appointment_id`` from ``expected`` to ``new_status`` atomically.

        Raises NotFound if the appointment is gone, InvalidTransition if its
        status is no longer ``expected``.
        """
        ...

    def get_appointment(self, appointment_id: int) -> Appointment | None: ...

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
    ) -> list[Appointment]: ...

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
    ) -> int: ...


class SqlAppointmentStore:
    """AppointmentStore over a SQLAlchemy session.

    Inserts re-check conflicts inside the inserting transaction. On PostgreSQL
    that transaction first takes an advisory lock on (tenant, doctor), and the
    appointments_no_overlap exclusion constraint rejects anything that slips
    past it. On SQLite the engine opens transactions with BEGIN IMMEDIATE, so
    bookings are serialized.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    @contextmanager
    def _storage_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Appointment store failed while trying to %s', action)
            raise StorageUnavailable(f'Appointment store unavailable while trying to {action}.') from exc

    def patient_exists(self, patient_id: int) -> bool:
        with self._storage_errors('look up a patient'):
            return self._db.get(Patient, patient_id) is not None

    def tenant_exists(self, tenant_id: int) -> bool:
        with self._storage_errors('look up a tenant'):
            return self._db.get(Tenant, tenant_id) is not None

    def doctor_exists(self, doctor_id: int) -> bool:
        with self._storage_errors('look up a doctor'):
            return self._db.get(Doctor, doctor_id) is not None

    def doctor_belongs_to_tenant(self, doctor_id: int, tenant_id: int) -> bool:
        with self._storage_errors('look up a doctor'):
            doctor = self._db.get(Doctor, doctor_id)
            return doctor is not None and doctor.tenant_id == tenant_id

    def _active_on_date_query(self, doctor_id: int, day: date, tenant_id: int | None):
        day_start, day_end = day_bounds(day)
        query = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.start_at >= day_start,
            Appointment.start_at < day_end,
            Appointment.status.not_in(INACTIVE_STATUS_VALUES),
        )
        if tenant_id is not None:
            query = query.where(Appointment.tenant_id == tenant_id)
        return query.order_by(Appointment.start_at.asc(), Appointment.id.asc())

    def appointments_for_doctor_on_date(
        self, doctor_id: int, day: date, tenant_id: int | None = None
    ) -> list[Appointment]:
        with self._storage_errors('read doctor appointments'):
            appointments = list(self._db.scalars(self._active_on_date_query(doctor_id, day, tenant_id)))

        logger.debug('Doctor %s has %s active appointments on %s', doctor_id, len(appointments), day)
        return appointments

    def _lock_doctor_schedule(self, tenant_id: int, doctor_id: int) -> None:
        if self._db.get_bind().dialect.name == 'postgresql':
            self._db.execute(select(func.pg_advisory_xact_lock(tenant_id, doctor_id)))

    def _find_active_conflict(self, appointment: Appointment):
        existing = list(self._db.scalars(
            self._active_on_date_query(
                appointment.doctor_id,
                appointment.start_at.date(),
                appointment.tenant_id,
            )
        ))
        conflict = find_conflict(appointment.doctor_id, appointment.start_at, appointment.end_at, existing)
        if conflict is not None:
            # Keep the row readable after the rollback that follows.
            self._db.expunge(conflict)
        return conflict

    def _winning_appointment(self, appointment: Appointment):
        """Re-read the committed appointment that the exclusion constraint protected."""
        with self._storage_errors('read the conflicting appointment'):
            try:
                return self._find_active_conflict(appointment)
            finally:
                self._db.rollback()

    def insert_appointment(self, appointment: Appointment) -> Appointment:
        try:
            if appointment.doctor_id is not None:
                self._lock_doctor_schedule(appointment.tenant_id, appointment.doctor_id)
                conflict = self._find_active_conflict(appointment)
                if conflict is not None:
                    self._db.rollback()
                    raise ConflictError(conflict)

            self._db.add(appointment)
            self._db.commit()
            self._db.refresh(appointment)
        except IntegrityError as exc:
            self._db.rollback()
            if NO_OVERLAP_CONSTRAINT in str(exc.orig):
                winner = self._winning_appointment(appointment)
                logger.warning(
                    'Exclusion constraint rejected appointment for doctor %s at %s; winner is %s',
                    appointment.doctor_id,
                    appointment.start_at,
                    winner.id if winner is not None else 'unknown',
                )
                raise ConflictError(winner) from exc
            logger.exception('Appointment insert violated a database constraint')
            raise StorageUnavailable('Appointment could not be saved.') from exc
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception('Appointment store failed while inserting an appointment')
            raise StorageUnavailable('Appointment store unavailable while inserting an appointment.') from exc

        return appointment

    def update_appointment_status(
        self,
        appointment_id: int,
        expected: AppointmentStatus,
        new_status: AppointmentStatus,
        now: datetime,
        cancel_reason: str | None = None,
    ) -> Appointment:
        values = {'status': new_status.value, 'updated_at': now}
        if cancel_reason is not None:
            values['cancel_reason'] = cancel_reason

        with self._storage_errors('update an appointment status'):
            result = self._db.execute(
                update(Appointment)
                .where(Appointment.id == appointment_id, Appointment.status == expected.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self._db.rollback()
                current = self._db.get(Appointment, appointment_id)
                if current is None:
                    raise NotFound('appointment', appointment_id)
                raise InvalidTransition(current.status, new_status.value)

            self._db.commit()
            appointment = self._db.get(Appointment, appointment_id)
            self._db.refresh(appointment)

        return appointment

    def get_appointment(self, appointment_id: int) -> Appointment | None:
        with self._storage_errors('read an appointment'):
            return self._db.get(Appointment, appointment_id)

    def _filtered_query(
        self,
        *,
        tenant_id: int | None,
        doctor_id: int | None,
        patient_id: int | None,
        start_from: datetime | None,
        start_before: datetime | None,
        status: AppointmentStatus | None,
        type: str | None,
    ):
        query = select(Appointment)
        if tenant_id is not None:
            query = query.where(Appointment.tenant_id == tenant_id)
        if doctor_id is not None:
            query = query.where(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.where(Appointment.patient_id == patient_id)
        if start_from is not None:
            query = query.where(Appointment.start_at >= start_from)
        if start_before is not None:
            query = query.where(Appointment.start_at < start_before)
        if status is not None:
            query = query.where(Appointment.status == status.value)
        if type is not None:
            query = query.where(Appointment.type == type)
        return query

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
        query = self._filtered_query(
            tenant_id=tenant_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_from=start_from,
            start_before=start_before,
            status=status,
            type=type,
        )

        if newest_first:
            query = query.order_by(Appointment.start_at.desc(), Appointment.id.desc())
        else:
            query = query.order_by(Appointment.start_at.asc(), Appointment.id.asc())

        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        with self._storage_errors('list appointments'):
            return list(self._db.scalars(query))

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
        query = self._filtered_query(
            tenant_id=tenant_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            start_from=start_from,
            start_before=start_before,
            status=status,
            type=type,
        )

        with self._storage_errors('count appointments'):
            return self._db.scalar(select(func.count()).select_from(query.subquery()))
