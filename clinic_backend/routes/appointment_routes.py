from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core import config
from clinic_backend.database import SessionLocal, ensure_appointment_schema
from clinic_backend.scheduling.booking import BookingRequest, BookingService
from clinic_backend.scheduling.errors import (
    DoctorTenantMismatch,
    InvalidTimeRange,
    InvalidTransition,
    NotFound,
    SchedulingError,
    SlotUnavailable,
    StorageUnavailable,
)
from clinic_backend.scheduling.lifecycle import AppointmentStatus
from clinic_backend.scheduling.store import SqlAppointmentStore

router = APIRouter(tags=['appointments'])

APPOINTMENT_CHANNELS = ('App', 'Web', 'Phone', 'Counter', 'Staff')
MAX_APPOINTMENT_TYPE_LENGTH = 50
MAX_ADDRESS_LENGTH = 500
MAX_CANCEL_REASON_LENGTH = 600
MAX_PAGE_SIZE = 100
DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class CreateAppointmentRequest(BaseModel):
    tenant_id: int
    patient_id: int
    doctor_id: int | None = None
    start_at: datetime
    end_at: datetime | None = None
    type: str
    channel: str = 'App'
    address: str | None = None

    @field_validator('start_at', 'end_at')
    @classmethod
    def validate_wall_clock(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is not None:
            raise ValueError('Appointment times must be clinic-local times without a UTC offset.')
        return value

    @field_validator('type')
    @classmethod
    def validate_type(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Appointment type is required.')
        if len(normalized) > MAX_APPOINTMENT_TYPE_LENGTH:
            raise ValueError(f'Appointment type must be {MAX_APPOINTMENT_TYPE_LENGTH} characters or fewer.')
        return normalized

    @field_validator('channel')
    @classmethod
    def validate_channel(cls, value: str) -> str:
        normalized = value.strip().lower()
        for channel in APPOINTMENT_CHANNELS:
            if channel.lower() == normalized:
                return channel
        raise ValueError(f'Invalid channel. Expected one of: {", ".join(APPOINTMENT_CHANNELS)}.')

    @field_validator('address')
    @classmethod
    def validate_address(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_ADDRESS_LENGTH:
            raise ValueError(f'Address must be {MAX_ADDRESS_LENGTH} characters or fewer.')

        return normalized


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_CANCEL_REASON_LENGTH:
            raise ValueError(f'Cancel reason must be {MAX_CANCEL_REASON_LENGTH} characters or fewer.')

        return normalized


class AppointmentResponse(BaseModel):
    id: int
    tenant_id: int
    patient_id: int
    doctor_id: int | None = None
    start_at: datetime
    end_at: datetime
    type: str
    channel: str
    address: str | None = None
    status: str
    cancel_reason: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentPageResponse(BaseModel):
    items: list[AppointmentResponse]
    total_count: int
    page_number: int
    page_size: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool


class AvailabilityResponse(BaseModel):
    doctor_id: int
    start_at: datetime
    end_at: datetime
    is_available: bool
    conflicting_appointment_id: int | None = None
    conflict_start_at: datetime | None = None
    conflict_end_at: datetime | None = None


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def build_booking_service(db: Session) -> BookingService:
    return BookingService(SqlAppointmentStore(db))


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (SlotUnavailable, InvalidTransition)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (InvalidTimeRange, DoctorTenantMismatch)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, StorageUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE_DETAIL)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(data: CreateAppointmentRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).book(
            BookingRequest(
                tenant_id=data.tenant_id,
                patient_id=data.patient_id,
                doctor_id=data.doctor_id,
                start_at=data.start_at,
                end_at=data.end_at,
                type=data.type,
                channel=data.channel,
                address=data.address,
            ),
            now=datetime.now(),
        )
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('', response_model=AppointmentPageResponse)
def list_appointments(
    tenant_id: int | None = Query(default=None),
    patient_id: int | None = Query(default=None),
    doctor_id: int | None = Query(default=None),
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    appointment_type: str | None = Query(default=None, alias='type'),
    page_number: int = Query(default=1, ge=1),
    page_size: int = Query(default=config.APPOINTMENT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        page = build_booking_service(db).search_appointments(
            tenant_id=tenant_id,
            patient_id=patient_id,
            doctor_id=doctor_id,
            from_day=from_date,
            to_day=to_date,
            status=status_filter,
            type=appointment_type or None,
            page_number=page_number,
            page_size=page_size,
        )
        return AppointmentPageResponse(
            items=[AppointmentResponse.model_validate(appointment) for appointment in page.items],
            total_count=page.total_count,
            page_number=page.page_number,
            page_size=page.page_size,
            total_pages=page.total_pages,
            has_previous_page=page.has_previous_page,
            has_next_page=page.has_next_page,
        )
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/today', response_model=list[AppointmentResponse])
def list_today_appointments(
    tenant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = build_booking_service(db).today_appointments(tenant_id=tenant_id, now=datetime.now())
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctor/{doctor_id}', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    doctor_id: int,
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = build_booking_service(db).doctor_appointments(
            doctor_id,
            from_day=from_date,
            to_day=to_date,
            now=datetime.now(),
        )
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/doctor/{doctor_id}/availability', response_model=AvailabilityResponse)
def check_doctor_availability(
    doctor_id: int,
    start_at: datetime = Query(...),
    end_at: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    resolved_end = end_at or start_at + timedelta(minutes=config.DEFAULT_APPOINTMENT_MINUTES)

    try:
        conflict = build_booking_service(db).check_availability(doctor_id, start_at, resolved_end)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc

    return AvailabilityResponse(
        doctor_id=doctor_id,
        start_at=start_at,
        end_at=resolved_end,
        is_available=conflict is None,
        conflicting_appointment_id=conflict.id if conflict is not None else None,
        conflict_start_at=conflict.start_at if conflict is not None else None,
        conflict_end_at=conflict.end_at if conflict is not None else None,
    )


@router.get('/doctor/{doctor_id}/timeslots', response_model=list[datetime])
def list_available_timeslots(
    doctor_id: int,
    day: date = Query(..., alias='date'),
    duration_minutes: int = Query(default=config.DEFAULT_SLOT_MINUTES, ge=5, le=480),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_booking_service(db).available_slots(doctor_id, day, duration_minutes)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/tenant/{tenant_id}', response_model=list[AppointmentResponse])
def list_tenant_appointments(
    tenant_id: int,
    from_date: date | None = Query(default=None),
    to_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = build_booking_service(db).tenant_appointments(tenant_id, from_day=from_date, to_day=to_date)
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def list_patient_appointments(
    patient_id: int,
    tenant_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = build_booking_service(db).patient_appointments(patient_id, tenant_id=tenant_id)
        return [AppointmentResponse.model_validate(appointment) for appointment in appointments]
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return AppointmentResponse.model_validate(build_booking_service(db).get_appointment(appointment_id))
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).confirm(appointment_id, now=datetime.now())
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/start', response_model=AppointmentResponse)
def start_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).start(appointment_id, now=datetime.now())
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).complete(appointment_id, now=datetime.now())
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest | None = None,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).cancel(
            appointment_id,
            reason=data.reason if data is not None else None,
            now=datetime.now(),
        )
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/no-show', response_model=AppointmentResponse)
def mark_appointment_no_show(appointment_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        appointment = build_booking_service(db).mark_no_show(appointment_id, now=datetime.now())
        return AppointmentResponse.model_validate(appointment)
    except (SchedulingError, StorageUnavailable) as exc:
        raise to_http_exception(exc) from exc
