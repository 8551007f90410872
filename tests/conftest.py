import os
from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.database import Base  # noqa: E402
from clinic_backend.models.appointment import Appointment  # noqa: E402
from clinic_backend.models.directory import Doctor, Patient, Tenant  # noqa: E402


def make_booked(
    start_at: datetime,
    end_at: datetime,
    status: str = 'Scheduled',
    doctor_id: int = 1,
    appointment_id: int = 1,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=appointment_id,
        doctor_id=doctor_id,
        start_at=start_at,
        end_at=end_at,
        status=status,
    )


def seed_directory(db) -> None:
    db.add_all([
        Tenant(id=1, name='North Clinic'),
        Tenant(id=2, name='South Clinic'),
        Patient(id=1, full_name='Lan Tran'),
        Patient(id=2, full_name='Minh Pham'),
        Doctor(id=1, tenant_id=1, full_name='Dr. Hoa Nguyen', specialty='General'),
        Doctor(id=2, tenant_id=2, full_name='Dr. Quang Le', specialty='Cardiology'),
    ])
    db.commit()


@pytest.fixture
def appointment_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    tables = [Tenant.__table__, Patient.__table__, Doctor.__table__, Appointment.__table__]
    Base.metadata.create_all(bind=engine, tables=tables)

    db = testing_session_local()
    try:
        seed_directory(db)
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(tables)))
