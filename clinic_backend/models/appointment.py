"""Appointment model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text

from clinic_backend.database import Base
from clinic_backend.scheduling.lifecycle import AppointmentStatus


class Appointment(Base):
    """Represents a patient appointment, optionally with a doctor."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_appointments_time_range"),
    )

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    type = Column(String, nullable=False)
    channel = Column(String, nullable=False, default="App")
    address = Column(Text, nullable=True)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    cancel_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Appointment id={self.id} doctor={self.doctor_id} "
            f"{self.start_at}-{self.end_at} status={self.status}>"
        )
