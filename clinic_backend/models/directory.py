"""Directory records the scheduling core reads but does not manage."""

from sqlalchemy import Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class Tenant(Base):
    """Represents a clinic."""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    full_name = Column(String, nullable=False)


class Doctor(Base):
    """Represents a doctor working under exactly one clinic."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    full_name = Column(String, nullable=False)
    specialty = Column(String)
