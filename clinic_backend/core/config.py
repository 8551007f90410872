import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)
SQLITE_BUSY_TIMEOUT_SECONDS = float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

WORKING_HOURS = os.getenv("WORKING_HOURS", "08:00-12:00,13:30-17:30")
DEFAULT_APPOINTMENT_MINUTES = int(os.getenv("DEFAULT_APPOINTMENT_MINUTES", "30"))
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "30"))
DOCTOR_APPOINTMENTS_RANGE_DAYS = int(os.getenv("DOCTOR_APPOINTMENTS_RANGE_DAYS", "7"))
APPOINTMENT_PAGE_SIZE = int(os.getenv("APPOINTMENT_PAGE_SIZE", "10"))

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), default=["http://localhost:4200"])

def validate_runtime_config() -> None:
    if APP_ENV.lower() != "production":
        return
    if not os.getenv("DATABASE_URL"):
        raise RuntimeError("DATABASE_URL must be set in production.")
    if DATABASE_URL.startswith("sqlite"):
        raise RuntimeError("SQLite cannot enforce appointment exclusion in production; use PostgreSQL.")
