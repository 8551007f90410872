from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config
from clinic_backend.scheduling.lifecycle import INACTIVE_STATUSES


NO_OVERLAP_CONSTRAINT = 'appointments_no_overlap'


def configure_sqlite_transactions(target: Engine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite defers BEGIN until the first write, which lets two bookings read
    the same free slot before either inserts. BEGIN IMMEDIATE serializes them.
    """

    @event.listens_for(target, 'connect')
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, 'begin')
    def _begin_immediate(connection):
        connection.exec_driver_sql('BEGIN IMMEDIATE')


def create_database_engine(
    url: str,
    echo: bool = False,
    sqlite_timeout: float = config.SQLITE_BUSY_TIMEOUT_SECONDS,
) -> Engine:
    if url.startswith('sqlite'):
        # Readers queue behind writers too; the busy timeout bounds that wait.
        created = create_engine(
            url,
            echo=echo,
            connect_args={'check_same_thread': False, 'timeout': sqlite_timeout},
        )
        configure_sqlite_transactions(created)
        return created
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = create_database_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False


def _inactive_status_sql() -> str:
    return ', '.join(f"'{status.value}'" for status in sorted(INACTIVE_STATUSES, key=lambda s: s.value))


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_start '
                    'ON appointments(tenant_id, doctor_id, start_at)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient_start ON appointments(patient_id, start_at)')
            )

            if engine.dialect.name == 'postgresql':
                connection.execute(text('CREATE EXTENSION IF NOT EXISTS btree_gist'))
                existing = connection.execute(
                    text('SELECT 1 FROM pg_constraint WHERE conname = :name'),
                    {'name': NO_OVERLAP_CONSTRAINT},
                ).first()
                if existing is None:
                    connection.execute(
                        text(
                            f'ALTER TABLE appointments ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} '
                            'EXCLUDE USING gist ('
                            'tenant_id WITH =, doctor_id WITH =, '
                            "tsrange(start_at, end_at, '[)') WITH &&"
                            f') WHERE (doctor_id IS NOT NULL AND status NOT IN ({_inactive_status_sql()}))'
                        )
                    )

        _appointment_schema_checked = True
