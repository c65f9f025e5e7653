from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_scheduler.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_slot_ledger_schema_checked = False
_schedule_schema_checked = False


def ensure_slot_ledger_schema(bind=None) -> None:
    """Create the ledger key and lookup indexes on databases whose tables predate them."""
    global _slot_ledger_schema_checked

    if _slot_ledger_schema_checked:
        return

    with _schema_lock:
        if _slot_ledger_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)

        if 'slot_instances' not in inspector.get_table_names():
            _slot_ledger_schema_checked = True
            return

        with bind.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_slot_instance_key '
                    'ON slot_instances(doctor_id, date, start_time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slot_instances_doctor_date ON slot_instances(doctor_id, date)')
            )

        _slot_ledger_schema_checked = True


def ensure_schedule_schema(bind=None) -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked:
        return

    with _schema_lock:
        if _schedule_schema_checked:
            return

        bind = bind or engine
        inspector = inspect(bind)
        table_names = inspector.get_table_names()

        with bind.begin() as connection:
            if 'working_hours' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_working_hours_doctor_day '
                        'ON working_hours(doctor_id, day_of_week)'
                    )
                )
            if 'off_days' in table_names:
                connection.execute(
                    text('CREATE UNIQUE INDEX IF NOT EXISTS uq_off_day_doctor_date ON off_days(doctor_id, date)')
                )

        _schedule_schema_checked = True
