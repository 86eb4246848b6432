from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # FastAPI serves sync routes from a thread pool
        connect_args["check_same_thread"] = False
    return create_engine(database_url, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_databases: set[str] = set()


def ensure_booking_schema(bind: Engine | None = None) -> None:
    bind = bind or engine

    if str(bind.url) in _checked_databases:
        return

    with _schema_lock:
        if str(bind.url) in _checked_databases:
            return

        inspector = inspect(bind)

        if 'bookings' not in inspector.get_table_names():
            _checked_databases.add(str(bind.url))
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}

        with bind.begin() as connection:
            if 'external_event_ref' not in existing_columns:
                connection.execute(text('ALTER TABLE bookings ADD COLUMN external_event_ref VARCHAR'))
                if 'google_event_id' in existing_columns:
                    connection.execute(
                        text(
                            'UPDATE bookings SET external_event_ref = google_event_id '
                            'WHERE google_event_id IS NOT NULL'
                        )
                    )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_time_range ON bookings(start_time, end_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_end_time ON slots(end_time)')
            )

        _checked_databases.add(str(bind.url))


def init_db(bind: Engine | None = None) -> None:
    from backend.models import booking, client, slot  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_booking_schema(bind)
