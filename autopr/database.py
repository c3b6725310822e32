from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from .models import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets the same thread/lock settings for every caller."""
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": 30,  # Wait up to 30 seconds for lock to be released
        },
        pool_pre_ping=True,
    )

    # WAL mode for concurrent readers while a job is being written
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)
