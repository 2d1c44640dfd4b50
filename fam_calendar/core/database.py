"""Database configuration and session management for SQLite.

This module configures the SQLite database engine with settings suited to
a service where a background sync job writes while requests read:

    - **WAL (Write-Ahead Logging)**: Readers are not blocked while the sync
      engine replaces a window of cached external events.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so that cached
      events and subscriptions can never outlive the rows they point to.

    - **check_same_thread=False**: FastAPI runs sync endpoints and the
      timeline fetches in worker threads, so a connection may be used from
      a thread other than the one that opened it.
"""

from sqlalchemy import event as sa_event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from fam_calendar.core.config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool. The
    listener is registered on ``Engine`` so test engines get them too.
    """
    if type(dbapi_connection).__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Import models so their tables are registered on the metadata
    import fam_calendar.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session


def session_factory(bind):
    """Return a callable opening new sessions on ``bind``.

    Used by the background sync, which opens one session per member.
    """

    def _open() -> Session:
        return Session(bind)

    return _open
