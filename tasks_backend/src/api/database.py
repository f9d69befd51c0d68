import logging
import sqlite3

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from src.api.config import get_settings

logger = logging.getLogger(__name__)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str, pool_size: int = 10, pool_timeout: int = 30) -> Engine:
    """
    Create the process-wide engine.

    Server databases get a bounded pool: at most `pool_size` connections, no
    overflow, callers wait up to `pool_timeout` seconds for a free one.
    """
    if database_url.startswith("sqlite"):
        # SQLite needs check_same_thread=False for multithreading in FastAPI
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            future=True,
        )
    return create_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=0,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
        future=True,
    )


_settings = get_settings()
engine = build_engine(_settings.database_url, _settings.db_pool_size, _settings.db_pool_timeout)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency that provides a database session and ensures proper cleanup.

    Closing the session rolls back anything uncommitted and returns the
    connection to the pool, on success and on error alike.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = engine) -> None:
    """Create the users and tasks tables if they do not exist."""
    from src.api.models import Base

    Base.metadata.create_all(bind=bind)
    logger.info("Tables ready (users, tasks)")
