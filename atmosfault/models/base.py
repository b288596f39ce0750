"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Designed to be portable between SQLite (dev) and PostgreSQL (prod).
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from atmosfault.config import config


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat those as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enable_sqlite_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, 'connect')
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """
        Configure SQLite for better write performance.

        WAL mode allows concurrent reads during writes - the sync job
        upserts telemetry while tracking requests query it.
        """
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.execute('PRAGMA synchronous=NORMAL')
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


def build_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine with settings appropriate for the database type."""
    url = url or config.database.url
    engine_kwargs = {
        'echo': config.debug,  # Log SQL in debug mode
    }
    if url.startswith('sqlite'):
        engine_kwargs['connect_args'] = {'check_same_thread': False}
    engine_kwargs.update(kwargs)

    engine = create_engine(url, **engine_kwargs)
    if url.startswith('sqlite') and ':memory:' not in url and url != 'sqlite://':
        _enable_sqlite_pragmas(engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy loading issues
    )


engine = build_engine()

# Session factory
SessionLocal = build_session_factory(engine)


@contextmanager
def get_session(factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Context manager for database sessions.

    Usage:
        with get_session() as session:
            session.execute(...)

    Automatically handles commit/rollback and session cleanup.
    """
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist. For production,
    use Alembic migrations instead.
    """
    # Import models so they register on Base.metadata
    from atmosfault.models import telemetry_sample, tracking_record  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
