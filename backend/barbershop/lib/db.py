"""
Database engine and session management using SQLAlchemy 2.x.
Provides connection pooling, session factories and transaction helpers.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.types import DateTime, TypeDecorator

from barbershop.lib.settings import settings


# SQLSTATEs reported by PostgreSQL when a transaction lost a race
SERIALIZATION_FAILURE_CODES = {"40001", "40P01"}
QUERY_CANCELED_CODE = "57014"


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp.

    Values are normalized to UTC on the way in and always come back aware,
    including on SQLite which has no native timezone support.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetime passed to a UTCDateTime column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections open every transaction with BEGIN IMMEDIATE so that
    writers are serialized the same way SERIALIZABLE isolation would.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
    )


engine = create_db_engine(settings.database_url, echo=settings.debug)


def make_session_factory(bind: Engine) -> sessionmaker:
    """Session factory bound to an engine, configured like SessionLocal."""
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


SessionLocal = make_session_factory(engine)


@contextmanager
def session_scope(
    session_factory: sessionmaker,
    serializable: bool = False,
    timeout_ms: Optional[int] = None,
) -> Generator[Session, None, None]:
    """
    Run a unit of work in one transaction.

    Commits when the block exits normally, rolls back and re-raises otherwise.

    Args:
        session_factory: sessionmaker to open the session from
        serializable: Run at SERIALIZABLE isolation
        timeout_ms: Statement timeout for the transaction (PostgreSQL only)
    """
    session = session_factory()
    try:
        dialect = session.get_bind().dialect.name
        if serializable and dialect != "sqlite":
            session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
        if timeout_ms and dialect == "postgresql":
            # SET does not accept bind parameters
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _sqlstate(exc: BaseException) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_serialization_failure(exc: BaseException) -> bool:
    """True when the store aborted the transaction because of a concurrent writer."""
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in SERIALIZATION_FAILURE_CODES:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return (
        "could not serialize" in message
        or "deadlock detected" in message
        or "database is locked" in message
    )


def is_statement_timeout(exc: BaseException) -> bool:
    """True when the transaction was cancelled by its statement timeout."""
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) == QUERY_CANCELED_CODE:
        return True
    return "statement timeout" in str(getattr(exc, "orig", exc)).lower()


def init_db(bind: Optional[Engine] = None):
    """
    Initialize the database by creating all tables.
    Should be called after all models are imported.
    """
    Base.metadata.create_all(bind=bind or engine)


def drop_db(bind: Optional[Engine] = None):
    """
    Drop all tables. Use with caution - for testing only.
    """
    Base.metadata.drop_all(bind=bind or engine)
