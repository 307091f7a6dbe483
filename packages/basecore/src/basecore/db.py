import contextlib
import functools
from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from basecore.settings import get_settings


def build_engine(database_url: str) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite connections get a generous busy timeout so concurrent credit
    debits wait for the write lock instead of failing.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(
        database_url,
        pool_pre_ping=True,
        echo=False,
        connect_args=connect_args,
    )


@functools.lru_cache()
def get_engine() -> Engine:
    """Process-wide engine for DATABASE_URL, built on first use."""
    settings = get_settings()
    return build_engine(settings.DATABASE_URL)


@functools.lru_cache()
def get_sessionmaker() -> sessionmaker:
    """
    Process-wide session factory.

    Instances survive commit without expiring, so results built from ORM
    rows can be read after the session that loaded them has closed.
    """
    engine = get_engine()
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Iterator[Session]:
    """
    Generator yielding a database session.

    Yields a database session and ensures it's closed after use.
    """
    SessionLocal = get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextlib.contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Open a session from the factory, rolling back on error and always closing it."""
    SessionLocal = factory or get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
