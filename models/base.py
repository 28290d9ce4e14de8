# models/base.py
"""
Engine and session plumbing shared by the store modules.

The engine is built lazily from DATABASE_URL the first time anything needs
it and cached for the process; dispose_engine() drops it (tests point
DATABASE_URL at a fresh SQLite file and call it).
"""
from contextlib import contextmanager
import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    pass


def make_engine_from_env() -> Engine:
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    return make_engine(url)


def make_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    engine = create_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine, "connect")
    def _sqlite_foreign_keys(dbapi_conn, _record):
        # SQLite ignores FOREIGN KEY / ON DELETE unless asked per connection
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    return engine


_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def init_engine_and_session():
    """Build (once) and return the engine and its session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = make_engine_from_env()
        # expire_on_commit=False: orders and payments are handed out detached
        _session_factory = sessionmaker(
            bind=_engine, autoflush=False, expire_on_commit=False)
    return _engine, _session_factory


def dispose_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def SessionLocal() -> Session:
    _, factory = init_engine_and_session()
    return factory()


@contextmanager
def session_scope():
    """Commit on success, roll back on any exception, always close."""
    s = SessionLocal()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
