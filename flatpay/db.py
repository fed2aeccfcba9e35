# flatpay/db.py
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str) -> Engine:
    # request handlers run in the threadpool; sqlite connections must be shareable
    connect_args = {"check_same_thread": False} if _is_sqlite(url) else {}
    eng = create_engine(url, pool_pre_ping=True, connect_args=connect_args, future=True)

    if _is_sqlite(url):
        # invoice_items / expenses rely on ON DELETE rules
        @event.listens_for(eng, "connect")
        def _sqlite_fk_on(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

    return eng


engine = build_engine(settings.database_url)

# services keep using rows after commit (response building, audit), so no expiry on commit
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def init_db() -> None:
    """Create all tables. Local runs and tests only; deployed databases go through Alembic."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for CLI commands: rolled back on error, always closed."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """
    FastAPI dependency, one session per request.

    On Postgres a failed statement aborts the transaction; the rollback here
    keeps a handler's error from poisoning the pooled connection.
    """
    with session_scope() as db:
        yield db
