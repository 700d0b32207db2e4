"""SQLAlchemy engine and session helpers."""

from __future__ import annotations

import logging
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from ..core.config import settings
from ..core.errors import StorageError

LOGGER = logging.getLogger(__name__)

# SQLite connections are shared by FastAPI worker threads; other engines ignore
# ``check_same_thread``.
CONNECT_ARGS = {"check_same_thread": False} if settings.DB_URL.startswith("sqlite") else {}

engine = create_engine(settings.DB_URL, connect_args=CONNECT_ARGS)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db(request: Request):
    """FastAPI dependency that yields a session and guarantees cleanup.

    ``create_app`` may bind a different session factory (tests use an
    in-memory engine); the module-level ``SessionLocal`` is the fallback.
    """

    factory = getattr(request.app.state, "session_factory", None) or SessionLocal
    db = factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def storage_guard(db: Session, operation: str):
    """Roll back and surface database failures as ``StorageError``.

    Nothing is retried here; the caller decides what to do with the error.
    """

    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.error(
            "storage.failed",
            exc_info=True,
            extra={"extra_data": {"operation": operation}},
        )
        raise StorageError(f"{operation} failed", details={"operation": operation}) from exc
