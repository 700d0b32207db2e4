"""Application factory and top-level wiring for the Employee Portal core.

``create_app`` brings together configuration, the database, the shared
``ActivityTracker`` (aggregator, event log, time clock, retention) and the
JSON routers. Building the app is explicit so tests can hand in their own
engine and clock instead of the configured database.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, settings as default_settings
from .core.errors import (
    PortalError,
    http_exception_handler,
    portal_exception_handler,
    validation_exception_handler,
)
from .db.migrate import run_migrations
from .db.session import Base, SessionLocal, engine as default_engine
from .middlewares import RequestIdMiddleware
from .services.timecalc import utcnow
from .services.tracker import build_tracker

# Importing the SQLAlchemy models registers them with the metadata. Without
# this step ``Base.metadata.create_all`` would not know about our tables.
from .models import activity as _activity  # noqa: F401
from .models import snapshot as _snapshot  # noqa: F401
from .models import timeclock as _timeclock  # noqa: F401

LOGGER = logging.getLogger(__name__)


def create_app(
    *,
    config: AppSettings | None = None,
    engine: Engine | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    config = config or default_settings
    app = FastAPI(title=config.APP_NAME)

    # ---------- DB init/migrations ----------
    if engine is None:
        engine = default_engine
        session_factory = SessionLocal
    else:
        session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    app.state.session_factory = session_factory

    # ---------- Tracker ----------
    # Rebuild the running totals from the last checkpoint plus newer events
    # before the first request is served.
    tracker = build_tracker(config, clock=clock)
    with session_factory() as db:
        tracker.event_log.restore(db)
    app.state.tracker = tracker

    app.add_middleware(RequestIdMiddleware)

    # ---------- Exception handling ----------
    app.add_exception_handler(PortalError, portal_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # ---------- Routers ----------
    from .routers import api_events, api_stats, api_timeclock

    app.include_router(api_timeclock.router)
    app.include_router(api_events.router)
    app.include_router(api_stats.router)

    LOGGER.info("app.created", extra={"extra_data": {"db": engine.url.render_as_string(hide_password=True)}})
    return app


__all__ = ["create_app"]
