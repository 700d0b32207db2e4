"""Clock-in / clock-out lifecycle.

A subject is either ``closed`` (no open session) or ``open`` (exactly one
session whose ``clock_out`` is NULL). ``clock_in`` is the only way from
closed to open and ``clock_out`` the only way back. Both run under one lock
so two concurrent clock-ins for a subject cannot both see "no open session";
the partial unique index on ``time_clocks`` backs this up across processes.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.errors import (
    AlreadyClosedError,
    ConflictError,
    NotFoundError,
    PortalError,
    StorageError,
    ValidationError,
)
from ..crud import timeclocks
from ..models.timeclock import TimeClock
from .event_log import EventLog
from .timecalc import elapsed_seconds, to_utc_iso, utcnow

logger = logging.getLogger(__name__)

CLOCK_CATEGORY = "timeclock"


class SessionManager:
    def __init__(self, event_log: EventLog, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.event_log = event_log
        self._clock = clock
        self._lock = threading.Lock()

    def clock_in(
        self,
        db: Session,
        subject_id: str,
        device_info: str = "",
        *,
        subject_name: str | None = None,
    ) -> TimeClock:
        subject_id = (subject_id or "").strip()
        if not subject_id:
            raise ValidationError("subject_id is required")
        with self._lock:
            existing = timeclocks.get_open_session(db, subject_id)
            if existing is not None:
                logger.warning(
                    "timeclock.conflict",
                    extra={"extra_data": {"subject_id": subject_id, "session_id": existing.session_id}},
                )
                raise ConflictError(
                    "already clocked in",
                    details={"subject_id": subject_id, "session_id": existing.session_id},
                )

            started = to_utc_iso(self._clock())
            session = TimeClock(
                session_id=uuid4().hex,
                subject_id=subject_id,
                subject_name=(subject_name or "").strip() or None,
                clock_in=started,
                clock_out=None,
                device_info=device_info or "",
            )
            # No flush here: the row is written by the commit inside
            # ``append``, under the log lock, together with its event.
            db.add(session)
            try:
                self.event_log.append(
                    db,
                    {
                        "action": "clock_in",
                        "subject_id": subject_id,
                        "subject_name": session.subject_name,
                        "task_name": "Clock in",
                        "category": CLOCK_CATEGORY,
                        "status": "clocked_in",
                        "timestamp": started,
                        "detail": "Clocked in",
                        "metadata": {"sessionId": session.session_id, "deviceInfo": session.device_info},
                    },
                )
            except StorageError as exc:
                if not isinstance(exc.__cause__, IntegrityError):
                    raise
                # another process won the race; the index refused a second open row
                logger.warning("timeclock.conflict", extra={"extra_data": {"subject_id": subject_id}})
                raise ConflictError("already clocked in", details={"subject_id": subject_id}) from exc
            except PortalError:
                db.expunge(session)
                raise
        logger.info(
            "timeclock.clock_in",
            extra={"extra_data": {"subject_id": subject_id, "session_id": session.session_id}},
        )
        return session

    def clock_out(self, db: Session, session_id: str) -> TimeClock:
        with self._lock:
            session = timeclocks.get_session(db, session_id)
            if session is None:
                raise NotFoundError("no active session", details={"session_id": session_id})
            if not session.is_open:
                raise AlreadyClosedError(
                    "session already clocked out",
                    details={"session_id": session_id, "clock_out": session.clock_out},
                )
            ended = to_utc_iso(self._clock())
            duration = elapsed_seconds(session.clock_in, ended)
            session.clock_out = ended
            self.event_log.append(
                db,
                {
                    "action": "clock_out",
                    "subject_id": session.subject_id,
                    "subject_name": session.subject_name,
                    "task_name": "Clock out",
                    "category": CLOCK_CATEGORY,
                    "status": "clocked_out",
                    "timestamp": ended,
                    "detail": "Clocked out",
                    "metadata": {"sessionId": session.session_id, "durationSeconds": duration},
                },
            )
        logger.info(
            "timeclock.clock_out",
            extra={
                "extra_data": {
                    "subject_id": session.subject_id,
                    "session_id": session.session_id,
                    "duration_seconds": duration,
                }
            },
        )
        return session

    def get_open_session(self, db: Session, subject_id: str) -> TimeClock | None:
        return timeclocks.get_open_session(db, subject_id)

    def recent_sessions(self, db: Session, limit: int = 30) -> list[TimeClock]:
        return timeclocks.list_recent_sessions(db, limit=limit)

    def attendance(self, db: Session, limit: int = 500) -> dict[str, list[TimeClock]]:
        return timeclocks.attendance_by_subject(db, limit=limit)
