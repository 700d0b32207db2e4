"""JSON endpoints for clocking in and out and for attendance listings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import NotFoundError
from ..db.session import get_db
from ..deps.tracker import get_tracker
from ..middlewares import subject_ctx_var
from ..schemas.timeclock import ClockInRequest, SessionOut
from ..services.tracker import ActivityTracker

router = APIRouter(prefix="/api/v1/timeclock", tags=["timeclock"])


@router.post("/clock-in", response_model=SessionOut, status_code=201)
def api_clock_in(
    payload: ClockInRequest,
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    subject_ctx_var.set(payload.subject_id)
    session = tracker.sessions.clock_in(
        db,
        payload.subject_id,
        payload.device_info,
        subject_name=payload.subject_name,
    )
    return SessionOut.model_validate(session)


@router.post("/sessions/{session_id}/clock-out", response_model=SessionOut)
def api_clock_out(
    session_id: str,
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    session = tracker.sessions.clock_out(db, session_id)
    return SessionOut.model_validate(session)


@router.get("/open/{subject_id}", response_model=SessionOut)
def api_open_session(
    subject_id: str,
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    session = tracker.sessions.get_open_session(db, subject_id)
    if session is None:
        raise NotFoundError("not clocked in", details={"subject_id": subject_id})
    return SessionOut.model_validate(session)


@router.get("/sessions", response_model=list[SessionOut])
def api_recent_sessions(
    limit: int = Query(default=settings.RECENT_SESSIONS_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    return [SessionOut.model_validate(row) for row in tracker.sessions.recent_sessions(db, limit=limit)]


@router.get("/attendance", response_model=dict[str, list[SessionOut]])
def api_attendance(
    limit: int = Query(default=settings.ATTENDANCE_LIMIT, ge=1, le=5000),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    grouped = tracker.sessions.attendance(db, limit=limit)
    return {
        subject_id: [SessionOut.model_validate(row) for row in rows]
        for subject_id, rows in grouped.items()
    }
