from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db.session import get_db
from ..deps.tracker import get_tracker
from ..middlewares import subject_ctx_var
from ..schemas.activity import CompactionOut, EventCreate, EventOut
from ..services.tracker import ActivityTracker

router = APIRouter(prefix="/api/v1/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=201)
def api_log_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    subject_ctx_var.set(payload.subject_id)
    event = tracker.event_log.record_task_event(db, payload.model_dump())
    return EventOut.from_event(event)


@router.get("", response_model=list[EventOut])
def api_query_events(
    action: str | None = Query(default=None),
    subject_id: str | None = Query(default=None, alias="subjectId"),
    category: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    events = tracker.event_log.query(
        db,
        action=action,
        subject_id=subject_id,
        category=category,
        start_date=start_date,
        end_date=end_date,
    )
    return [EventOut.from_event(event) for event in events]


@router.get("/recent", response_model=list[EventOut])
def api_recent_events(
    limit: int = Query(default=settings.RECENT_EVENTS_LIMIT, ge=1, le=1000),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    return [EventOut.from_event(event) for event in tracker.event_log.recent(db, limit=limit)]


@router.get("/export.csv")
def api_export_csv(
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    csv_text = tracker.event_log.export_csv(db)
    if csv_text is None:
        return Response(status_code=204)
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="activity-log.csv"'},
    )


@router.post("/compact", response_model=CompactionOut)
def api_compact(
    days: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    older_than = timedelta(days=days) if days is not None else None
    result = tracker.retention.compact(db, older_than)
    return CompactionOut(removed=result.removed, cutoff=result.cutoff, remaining=result.remaining)
