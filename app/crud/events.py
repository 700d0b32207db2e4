"""Storage helpers for the activity log.

Everything here takes an open SQLAlchemy ``Session``. Validation happens in
``prepare_event`` before any row is built, so a rejected payload never leaves
a partial write behind.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterator

from sqlalchemy import delete, desc, func, select
from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from ..db.session import storage_guard
from ..models.activity import ActivityEvent
from ..services.timecalc import to_utc_iso, utc_date

ACTIONS = (
    "created",
    "completed",
    "deleted",
    "acknowledged",
    "modified",
    "clock_in",
    "clock_out",
)
CLOCK_ACTIONS = frozenset({"clock_in", "clock_out"})


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().casefold() in {"true", "1", "yes", "y"}
    return False


def _valid_date(value: str) -> str:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date().isoformat()
    except ValueError as exc:
        raise ValidationError(f"date must be YYYY-MM-DD, got {value!r}") from exc


def prepare_event(payload: dict, *, now: str | datetime, tz: str = "UTC") -> dict:
    """Validate an event payload and return the column values to store.

    Raises ``ValidationError`` for an unknown action, a missing subject, a
    negative or non-integer ``idle_seconds``, or unparsable dates.
    """

    action = _clean_text(payload.get("action"))
    if action not in ACTIONS:
        raise ValidationError(
            f"action must be one of {', '.join(ACTIONS)}",
            details={"action": payload.get("action")},
        )
    subject_id = _clean_text(payload.get("subject_id"))
    if not subject_id:
        raise ValidationError("subject_id is required")

    idle_raw = payload.get("idle_seconds")
    if idle_raw in (None, ""):
        idle_seconds = 0
    else:
        if isinstance(idle_raw, bool) or (isinstance(idle_raw, float) and not idle_raw.is_integer()):
            raise ValidationError("idle_seconds must be a non-negative integer")
        try:
            idle_seconds = int(idle_raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError("idle_seconds must be a non-negative integer") from exc
        if idle_seconds < 0:
            raise ValidationError("idle_seconds must be a non-negative integer")

    task_id = payload.get("task_id")
    if task_id is not None:
        try:
            task_id = int(task_id)
        except (TypeError, ValueError) as exc:
            raise ValidationError("task_id must be an integer") from exc

    try:
        timestamp = to_utc_iso(payload.get("timestamp") or now, tz)
        acknowledged_at = payload.get("acknowledged_at")
        acknowledged_at = to_utc_iso(acknowledged_at, tz) if acknowledged_at else None
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid timestamp: {exc}") from exc

    date_value = _clean_text(payload.get("date"))
    date_value = _valid_date(date_value) if date_value else utc_date(timestamp)

    metadata = payload.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    return {
        "timestamp": timestamp,
        "action": action,
        "subject_id": subject_id,
        "subject_name": _clean_text(payload.get("subject_name")),
        "task_id": task_id,
        "task_name": _clean_text(payload.get("task_name")) or "",
        "category": _clean_text(payload.get("category")) or "",
        "status": _clean_text(payload.get("status")) or action,
        "date": date_value,
        "idle_seconds": idle_seconds,
        "acknowledged": _coerce_bool(payload.get("acknowledged")),
        "acknowledged_by": _clean_text(payload.get("acknowledged_by")),
        "acknowledged_at": acknowledged_at,
        "detail": _clean_text(payload.get("detail")),
        "metadata": metadata,
    }


def insert_event(db: Session, values: dict) -> ActivityEvent:
    """Persist prepared values. Commits whatever else is pending on ``db`` too."""

    data = dict(values)
    metadata = data.pop("metadata", None)
    event = ActivityEvent(**data)
    event.event_metadata = metadata
    with storage_guard(db, "append event"):
        db.add(event)
        db.commit()
        db.refresh(event)
    return event


def query_events(
    db: Session,
    *,
    action: str | None = None,
    subject_id: str | None = None,
    category: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[ActivityEvent]:
    """Filter the log; every given filter must match. Results keep append order."""

    stmt = select(ActivityEvent)
    if action:
        stmt = stmt.where(ActivityEvent.action == action)
    if subject_id:
        stmt = stmt.where(ActivityEvent.subject_id == subject_id)
    if category:
        stmt = stmt.where(ActivityEvent.category == category)
    if start_date:
        stmt = stmt.where(ActivityEvent.date >= _valid_date(start_date))
    if end_date:
        stmt = stmt.where(ActivityEvent.date <= _valid_date(end_date))
    stmt = stmt.order_by(ActivityEvent.id)
    with storage_guard(db, "query events"):
        return db.execute(stmt).scalars().all()


def iter_events(db: Session, *, after_id: int = 0, batch_size: int = 500) -> Iterator[ActivityEvent]:
    """Yield events in append order, paging by id so large logs stay cheap."""

    last_id = after_id
    while True:
        stmt = (
            select(ActivityEvent)
            .where(ActivityEvent.id > last_id)
            .order_by(ActivityEvent.id)
            .limit(batch_size)
        )
        with storage_guard(db, "read events"):
            rows = db.execute(stmt).scalars().all()
        if not rows:
            return
        yield from rows
        last_id = rows[-1].id


def list_recent_events(db: Session, limit: int = 50) -> list[ActivityEvent]:
    stmt = select(ActivityEvent).order_by(desc(ActivityEvent.id)).limit(limit)
    with storage_guard(db, "list recent events"):
        return db.execute(stmt).scalars().all()


def count_events(db: Session) -> int:
    with storage_guard(db, "count events"):
        return int(db.execute(select(func.count(ActivityEvent.id))).scalar() or 0)


def purge_events_before(db: Session, cutoff_iso: str) -> int:
    """Delete every event whose timestamp is strictly older than ``cutoff_iso``."""

    stmt = delete(ActivityEvent).where(ActivityEvent.timestamp < cutoff_iso)
    with storage_guard(db, "purge events"):
        result = db.execute(stmt)
        db.commit()
    return int(result.rowcount or 0)


def _csv_cell(value: object) -> str:
    return json.dumps("" if value is None else value)


def export_events_csv(db: Session) -> str | None:
    """Serialise the whole log as CSV, or ``None`` when it is empty.

    The header row is the first record's field names; each cell is the
    JSON encoding of the value with no further escaping.
    """

    records = [event.to_record() for event in iter_events(db)]
    if not records:
        return None
    headers = list(records[0].keys())
    lines = [",".join(headers)]
    for record in records:
        lines.append(",".join(_csv_cell(record.get(header)) for header in headers))
    return "\n".join(lines)
