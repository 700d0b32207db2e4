from __future__ import annotations

import json

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db.session import storage_guard
from ..models.snapshot import StatsSnapshot
from ..services.timecalc import ISO_FORMAT, utcnow

SNAPSHOT_ROW_ID = 1


def load_snapshot(db: Session) -> tuple[int, dict] | None:
    """Return ``(last_event_id, payload)`` of the stored checkpoint, if any."""

    with storage_guard(db, "load snapshot"):
        row = db.execute(select(StatsSnapshot).where(StatsSnapshot.id == SNAPSHOT_ROW_ID)).scalars().first()
    if row is None:
        return None
    try:
        payload = json.loads(row.payload)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return int(row.last_event_id or 0), payload


def save_snapshot(db: Session, last_event_id: int, payload: dict) -> StatsSnapshot:
    with storage_guard(db, "save snapshot"):
        row = db.get(StatsSnapshot, SNAPSHOT_ROW_ID)
        if row is None:
            row = StatsSnapshot(id=SNAPSHOT_ROW_ID)
            db.add(row)
        row.last_event_id = last_event_id
        row.payload = json.dumps(payload, separators=(",", ":"))
        row.updated_at = utcnow().strftime(ISO_FORMAT)
        db.commit()
        db.refresh(row)
    return row
