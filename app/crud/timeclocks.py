"""Read helpers for clock-in sessions.

Writes go through ``SessionManager`` so the open-session check, the row
change and the matching log event happen as one unit.
"""

from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..db.session import storage_guard
from ..models.timeclock import TimeClock


def get_session(db: Session, session_id: str) -> TimeClock | None:
    stmt = select(TimeClock).where(TimeClock.session_id == session_id)
    with storage_guard(db, "load session"):
        return db.execute(stmt).scalars().first()


def get_open_session(db: Session, subject_id: str) -> TimeClock | None:
    stmt = select(TimeClock).where(
        TimeClock.subject_id == subject_id,
        TimeClock.clock_out.is_(None),
    )
    with storage_guard(db, "load open session"):
        return db.execute(stmt).scalars().first()


def list_recent_sessions(db: Session, limit: int = 30) -> list[TimeClock]:
    stmt = select(TimeClock).order_by(desc(TimeClock.clock_in), desc(TimeClock.id)).limit(limit)
    with storage_guard(db, "list sessions"):
        return db.execute(stmt).scalars().all()


def attendance_by_subject(db: Session, limit: int = 500) -> dict[str, list[TimeClock]]:
    """Group sessions per subject (ascending id), newest clock-in first in each group."""

    stmt = (
        select(TimeClock)
        .order_by(TimeClock.subject_id, desc(TimeClock.clock_in), desc(TimeClock.id))
        .limit(limit)
    )
    with storage_guard(db, "list attendance"):
        rows = db.execute(stmt).scalars().all()
    grouped: dict[str, list[TimeClock]] = {}
    for row in rows:
        grouped.setdefault(row.subject_id, []).append(row)
    return grouped
