"""SQLAlchemy model for the append-only activity log."""

from __future__ import annotations

import json

from sqlalchemy import Boolean, Column, Integer, Text

from ..db.session import Base

# Field order of the external record shape; CSV headers follow it too.
RECORD_FIELDS = (
    "eventId",
    "timestamp",
    "action",
    "subjectId",
    "taskId",
    "taskName",
    "category",
    "status",
    "date",
    "idleSeconds",
    "acknowledged",
    "acknowledgedBy",
    "acknowledgedAt",
)


class ActivityEvent(Base):
    """One immutable fact in the activity log.

    Rows are only ever inserted, or purged in bulk by retention. ``id`` uses
    SQLite AUTOINCREMENT so identifiers keep increasing even after the newest
    rows have been deleted.
    """

    __tablename__ = "activity_events"
    __table_args__ = {"sqlite_autoincrement": True}
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True)
    timestamp = Column(Text, nullable=False, index=True)
    action = Column(Text, nullable=False, index=True)
    subject_id = Column(Text, nullable=False, index=True)
    subject_name = Column(Text, nullable=True)
    task_id = Column(Integer, nullable=True)
    task_name = Column(Text, nullable=False, default="")
    category = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False, default="")
    date = Column(Text, nullable=False, index=True)
    idle_seconds = Column(Integer, nullable=False, default=0)
    acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_by = Column(Text, nullable=True)
    acknowledged_at = Column(Text, nullable=True)
    detail = Column(Text, nullable=True)
    # ``metadata`` is reserved on declarative classes, hence the attribute name.
    metadata_blob = Column("metadata", Text, nullable=True)

    @property
    def event_metadata(self) -> dict[str, object]:
        raw = self.metadata_blob
        if not raw:
            return {}
        try:
            decoded = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return {}
        return decoded if isinstance(decoded, dict) else {}

    @event_metadata.setter
    def event_metadata(self, value: dict[str, object] | None) -> None:
        if not value:
            self.metadata_blob = None
            return
        if not isinstance(value, dict):
            raise ValueError("metadata must be an object")
        self.metadata_blob = json.dumps(value, sort_keys=True)

    def to_record(self) -> dict[str, object]:
        values = (
            self.id,
            self.timestamp,
            self.action,
            self.subject_id,
            self.task_id,
            self.task_name or "",
            self.category or "",
            self.status or "",
            self.date,
            int(self.idle_seconds or 0),
            bool(self.acknowledged),
            self.acknowledged_by,
            self.acknowledged_at,
        )
        return dict(zip(RECORD_FIELDS, values))


__all__ = ["ActivityEvent", "RECORD_FIELDS"]
