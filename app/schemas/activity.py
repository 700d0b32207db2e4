from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TASK_ACTION_PATTERN = "^(created|completed|deleted|acknowledged|modified)$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class EventCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    action: str = Field(pattern=TASK_ACTION_PATTERN)
    subject_id: str = Field(min_length=1)
    subject_name: Optional[str] = None
    task_id: Optional[int] = None
    task_name: str = ""
    category: str = ""
    status: Optional[str] = None
    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    idle_seconds: int = Field(default=0, ge=0)
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[str] = None
    detail: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    # producers that buffer events offline send the original time
    timestamp: Optional[str] = None


class EventOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    event_id: int
    timestamp: str
    action: str
    subject_id: str
    subject_name: Optional[str] = None
    task_id: Optional[int] = None
    task_name: str = ""
    category: str = ""
    status: str = ""
    date: str
    idle_seconds: int = 0
    acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[str] = None
    detail: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_event(cls, event) -> "EventOut":
        return cls(
            event_id=event.id,
            timestamp=event.timestamp,
            action=event.action,
            subject_id=event.subject_id,
            subject_name=event.subject_name,
            task_id=event.task_id,
            task_name=event.task_name or "",
            category=event.category or "",
            status=event.status or "",
            date=event.date,
            idle_seconds=event.idle_seconds or 0,
            acknowledged=bool(event.acknowledged),
            acknowledged_by=event.acknowledged_by,
            acknowledged_at=event.acknowledged_at,
            detail=event.detail,
            metadata=event.event_metadata,
        )


class CompactionOut(BaseModel):
    removed: int
    cutoff: str
    remaining: int
