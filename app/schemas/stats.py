from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AggregateStatsOut(_CamelModel):
    total_created: int
    total_completed: int
    total_deleted: int
    total_acknowledged: int
    by_category: dict[str, dict[str, int]] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    by_date: dict[str, dict[str, int]] = Field(default_factory=dict)


class HistoryEntry(_CamelModel):
    timestamp: str
    action: str
    task_id: Optional[int] = None
    task_name: str = ""
    category: str = ""


class SubjectStatsOut(_CamelModel):
    subject_id: str
    subject_name: str
    total_assigned: int
    total_completed: int
    total_acknowledged: int
    total_deleted: int
    by_category: dict[str, dict[str, int]] = Field(default_factory=dict)
    completion_rate: int
    acknowledgment_rate: int
    recent_history: list[HistoryEntry] = Field(default_factory=list)


class LeaderboardEntry(_CamelModel):
    subject_id: str
    subject_name: str
    metric: str
    metric_value: int
    total_completed: int
    total_assigned: int


class VerifyOut(_CamelModel):
    consistent: bool
    events_replayed: int
    live_events_applied: int
