"""Incremental statistics over the activity log.

``StatsAggregator`` folds events one at a time, in log order, into global and
per-subject counters. Completion and acknowledgment rates are derived when
read and never stored, so they cannot drift from the counters.

Replaying the whole log into a fresh aggregator (``recompute_from_log``) must
give exactly the same ``snapshot()`` as the live, incrementally maintained
one. After retention has purged old events a replay sees less history than
the live aggregator folded, so its totals come out smaller; the live state
(and its checkpoint) is the authoritative one.
"""

from __future__ import annotations

import copy
import threading
from collections import deque
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

COUNTED_ACTIONS = ("created", "completed", "deleted", "acknowledged")
DEFAULT_SUBJECT_NAME = "Unknown"


def completion_rate(numerator: int, assigned: int, deleted: int) -> int:
    """``round(100 * numerator / (assigned - deleted))`` or 0 with no active tasks.

    Halves round up. The result is capped at 100 for logs where completions
    outnumber the active tasks they refer to.
    """

    active = assigned - deleted
    if active <= 0:
        return 0
    value = (Decimal(100) * Decimal(numerator) / Decimal(active)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, min(100, int(value)))


def _zero_bucket(keys: Iterable[str]) -> dict[str, int]:
    return {key: 0 for key in keys}


class SubjectState:
    """Running counters for one subject."""

    __slots__ = (
        "subject_id",
        "subject_name",
        "total_assigned",
        "total_completed",
        "total_acknowledged",
        "total_deleted",
        "by_category",
        "recent_history",
    )

    def __init__(self, subject_id: str, subject_name: str, history_limit: int) -> None:
        self.subject_id = subject_id
        self.subject_name = subject_name
        self.total_assigned = 0
        self.total_completed = 0
        self.total_acknowledged = 0
        self.total_deleted = 0
        self.by_category: dict[str, dict[str, int]] = {}
        self.recent_history: deque[dict[str, Any]] = deque(maxlen=history_limit)

    @property
    def completion_rate(self) -> int:
        return completion_rate(self.total_completed, self.total_assigned, self.total_deleted)

    @property
    def acknowledgment_rate(self) -> int:
        return completion_rate(self.total_acknowledged, self.total_assigned, self.total_deleted)

    def as_dict(self) -> dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "subject_name": self.subject_name,
            "total_assigned": self.total_assigned,
            "total_completed": self.total_completed,
            "total_acknowledged": self.total_acknowledged,
            "total_deleted": self.total_deleted,
            "by_category": copy.deepcopy(self.by_category),
            "completion_rate": self.completion_rate,
            "acknowledgment_rate": self.acknowledgment_rate,
            "recent_history": [dict(item) for item in self.recent_history],
        }


class StatsAggregator:
    def __init__(self, history_limit: int = 100) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit
        self._lock = threading.RLock()
        self.reset()

    def reset(self) -> None:
        """Drop every counter; the aggregator is as freshly constructed."""

        with self._lock:
            self._totals = _zero_bucket(COUNTED_ACTIONS)
            self._by_category: dict[str, dict[str, int]] = {}
            self._by_status: dict[str, int] = {}
            self._by_date: dict[str, dict[str, int]] = {}
            self._subjects: dict[str, SubjectState] = {}
            self.last_event_id = 0
            self.events_applied = 0

    # ------------------------------------------------------------------ fold

    def apply(self, event) -> None:
        """Fold one persisted event.

        Events must arrive in strictly increasing id order; a repeated or
        older id raises ``ValueError`` and leaves the state untouched.
        """

        event_id = getattr(event, "id", None)
        if event_id is None:
            raise ValueError("only persisted events can be applied")
        with self._lock:
            if event_id <= self.last_event_id:
                raise ValueError(f"event {event_id} is not newer than {self.last_event_id}")
            self._fold(event)
            self.last_event_id = event_id
            self.events_applied += 1

    def _fold(self, event) -> None:
        action = event.action
        category = event.category or ""
        status = event.status or action
        date_key = event.date

        if action in COUNTED_ACTIONS:
            self._totals[action] += 1

        category_bucket = self._by_category.setdefault(category, _zero_bucket(("created", "completed", "deleted")))
        date_bucket = self._by_date.setdefault(date_key, _zero_bucket(("created", "completed", "deleted")))
        if action in category_bucket:
            category_bucket[action] += 1
            date_bucket[action] += 1

        self._by_status[status] = self._by_status.get(status, 0) + 1

        subject = self._subjects.get(event.subject_id)
        if subject is None:
            subject = SubjectState(
                event.subject_id,
                event.subject_name or DEFAULT_SUBJECT_NAME,
                self.history_limit,
            )
            self._subjects[event.subject_id] = subject

        if action == "created":
            subject.total_assigned += 1
        elif action == "completed":
            subject.total_completed += 1
        elif action == "acknowledged":
            subject.total_acknowledged += 1
        elif action == "deleted":
            subject.total_deleted += 1

        subject_bucket = subject.by_category.setdefault(category, _zero_bucket(("assigned", "completed")))
        if action == "created":
            subject_bucket["assigned"] += 1
        elif action == "completed":
            subject_bucket["completed"] += 1

        subject.recent_history.append(
            {
                "timestamp": event.timestamp,
                "action": action,
                "task_id": event.task_id,
                "task_name": event.task_name or "",
                "category": category,
            }
        )

    def recompute_from_log(self, events: Iterable) -> int:
        """Rebuild everything from scratch by folding ``events`` in order."""

        with self._lock:
            self.reset()
            for event in events:
                self.apply(event)
            return self.events_applied

    # ----------------------------------------------------------------- reads

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_created": self._totals["created"],
                "total_completed": self._totals["completed"],
                "total_deleted": self._totals["deleted"],
                "total_acknowledged": self._totals["acknowledged"],
                "by_category": copy.deepcopy(self._by_category),
                "by_status": dict(self._by_status),
                "by_date": copy.deepcopy(self._by_date),
            }

    def get_subject_stats(self, subject_id: str) -> dict[str, Any] | None:
        with self._lock:
            subject = self._subjects.get(subject_id)
            return subject.as_dict() if subject else None

    def all_subject_stats(self) -> list[dict[str, Any]]:
        """Every subject, in the order each first appeared in the log."""

        with self._lock:
            return [subject.as_dict() for subject in self._subjects.values()]

    def snapshot(self) -> dict[str, Any]:
        """Comparable view of the full state, derived rates included."""

        with self._lock:
            return {
                "last_event_id": self.last_event_id,
                "events_applied": self.events_applied,
                "stats": self.get_stats(),
                "subjects": self.all_subject_stats(),
            }

    # ----------------------------------------------------------- checkpoint

    def to_state(self) -> dict[str, Any]:
        with self._lock:
            return {
                "last_event_id": self.last_event_id,
                "events_applied": self.events_applied,
                "totals": dict(self._totals),
                "by_category": copy.deepcopy(self._by_category),
                "by_status": dict(self._by_status),
                "by_date": copy.deepcopy(self._by_date),
                "subjects": [
                    {
                        "subject_id": s.subject_id,
                        "subject_name": s.subject_name,
                        "total_assigned": s.total_assigned,
                        "total_completed": s.total_completed,
                        "total_acknowledged": s.total_acknowledged,
                        "total_deleted": s.total_deleted,
                        "by_category": copy.deepcopy(s.by_category),
                        "recent_history": [dict(item) for item in s.recent_history],
                    }
                    for s in self._subjects.values()
                ],
            }

    def load_state(self, state: dict[str, Any]) -> None:
        """Replace the current state with one produced by ``to_state``."""

        with self._lock:
            self.reset()
            totals = state.get("totals") or {}
            for key in COUNTED_ACTIONS:
                self._totals[key] = int(totals.get(key, 0))
            self._by_category = copy.deepcopy(state.get("by_category") or {})
            self._by_status = dict(state.get("by_status") or {})
            self._by_date = copy.deepcopy(state.get("by_date") or {})
            for item in state.get("subjects") or []:
                subject = SubjectState(
                    item["subject_id"],
                    item.get("subject_name") or DEFAULT_SUBJECT_NAME,
                    self.history_limit,
                )
                subject.total_assigned = int(item.get("total_assigned", 0))
                subject.total_completed = int(item.get("total_completed", 0))
                subject.total_acknowledged = int(item.get("total_acknowledged", 0))
                subject.total_deleted = int(item.get("total_deleted", 0))
                subject.by_category = copy.deepcopy(item.get("by_category") or {})
                subject.recent_history.extend(dict(entry) for entry in item.get("recent_history") or [])
                self._subjects[subject.subject_id] = subject
            self.last_event_id = int(state.get("last_event_id", 0))
            self.events_applied = int(state.get("events_applied", 0))


__all__ = ["StatsAggregator", "SubjectState", "completion_rate", "COUNTED_ACTIONS"]
