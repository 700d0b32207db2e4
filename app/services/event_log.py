"""The append-only activity log and its link to the statistics aggregator.

``append`` writes the event and folds it into the aggregator inside one
critical section, so the aggregator sees events in exactly the order their
ids were assigned, even when request handlers append concurrently.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from ..crud.events import (
    CLOCK_ACTIONS,
    count_events,
    export_events_csv,
    insert_event,
    iter_events,
    list_recent_events,
    prepare_event,
    purge_events_before,
    query_events,
)
from ..crud.snapshots import load_snapshot, save_snapshot
from ..models.activity import ActivityEvent
from .stats import StatsAggregator
from .timecalc import utcnow

logger = logging.getLogger(__name__)


class EventLog:
    def __init__(
        self,
        aggregator: StatsAggregator,
        *,
        tz: str = "UTC",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.aggregator = aggregator
        self.tz = tz
        self._clock = clock
        self._lock = threading.Lock()

    def append(self, db: Session, payload: dict) -> ActivityEvent:
        """Validate, persist and fold one event; returns the stored row.

        ``ValidationError`` is raised before anything is written;
        ``StorageError`` means the write failed and nothing was folded.
        """

        values = prepare_event(payload, now=self._clock(), tz=self.tz)
        with self._lock:
            event = insert_event(db, values)
            self.aggregator.apply(event)
        logger.info(
            "event.appended",
            extra={
                "extra_data": {
                    "event_id": event.id,
                    "action": event.action,
                    "subject_id": event.subject_id,
                }
            },
        )
        return event

    def record_task_event(self, db: Session, payload: dict) -> ActivityEvent:
        """Entry point for task-event producers; clock events belong to ``SessionManager``."""

        if payload.get("action") in CLOCK_ACTIONS:
            logger.warning(
                "event.rejected",
                extra={"extra_data": {"action": payload.get("action"), "reason": "clock action"}},
            )
            raise ValidationError("clock_in/clock_out events are recorded by the time clock only")
        return self.append(db, payload)

    def query(self, db: Session, **filters: Any) -> list[ActivityEvent]:
        return query_events(db, **filters)

    def recent(self, db: Session, limit: int = 50) -> list[ActivityEvent]:
        return list_recent_events(db, limit=limit)

    def export_csv(self, db: Session) -> str | None:
        return export_events_csv(db)

    def count(self, db: Session) -> int:
        return count_events(db)

    # --------------------------------------------------------- maintenance

    def checkpoint(self, db: Session) -> int:
        """Persist the aggregator state; returns the last folded event id."""

        with self._lock:
            return self._checkpoint_locked(db)

    def _checkpoint_locked(self, db: Session) -> int:
        state = self.aggregator.to_state()
        save_snapshot(db, state["last_event_id"], state)
        logger.info("stats.checkpoint", extra={"extra_data": {"last_event_id": state["last_event_id"]}})
        return state["last_event_id"]

    def restore(self, db: Session) -> int:
        """Load the last checkpoint and fold every newer event.

        Returns how many events were replayed on top of the checkpoint.
        """

        with self._lock:
            snapshot = load_snapshot(db)
            if snapshot is None:
                self.aggregator.reset()
            else:
                self.aggregator.load_state(snapshot[1])
            replayed = 0
            for event in iter_events(db, after_id=self.aggregator.last_event_id):
                self.aggregator.apply(event)
                replayed += 1
        logger.info(
            "stats.restored",
            extra={
                "extra_data": {
                    "from_checkpoint": snapshot is not None,
                    "replayed": replayed,
                    "last_event_id": self.aggregator.last_event_id,
                }
            },
        )
        return replayed

    def purge_before(self, db: Session, cutoff_iso: str) -> int:
        """Checkpoint, then delete events older than ``cutoff_iso``.

        The aggregator itself is left alone: totals already folded stay.
        """

        with self._lock:
            self._checkpoint_locked(db)
            return purge_events_before(db, cutoff_iso)

    def verify(self, db: Session) -> dict[str, Any]:
        """Replay the stored log into a fresh aggregator and compare.

        Expected to report a mismatch once retention has removed events,
        because the purged history cannot be replayed.
        """

        with self._lock:
            fresh = StatsAggregator(history_limit=self.aggregator.history_limit)
            replayed = fresh.recompute_from_log(iter_events(db))
            consistent = fresh.snapshot() == self.aggregator.snapshot()
        if not consistent:
            logger.warning("stats.verify_mismatch", extra={"extra_data": {"replayed": replayed}})
        return {
            "consistent": consistent,
            "events_replayed": replayed,
            "live_events_applied": self.aggregator.events_applied,
        }
