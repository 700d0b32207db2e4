"""Retention for the activity log.

Compaction only deletes stored events. It never touches the statistics
aggregator, whose running totals stay authoritative; the aggregator is
checkpointed first so those totals also survive a restart. The trade-off:
``recompute_from_log`` after a compaction sees less history and reports
smaller totals than the live aggregator. That asymmetry is accepted in
exchange for bounded storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from ..core.errors import ValidationError
from .event_log import EventLog
from .timecalc import to_utc_iso, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompactionResult:
    removed: int
    cutoff: str
    remaining: int


class RetentionPolicy:
    def __init__(
        self,
        event_log: EventLog,
        days_to_keep: int = 90,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if days_to_keep <= 0:
            raise ValueError("days_to_keep must be positive")
        self.event_log = event_log
        self.days_to_keep = days_to_keep
        self._clock = clock

    def cutoff(self, older_than: timedelta | None = None) -> str:
        horizon = older_than if older_than is not None else timedelta(days=self.days_to_keep)
        if horizon < timedelta(0):
            raise ValidationError("retention horizon must not be negative")
        return to_utc_iso(self._clock() - horizon)

    def compact(self, db: Session, older_than: timedelta | None = None) -> CompactionResult:
        """Delete events whose timestamp is older than ``now - older_than``."""

        cutoff = self.cutoff(older_than)
        removed = self.event_log.purge_before(db, cutoff)
        remaining = self.event_log.count(db)
        logger.info(
            "retention.compacted",
            extra={"extra_data": {"removed": removed, "cutoff": cutoff, "remaining": remaining}},
        )
        return CompactionResult(removed=removed, cutoff=cutoff, remaining=remaining)
