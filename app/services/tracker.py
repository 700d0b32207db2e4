from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..core.config import AppSettings
from .event_log import EventLog
from .retention import RetentionPolicy
from .stats import StatsAggregator
from .timeclock import SessionManager
from .timecalc import utcnow


@dataclass
class ActivityTracker:
    """The aggregator, log, time clock and retention policy wired together.

    One instance lives on ``app.state`` for the lifetime of the process.
    """

    aggregator: StatsAggregator
    event_log: EventLog
    sessions: SessionManager
    retention: RetentionPolicy


def build_tracker(config: AppSettings, *, clock: Callable[[], datetime] = utcnow) -> ActivityTracker:
    aggregator = StatsAggregator(history_limit=config.HISTORY_LIMIT)
    event_log = EventLog(aggregator, tz=config.TZ, clock=clock)
    return ActivityTracker(
        aggregator=aggregator,
        event_log=event_log,
        sessions=SessionManager(event_log, clock=clock),
        retention=RetentionPolicy(event_log, days_to_keep=config.RETENTION_DAYS, clock=clock),
    )
