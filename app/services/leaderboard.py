from __future__ import annotations

from typing import Any

from ..core.errors import ValidationError
from .stats import StatsAggregator

# public metric name -> SubjectStats key
METRICS = {
    "completionRate": "completion_rate",
    "acknowledgmentRate": "acknowledgment_rate",
    "totalCompleted": "total_completed",
}


def rank(aggregator: StatsAggregator, metric: str = "completionRate") -> list[dict[str, Any]]:
    """Subjects ordered by ``metric``, highest first.

    Ties keep the order in which subjects first appeared in the log
    (``sorted`` is stable even with ``reverse=True``).
    """

    key = METRICS.get(metric) or (metric if metric in METRICS.values() else None)
    if key is None:
        raise ValidationError(
            f"metric must be one of {', '.join(METRICS)}",
            details={"metric": metric},
        )
    rows = [
        {
            "subject_id": stats["subject_id"],
            "subject_name": stats["subject_name"],
            "metric": metric,
            "metric_value": stats[key],
            "total_completed": stats["total_completed"],
            "total_assigned": stats["total_assigned"],
        }
        for stats in aggregator.all_subject_stats()
    ]
    return sorted(rows, key=lambda row: row["metric_value"], reverse=True)
