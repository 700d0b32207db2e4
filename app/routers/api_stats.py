from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.errors import NotFoundError
from ..db.session import get_db
from ..deps.tracker import get_tracker
from ..schemas.stats import AggregateStatsOut, LeaderboardEntry, SubjectStatsOut, VerifyOut
from ..services.leaderboard import rank
from ..services.tracker import ActivityTracker

router = APIRouter(prefix="/api/v1/stats", tags=["stats"])


@router.get("", response_model=AggregateStatsOut)
def api_stats(tracker: ActivityTracker = Depends(get_tracker)):
    return AggregateStatsOut.model_validate(tracker.aggregator.get_stats())


@router.get("/subjects", response_model=list[SubjectStatsOut])
def api_all_subject_stats(tracker: ActivityTracker = Depends(get_tracker)):
    return [SubjectStatsOut.model_validate(row) for row in tracker.aggregator.all_subject_stats()]


@router.get("/subjects/{subject_id}", response_model=SubjectStatsOut)
def api_subject_stats(subject_id: str, tracker: ActivityTracker = Depends(get_tracker)):
    stats = tracker.aggregator.get_subject_stats(subject_id)
    if stats is None:
        raise NotFoundError("no statistics for subject", details={"subject_id": subject_id})
    return SubjectStatsOut.model_validate(stats)


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
def api_leaderboard(
    metric: str = Query(default="completionRate"),
    tracker: ActivityTracker = Depends(get_tracker),
):
    return [LeaderboardEntry.model_validate(row) for row in rank(tracker.aggregator, metric)]


@router.post("/verify", response_model=VerifyOut)
def api_verify(
    db: Session = Depends(get_db),
    tracker: ActivityTracker = Depends(get_tracker),
):
    return VerifyOut.model_validate(tracker.event_log.verify(db))
