"""Incremental statistics: counters, rates and replay equivalence."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from app.crud.events import iter_events
from app.db.session import Base
from app.services.event_log import EventLog
from app.services.stats import StatsAggregator, completion_rate
from app.services.timeclock import SessionManager

# Ensure models are registered so metadata tables are created
from app.models import activity as activity_model  # noqa: F401
from app.models import snapshot as snapshot_model  # noqa: F401
from app.models import timeclock as timeclock_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def event_log(clock):
    return EventLog(StatsAggregator(history_limit=5), clock=clock)


def log(event_log, db, action, subject_id="emp-2", category="Warehouse", **extra):
    payload = {"action": action, "subject_id": subject_id, "category": category, "task_name": "Task"}
    payload.update(extra)
    return event_log.append(db, payload)


def test_three_created_one_completed_gives_33_percent(db_session, event_log):
    for task_id in (1, 2, 3):
        log(event_log, db_session, "created", task_id=task_id)
    log(event_log, db_session, "completed", task_id=1)

    stats = event_log.aggregator.get_subject_stats("emp-2")
    assert stats["total_assigned"] == 3
    assert stats["total_completed"] == 1
    assert stats["completion_rate"] == 33
    assert stats["acknowledgment_rate"] == 0


@pytest.mark.parametrize(
    "numerator, assigned, deleted, expected",
    [
        (0, 0, 0, 0),
        (1, 0, 0, 0),
        (1, 2, 2, 0),
        (1, 1, 3, 0),
        (1, 3, 0, 33),
        (2, 3, 0, 67),
        (1, 8, 0, 13),
        (3, 4, 1, 100),
        (5, 2, 0, 100),
    ],
)
def test_completion_rate_formula(numerator, assigned, deleted, expected):
    assert completion_rate(numerator, assigned, deleted) == expected


def test_deleted_tasks_shrink_the_denominator(db_session, event_log):
    for task_id in (1, 2, 3, 4):
        log(event_log, db_session, "created", task_id=task_id)
    log(event_log, db_session, "deleted", task_id=4)
    log(event_log, db_session, "completed", task_id=1)
    log(event_log, db_session, "acknowledged", task_id=2)

    stats = event_log.aggregator.get_subject_stats("emp-2")
    assert stats["total_deleted"] == 1
    assert stats["completion_rate"] == 33
    assert stats["acknowledgment_rate"] == 33


def test_global_stats_and_lazy_buckets(db_session, event_log):
    log(event_log, db_session, "created", date="2024-05-01")
    log(event_log, db_session, "created", category="Front desk", date="2024-05-01")
    log(event_log, db_session, "completed", date="2024-05-02", status="done")
    log(event_log, db_session, "modified", category="Yard", date="2024-05-03")
    log(event_log, db_session, "acknowledged", subject_id="emp-3", date="2024-05-03")

    stats = event_log.aggregator.get_stats()
    assert stats["total_created"] == 2
    assert stats["total_completed"] == 1
    assert stats["total_acknowledged"] == 1
    assert stats["total_deleted"] == 0
    assert stats["by_category"] == {
        "Warehouse": {"created": 1, "completed": 1, "deleted": 0},
        "Front desk": {"created": 1, "completed": 0, "deleted": 0},
        "Yard": {"created": 0, "completed": 0, "deleted": 0},
    }
    assert stats["by_status"] == {"created": 2, "done": 1, "modified": 1, "acknowledged": 1}
    assert stats["by_date"]["2024-05-03"] == {"created": 0, "completed": 0, "deleted": 0}
    assert stats["by_date"]["2024-05-01"]["created"] == 2

    subject = event_log.aggregator.get_subject_stats("emp-2")
    assert subject["by_category"]["Warehouse"] == {"assigned": 1, "completed": 1}
    assert subject["by_category"]["Yard"] == {"assigned": 0, "completed": 0}


def test_reads_return_copies(db_session, event_log):
    log(event_log, db_session, "created")
    stats = event_log.aggregator.get_stats()
    stats["by_category"]["Warehouse"]["created"] = 99
    assert event_log.aggregator.get_stats()["by_category"]["Warehouse"]["created"] == 1


def test_unknown_subject_has_no_stats(event_log):
    assert event_log.aggregator.get_subject_stats("nobody") is None


def test_recent_history_is_bounded_oldest_first_out(db_session, event_log):
    for task_id in range(1, 9):
        log(event_log, db_session, "created", task_id=task_id)
    history = event_log.aggregator.get_subject_stats("emp-2")["recent_history"]
    assert [item["task_id"] for item in history] == [4, 5, 6, 7, 8]


def test_subject_name_comes_from_first_event(db_session, event_log):
    log(event_log, db_session, "created", subject_id="emp-5")
    log(event_log, db_session, "created", subject_id="emp-6", subject_name="Ravi")
    log(event_log, db_session, "created", subject_id="emp-6", subject_name="Someone else")
    assert event_log.aggregator.get_subject_stats("emp-5")["subject_name"] == "Unknown"
    assert event_log.aggregator.get_subject_stats("emp-6")["subject_name"] == "Ravi"


def test_apply_refuses_replayed_events(db_session, event_log):
    event = log(event_log, db_session, "created")
    with pytest.raises(ValueError):
        event_log.aggregator.apply(event)
    assert event_log.aggregator.get_stats()["total_created"] == 1


def test_recompute_from_log_matches_incremental_state(db_session, event_log, clock):
    sessions = SessionManager(event_log, clock=clock)
    shift = sessions.clock_in(db_session, "emp-1", "UA", subject_name="Dana")
    for task_id in range(1, 8):
        clock.advance(minutes=7)
        log(event_log, db_session, "created", subject_id=f"emp-{task_id % 3}", task_id=task_id)
    log(event_log, db_session, "completed", subject_id="emp-1", task_id=1)
    log(event_log, db_session, "deleted", subject_id="emp-2", task_id=2)
    log(event_log, db_session, "acknowledged", subject_id="emp-0", task_id=3, category="Yard")
    clock.advance(days=1)
    log(event_log, db_session, "modified", subject_id="emp-1", task_id=4)
    sessions.clock_out(db_session, shift.session_id)

    fresh = StatsAggregator(history_limit=5)
    replayed = fresh.recompute_from_log(iter_events(db_session))

    assert replayed == event_log.aggregator.events_applied
    assert fresh.snapshot() == event_log.aggregator.snapshot()
    assert event_log.verify(db_session)["consistent"] is True


def test_reset_clears_everything(db_session, event_log):
    log(event_log, db_session, "created")
    event_log.aggregator.reset()
    assert event_log.aggregator.get_stats()["total_created"] == 0
    assert event_log.aggregator.all_subject_stats() == []
    assert event_log.aggregator.last_event_id == 0


def test_checkpoint_and_restore_resume_from_snapshot(db_session, event_log, clock):
    log(event_log, db_session, "created", task_id=1)
    log(event_log, db_session, "completed", task_id=1)
    event_log.checkpoint(db_session)
    log(event_log, db_session, "created", task_id=2)

    restarted = EventLog(StatsAggregator(history_limit=5), clock=clock)
    replayed = restarted.restore(db_session)

    assert replayed == 1
    assert restarted.aggregator.snapshot() == event_log.aggregator.snapshot()


def test_restore_without_checkpoint_replays_everything(db_session, event_log, clock):
    for task_id in (1, 2, 3):
        log(event_log, db_session, "created", task_id=task_id)
    restarted = EventLog(StatsAggregator(history_limit=5), clock=clock)
    assert restarted.restore(db_session) == 3
    assert restarted.aggregator.snapshot() == event_log.aggregator.snapshot()
