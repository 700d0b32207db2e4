"""HTTP surface: camelCase JSON, status codes and the error envelope."""

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from app import create_app


@pytest.fixture()
def client(clock):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with TestClient(create_app(engine=engine, clock=clock)) as test_client:
        yield test_client


def log_task(client, action, subject_id="emp-2", **extra):
    body = {"action": action, "subjectId": subject_id, "category": "Warehouse", "taskName": "Pick order"}
    body.update(extra)
    response = client.post("/api/v1/events", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_clock_in_and_out_round_trip(client, clock):
    response = client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-1", "deviceInfo": "UA"})
    assert response.status_code == 201
    session = response.json()
    assert session["subjectId"] == "emp-1"
    assert session["clockIn"] == "2024-06-01T09:00:00Z"
    assert session["clockOut"] is None
    assert response.headers["X-Request-ID"]

    open_session = client.get("/api/v1/timeclock/open/emp-1")
    assert open_session.status_code == 200
    assert open_session.json()["sessionId"] == session["sessionId"]

    clock.advance(hours=8)
    closed = client.post(f"/api/v1/timeclock/sessions/{session['sessionId']}/clock-out")
    assert closed.status_code == 200
    assert closed.json()["clockOut"] == "2024-06-01T17:00:00Z"

    missing = client.get("/api/v1/timeclock/open/emp-1")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"


def test_second_clock_in_is_a_conflict(client):
    client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-1"})
    response = client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-1"})
    assert response.status_code == 409
    assert response.json()["code"] == "already_clocked_in"


def test_clock_out_errors(client):
    unknown = client.post("/api/v1/timeclock/sessions/nope/clock-out")
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "not_found"

    session = client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-1"}).json()
    client.post(f"/api/v1/timeclock/sessions/{session['sessionId']}/clock-out")
    again = client.post(f"/api/v1/timeclock/sessions/{session['sessionId']}/clock-out")
    assert again.status_code == 409
    assert again.json()["code"] == "already_closed"


def test_sessions_and_attendance_listings(client, clock):
    client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-1"})
    clock.advance(minutes=5)
    client.post("/api/v1/timeclock/clock-in", json={"subjectId": "emp-2"})

    sessions = client.get("/api/v1/timeclock/sessions", params={"limit": 10}).json()
    assert [row["subjectId"] for row in sessions] == ["emp-2", "emp-1"]

    attendance = client.get("/api/v1/timeclock/attendance").json()
    assert set(attendance) == {"emp-1", "emp-2"}


def test_event_logging_feeds_stats(client):
    for task_id in (1, 2, 3):
        log_task(client, "created", taskId=task_id)
    event = log_task(client, "completed", taskId=1)
    assert event["action"] == "completed"
    assert event["status"] == "completed"
    assert event["date"] == "2024-06-01"

    subject = client.get("/api/v1/stats/subjects/emp-2").json()
    assert subject["totalAssigned"] == 3
    assert subject["completionRate"] == 33
    assert subject["byCategory"]["Warehouse"] == {"assigned": 3, "completed": 1}
    assert subject["recentHistory"][-1]["taskId"] == 1

    stats = client.get("/api/v1/stats").json()
    assert stats["totalCreated"] == 3
    assert stats["byStatus"] == {"created": 3, "completed": 1}

    events = client.get("/api/v1/events", params={"action": "created", "subjectId": "emp-2"}).json()
    assert [row["taskId"] for row in events] == [1, 2, 3]
    assert [row["taskId"] for row in client.get("/api/v1/events/recent", params={"limit": 2}).json()] == [1, 3]


def test_invalid_events_get_the_validation_envelope(client):
    negative = client.post("/api/v1/events", json={"action": "created", "subjectId": "emp-1", "idleSeconds": -5})
    assert negative.status_code == 422
    assert negative.json()["code"] == "validation_error"

    clock_action = client.post("/api/v1/events", json={"action": "clock_in", "subjectId": "emp-1"})
    assert clock_action.status_code == 422

    bad_filter = client.get("/api/v1/events", params={"startDate": "yesterday"})
    assert bad_filter.status_code == 422
    assert bad_filter.json()["code"] == "validation_error"

    assert client.get("/api/v1/stats").json()["totalCreated"] == 0


def test_unknown_subject_stats_is_404(client):
    response = client.get("/api/v1/stats/subjects/ghost")
    assert response.status_code == 404


def test_leaderboard(client):
    log_task(client, "created", subject_id="emp-1")
    log_task(client, "created", subject_id="emp-2")
    log_task(client, "completed", subject_id="emp-2")

    board = client.get("/api/v1/stats/leaderboard").json()
    assert [row["subjectId"] for row in board] == ["emp-2", "emp-1"]
    assert board[0]["metric"] == "completionRate"
    assert board[0]["metricValue"] == 100

    by_total = client.get("/api/v1/stats/leaderboard", params={"metric": "totalCompleted"}).json()
    assert by_total[0]["metricValue"] == 1

    invalid = client.get("/api/v1/stats/leaderboard", params={"metric": "speed"})
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "validation_error"


def test_export_csv(client):
    empty = client.get("/api/v1/events/export.csv")
    assert empty.status_code == 204

    log_task(client, "created", taskId=7)
    response = client.get("/api/v1/events/export.csv")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    header, row = response.text.split("\n")
    assert header.startswith("eventId,timestamp,action,subjectId")
    assert '"created"' in row


def test_verify_and_compact(client, clock):
    log_task(client, "created")
    verify = client.post("/api/v1/stats/verify").json()
    assert verify == {"consistent": True, "eventsReplayed": 1, "liveEventsApplied": 1}

    clock.advance(days=45)
    compacted = client.post("/api/v1/events/compact", params={"days": 30}).json()
    assert compacted["removed"] == 1
    assert compacted["remaining"] == 0
    assert client.get("/api/v1/stats").json()["totalCreated"] == 1
    assert client.post("/api/v1/stats/verify").json()["consistent"] is False

    negative = client.post("/api/v1/events/compact", params={"days": -1})
    assert negative.status_code == 422
