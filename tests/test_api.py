import pytest
from fastapi.testclient import TestClient

import main
from monitor import PostureMonitor
from session_context import SessionContext


@pytest.fixture
def client(monkeypatch, timers):
    monitor = PostureMonitor(
        context=SessionContext(echo=False),
        timer_factory=timers,
        stats_interval=3600
    )
    monitor.on_score = main.archive_score
    monitor.reminders.on_reminder = main.archive_reminder
    monitor.reminders.on_resolved = main.archive_response
    monkeypatch.setattr(main, "monitor", monitor)

    with TestClient(main.app) as test_client:
        yield test_client


def post_good_posture(client):
    client.post("/api/sensors/tilt", json={"tilt_angle": 0.0})
    client.post("/api/sensors/vision", json={
        "head_distance": 50.0,
        "head_position": {"x": 0.0, "y": 0.0, "rotation": 0.0},
        "confidence": 0.9,
        "face_detected": True
    })
    return client.post("/api/sensors/stability", json={"device_stable": True})


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "running"
    assert data["monitoring"] is True
    assert data["serial_connected"] is False
    assert data["session_id"] == main.monitor.context.session_id


def test_no_score_yet(client):
    assert client.get("/api/score").status_code == 404


def test_partial_input_gives_no_score(client):
    response = client.post("/api/sensors/tilt", json={"tilt_angle": 10.0})

    assert response.status_code == 200
    assert response.json() is None


def test_sensor_input_produces_score(client):
    response = post_good_posture(client)

    assert response.status_code == 200
    assert response.json()["overall"] == 100.0
    assert response.json()["level"] == "excellent"

    assert client.get("/api/score").json()["overall"] == 100.0
    assert len(client.get("/api/history").json()) == 1
    assert client.get("/api/behavior").json()["session_duration"] == 1
    assert client.get("/api/stats", params={"fresh": True}).json()["total_measurements"] == 1
    # Band for a 100 average, tightened for a strong user
    thresholds = client.get("/api/thresholds").json()
    assert thresholds["tilt_tolerance"] == pytest.approx(16.0)
    assert thresholds["distance_tolerance"] == pytest.approx(12.0)


def test_invalid_reading_rejected(client):
    assert client.post("/api/sensors/tilt", json={}).status_code == 422


def test_respond_without_active_reminder(client):
    response = client.post("/api/reminders/respond", json={"action": "dismissed"})
    assert response.status_code == 404


def test_unknown_action_rejected(client):
    response = client.post("/api/reminders/respond", json={"action": "snooze"})
    assert response.status_code == 422


def test_posture_check_round_trip(client):
    # Keep the first score from raising a reminder of its own
    client.put("/api/reminders/config", json={"enabled": False})
    assert client.post("/api/reminders/check").status_code == 409

    post_good_posture(client)
    response = client.post("/api/reminders/check")

    assert response.status_code == 200
    event = response.json()
    assert event["is_user_triggered"] is True
    assert client.get("/api/reminders/active").json()["message"] == event["message"]

    response = client.post("/api/reminders/respond", json={"action": "corrected_posture"})

    assert response.status_code == 200
    assert response.json()["stats"]["acknowledged_reminders"] == 1
    assert client.get("/api/reminders/active").json() is None
    assert len(client.get("/api/reminders/history").json()) == 1
    assert client.get("/api/reminders/stats").json()["response_rate"] == 1.0

    archived = [
        r for r in client.get("/api/reminders/archive").json()
        if r["session_id"] == main.monitor.context.session_id
    ]
    assert len(archived) == 1
    assert archived[0]["acknowledged"] is True
    assert archived[0]["user_action"] == "corrected_posture"


def test_reminder_config(client):
    assert client.get("/api/reminders/config").json()["minimum_interval"] == 30.0

    response = client.put("/api/reminders/config", json={
        "quiet_hours": [22, 6],
        "work_mode_enabled": True,
        "maximum_interval": 900.0
    })

    assert response.status_code == 200
    assert response.json()["quiet_hours"] == [22, 6]
    assert main.monitor.reminders.config.work_mode_enabled
    assert main.monitor.reminders.config.maximum_interval == 900.0


def test_app_state(client):
    client.post("/api/app-state", params={"foreground": False})
    assert main.monitor.reminders.app_in_foreground is False


def test_monitoring_start_stop(client):
    assert client.post("/api/monitoring/stop").json() == {"monitoring": False}
    assert post_good_posture(client).json() is None
    assert client.post("/api/monitoring/start").json() == {"monitoring": True}


def test_reset_session(client):
    post_good_posture(client)

    assert client.post("/api/reset-session").status_code == 200
    assert client.get("/api/history").json() == []


def test_calibrate(client):
    post_good_posture(client)
    client.post("/api/sensors/calibrate")

    assert client.post("/api/sensors/tilt", json={"tilt_angle": 0.0}).json() is None


def test_report_and_logs(client):
    post_good_posture(client)

    report = client.get("/api/report")
    assert report.status_code == 200
    assert report.text.startswith("=== Posture Session Report ===")

    logs = client.get("/api/logs", params={"tag": "PostureMonitor"}).json()
    assert logs[0]["message"] == "Starting posture monitoring"


def test_daily_summary(client):
    post_good_posture(client)

    summary = client.get("/api/daily-summary").json()

    assert summary["date"] == str(main.monitor.context.now().date())
    assert summary["total_scores"] >= 1
    assert summary["average_score"] > 0


def test_serial_status_without_reader(client):
    assert client.get("/api/serial/status").json()["connected"] is False


def test_first_score_raises_gentle_reminder(client):
    post_good_posture(client)

    active = client.get("/api/reminders/active").json()

    assert active["level"] == "gentle"
    assert active["is_user_triggered"] is False


@pytest.mark.parametrize("path", [
    "/api/history",
    "/api/reminders/history",
    "/api/reminders/archive",
    "/api/logs",
])
def test_limit_must_be_positive(client, path):
    assert client.get(path, params={"limit": 0}).status_code == 422
    assert client.get(path, params={"limit": -3}).status_code == 422


def test_history_limit(client):
    post_good_posture(client)
    client.post("/api/sensors/tilt", json={"tilt_angle": 5.0})

    history = client.get("/api/history", params={"limit": 1}).json()

    assert len(history) == 1
    assert history[0]["tilt_score"] < 100.0
