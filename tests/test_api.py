from datetime import datetime
from unittest.mock import Mock

import pytest
import yaml
from fastapi.testclient import TestClient

from prayer_board.api import create_app
from prayer_board.core.app import PrayerBoardApp
from prayer_board.plugins.prayer.models import PrayerOptions
from prayer_board.plugins.prayer.service import PrayerSnapshot, SessionStatus
from prayer_board.plugins.ramadan.pipeline import RamadanCalendarPipeline
from prayer_board.plugins.ramadan.service import RamadanSnapshot

from .conftest import FakeClock, StubBackend


@pytest.fixture
def board_app(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "location": {"city": "London", "country": "United Kingdom"},
        "cache": {"enable": False},
        "logging": {"file": None},
    }))
    app = PrayerBoardApp(config_path=str(path), watch_config=False, setup_logging=False,
                         clock=FakeClock(datetime(2026, 2, 17, 2, 46, 56)))
    yield app
    app.stop()


@pytest.fixture
def client(board_app):
    return TestClient(create_app(board_app))


def test_components_lists_both_sessions(client):
    response = client.get("/api/components")
    assert response.status_code == 200
    names = {c["name"]: c for c in response.json()}
    assert names["prayer"]["status"] == SessionStatus.IDLE
    assert names["ramadan"]["enabled"] is True


def test_tasks_endpoint_is_empty_when_idle(client):
    assert client.get("/api/tasks").json() == {"active_tasks": []}


def test_today_is_404_before_first_load(client):
    assert client.get("/api/components/prayer/today").status_code == 404


def test_today_resolves_at_request_time(board_app, client, daily_payload):
    board_app.clock.now = datetime(2026, 3, 1, 13, 0)
    board_app.prayer_session.snapshot = PrayerSnapshot(
        status=SessionStatus.SUCCESS,
        location="London, United Kingdom",
        timings=dict(daily_payload["timings"], Dhuhr="12:48 (GMT)", Asr="16:18 (GMT)"),
        date_label="01 Mar 2026",
    )

    body = client.get("/api/components/prayer/today").json()
    assert body["current"] == "Dhuhr"
    assert body["next"]["name"] == "Asr"
    assert body["next"]["countdown_text"] == "03:18:00"
    assert body["display"]["Asr"] == "4:18 PM"
    assert list(body["display"]) == ["Fajr", "Sunrise", "Dhuhr", "Asr", "Maghrib", "Sunset", "Isha"]

    board_app.clock.now = datetime(2026, 3, 1, 20, 0)
    body = client.get("/api/components/prayer/today").json()
    assert body["current"] == "Isha"
    assert body["next"] is None


def test_today_reports_errors(board_app, client):
    board_app.prayer_session.snapshot = PrayerSnapshot(status=SessionStatus.ERROR, error="boom")
    body = client.get("/api/components/prayer/today").json()
    assert body["status"] == "error"
    assert body["error"] == "boom"
    assert body["timings"] is None


def test_refresh_needs_running_loop(client):
    assert client.post("/api/components/prayer/refresh").status_code == 503


def test_calendar_and_day_routes(board_app, client, ramadan_records):
    calendar = RamadanCalendarPipeline(StubBackend(), PrayerOptions()).build(1447, ramadan_records)
    board_app.ramadan_session.snapshot = RamadanSnapshot(
        status=SessionStatus.SUCCESS, location="London, United Kingdom", calendar=calendar
    )
    board_app.ramadan_session.select(calendar.days[0].gregorian_date)

    body = client.get("/api/components/ramadan/calendar").json()
    assert body["hijri_year"] == 1447
    assert body["phase"] == "before"
    assert body["countdown_to_start"] == "1 days 2h 3m 4s"
    assert body["selected_date"] == "2026-02-18"
    assert [d["gregorian_date"] for d in body["days"]] == ["2026-02-18", "2026-02-19", "2026-02-20"]
    assert body["days"][0]["sehri"] == "4:50 AM"

    day = client.get("/api/components/ramadan/day/2026-02-19").json()
    assert day["hijri_date"] == "02-09-1447"
    assert day["iftar"] == "5:40 PM"

    assert client.get("/api/components/ramadan/day/2026-03-25").status_code == 404


def test_calendar_without_data(board_app, client):
    board_app.ramadan_session.snapshot = RamadanSnapshot(status=SessionStatus.ERROR, error="no data")
    body = client.get("/api/components/ramadan/calendar").json()
    assert body["status"] == "error"
    assert body["days"] == []
    assert body["error"] == "no data"


def test_refresh_is_handed_to_the_event_loop(board_app, client):
    board_app.task_manager.loop = Mock()
    response = client.post("/api/components/prayer/refresh")
    assert response.json() == {"status": "scheduled"}
    board_app.task_manager.loop.call_soon_threadsafe.assert_called_once_with(board_app.prayer_session.refresh)
