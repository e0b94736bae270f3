import asyncio
from datetime import datetime

import pytest
import yaml

from prayer_board.core import app as app_module
from prayer_board.core.app import PrayerBoardApp
from prayer_board.plugins.prayer.countdown import CountdownState
from prayer_board.plugins.prayer.prayer_base import AladhanBackend
from prayer_board.plugins.prayer.service import PrayerTimesSession, SessionStatus

from .conftest import FakeClock, StubBackend

LONDON = {"city": "London", "country": "United Kingdom"}


def write_config(path, location=None, **sections):
    data = {"location": location or {}, "cache": {"enable": False}, "logging": {"file": None}}
    data.update(sections)
    path.write_text(yaml.safe_dump(data))


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    write_config(path, LONDON)
    return path


@pytest.fixture
def backend(daily_payload, ramadan_records):
    return StubBackend(daily=daily_payload, calendar=ramadan_records)


@pytest.fixture
def board_app(config_path, backend, monkeypatch):
    monkeypatch.setattr(app_module, "create_backend", lambda config: backend)
    app = PrayerBoardApp(config_path=str(config_path), watch_config=False, setup_logging=False,
                         clock=FakeClock(datetime(2026, 3, 1, 13, 0)))
    yield app
    app.stop()


def test_load_all_populates_both_sessions(board_app):
    asyncio.run(board_app.load_once())
    assert board_app.prayer_session.snapshot.status == SessionStatus.SUCCESS
    assert board_app.prayer_session.snapshot.next.name == "Asr"
    assert len(board_app.ramadan_session.snapshot.calendar) == 3


def test_invalid_config_discards_in_flight_fetch(board_app, backend, config_path, daily_payload):
    backend.block_first = daily_payload

    async def run():
        first = board_app.load_all()
        while not any(call[0] == "daily" for call in backend.calls):
            await asyncio.sleep(0.01)

        write_config(config_path, LONDON, prayer={"adjustment_profile": "nope"})
        board_app.config.reload()

        backend.released.set()
        await asyncio.gather(*first, return_exceptions=True)
        await asyncio.sleep(0.05)
        return [t["name"] for t in board_app.task_manager.get_active_tasks()]

    active = asyncio.run(run())
    prayer = board_app.prayer_session.snapshot
    assert prayer.status == SessionStatus.ERROR
    assert "nope" in prayer.error
    assert prayer.timings is None
    assert board_app.prayer_session.countdown.state == CountdownState.IDLE

    ramadan = board_app.ramadan_session.snapshot
    assert ramadan.status == SessionStatus.ERROR
    assert ramadan.calendar is None
    assert active == []


def test_invalid_config_cancels_next_day_refresh(board_app):
    async def run():
        board_app.task_manager.schedule(PrayerTimesSession.MIDNIGHT_TASK_NAME, asyncio.Event().wait())
        board_app.prayer_session.fail("bad location")
        await asyncio.sleep(0)
        return board_app.task_manager.get_active_tasks()

    assert asyncio.run(run()) == []
    assert board_app.prayer_session.snapshot.error == "bad location"


def test_disabling_ramadan_drops_calendar_and_pending_load(board_app, backend, config_path):
    async def run():
        await board_app.load_once()
        assert len(board_app.ramadan_session.snapshot.calendar) == 3

        pending = board_app.load_all()
        write_config(config_path, LONDON, ramadan={"enable": False})
        board_app.config.reload()
        await asyncio.gather(*pending, return_exceptions=True)
        await asyncio.gather(*board_app.task_manager.tasks.values(), return_exceptions=True)

    asyncio.run(run())
    ramadan = board_app.ramadan_session.snapshot
    assert ramadan.status == SessionStatus.IDLE
    assert ramadan.calendar is None
    assert board_app.ramadan_session.selected_day is None
    assert len([c for c in backend.calls if c[0] == "calendar"]) == 1
    assert board_app.prayer_session.snapshot.status == SessionStatus.SUCCESS
    assert board_app.session_summaries()[1]["enabled"] is False


def test_config_change_rebuilds_backend(tmp_path):
    path = tmp_path / "config.yaml"
    write_config(path)
    app = PrayerBoardApp(config_path=str(path), watch_config=False, setup_logging=False)
    try:
        assert app.backend.timeout == 10

        async def run():
            write_config(path, prayer={"timeout": 3})
            app.config.reload()
            await asyncio.gather(*app.task_manager.tasks.values(), return_exceptions=True)

        asyncio.run(run())
        assert isinstance(app.backend, AladhanBackend)
        assert app.backend.timeout == 3
        assert app.prayer_session.backend is app.backend
        assert app.ramadan_session.backend is app.backend
    finally:
        app.stop()


def test_unknown_backend_on_reload_is_reported(tmp_path):
    path = tmp_path / "config.yaml"
    write_config(path, LONDON)
    app = PrayerBoardApp(config_path=str(path), watch_config=False, setup_logging=False)
    try:
        write_config(path, LONDON, prayer={"backend": "local"})
        app.config.reload()
        assert app.prayer_session.snapshot.status == SessionStatus.ERROR
        assert "local" in app.prayer_session.snapshot.error
    finally:
        app.stop()
