import threading
from datetime import datetime, timedelta

import pytest

from prayer_board.core.errors import ServiceError


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def day_record(gregorian: str, hijri: str, **timings) -> dict:
    base = {
        "Imsak": "04:50 (GMT)",
        "Fajr": "05:00 (GMT)",
        "Sunrise": "06:40 (GMT)",
        "Dhuhr": "12:10 (GMT)",
        "Asr": "15:05 (GMT)",
        "Sunset": "17:40 (GMT)",
        "Maghrib": "17:40 (GMT)",
        "Isha": "19:10 (GMT)",
    }
    base.update(timings)
    return {
        "timings": base,
        "date": {
            "readable": gregorian,
            "gregorian": {"date": gregorian},
            "hijri": {"date": hijri, "year": hijri[-4:], "weekday": {"en": "Al Arba'a"}},
        },
    }


class StubBackend:
    """In-memory stand-in for AladhanBackend."""

    def __init__(self, daily=None, hijri_year="1447", calendar=None, error=None):
        self.daily = daily
        self.hijri_year = hijri_year
        self.calendar = calendar if calendar is not None else []
        self.error = error
        self.calls = []
        self.block_first = None
        self.block_first_calendar = None
        self.released = threading.Event()

    def get_daily_timings(self, query, options, day=None):
        self.calls.append(("daily", query, day))
        if self.block_first is not None and len([c for c in self.calls if c[0] == "daily"]) == 1:
            self.released.wait(5)
            return self.block_first
        if self.error:
            raise self.error
        return self.daily

    def gregorian_to_hijri(self, day):
        self.calls.append(("gToH", day))
        return {"hijri": {"year": self.hijri_year}}

    def get_hijri_calendar(self, query, month, year, options):
        self.calls.append(("calendar", query, month, year))
        if self.block_first_calendar is not None and len([c for c in self.calls if c[0] == "calendar"]) == 1:
            self.released.wait(5)
            return self.block_first_calendar
        if self.error:
            raise self.error
        return self.calendar


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 13, 0, 0))


@pytest.fixture
def sample_timings():
    return {
        "Fajr": "05:00",
        "Sunrise": "06:30",
        "Dhuhr": "12:00",
        "Asr": "15:30",
        "Sunset": "18:05",
        "Maghrib": "18:10",
        "Isha": "19:30",
        "Imsak": "04:50",
        "Midnight": "00:15",
    }


@pytest.fixture
def daily_payload(sample_timings):
    return {
        "timings": {k: f"{v} (GMT)" for k, v in sample_timings.items()},
        "date": {
            "readable": "01 Mar 2026",
            "gregorian": {"date": "01-03-2026"},
            "hijri": {"date": "12-09-1447"},
        },
        "meta": {"timezone": "Europe/London"},
    }


@pytest.fixture
def ramadan_records():
    # Out of order on purpose; the pipeline sorts by Gregorian date
    return [
        day_record("19-02-2026", "02-09-1447", Imsak="04:49 (GMT)"),
        day_record("18-02-2026", "01-09-1447"),
        day_record("20-02-2026", "03-09-1447"),
    ]


@pytest.fixture
def service_error():
    return ServiceError("Aladhan API error 500: upstream down", status=500)
