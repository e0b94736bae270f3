from datetime import date

import pytest
import requests
import responses
from responses import matchers

from prayer_board.core.cache_helper import CacheHelper
from prayer_board.core.errors import ConfigurationError, ServiceError
from prayer_board.plugins.prayer.models import Location, PrayerOptions
from prayer_board.plugins.prayer.prayer_base import AladhanBackend, create_backend

BASE = "https://api.aladhan.com/v1"


@pytest.fixture
def backend():
    return AladhanBackend({"cache_enabled": False, "timeout": 5})


def envelope(data, code=200, status="OK"):
    return {"code": code, "status": status, "data": data}


@responses.activate
def test_daily_timings_by_coordinates(backend, daily_payload):
    responses.add(
        responses.GET,
        f"{BASE}/timings/01-03-2026",
        json=envelope(daily_payload),
        match=[matchers.query_param_matcher(
            {"latitude": "51.5", "longitude": "-0.12", "method": "2", "school": "0"}
        )],
    )
    query = Location(lat=51.5, lon=-0.12).resolve()
    data = backend.get_daily_timings(query, PrayerOptions(), date(2026, 3, 1))
    assert data["timings"]["Fajr"] == "05:00 (GMT)"


@responses.activate
def test_daily_timings_by_city_drops_empty_params(backend, daily_payload):
    responses.add(
        responses.GET,
        f"{BASE}/timingsByCity/01-03-2026",
        json=envelope(daily_payload),
        match=[matchers.query_param_matcher(
            {"city": "Leeds", "country": "United Kingdom", "method": "3"}
        )],
    )
    query = Location(city="Leeds", country="United Kingdom").resolve()
    backend.get_daily_timings(query, PrayerOptions(method=3, school=None), date(2026, 3, 1))
    assert len(responses.calls) == 1


@responses.activate
def test_daily_timings_by_address(backend, daily_payload):
    responses.add(responses.GET, f"{BASE}/timingsByAddress/01-03-2026", json=envelope(daily_payload))
    query = Location(city="Karachi").resolve()
    backend.get_daily_timings(query, PrayerOptions(), date(2026, 3, 1))
    assert "address=Karachi" in responses.calls[0].request.url


@responses.activate
def test_http_error_becomes_service_error(backend):
    responses.add(responses.GET, f"{BASE}/timings/01-03-2026", body="upstream down", status=502)
    with pytest.raises(ServiceError) as exc:
        backend.get_daily_timings(Location(lat=1, lon=2).resolve(), PrayerOptions(), date(2026, 3, 1))
    assert exc.value.status == 502
    assert "502" in str(exc.value)


@responses.activate
def test_error_code_in_payload_becomes_service_error(backend):
    responses.add(responses.GET, f"{BASE}/timings/01-03-2026",
                  json={"code": 400, "status": "BAD_REQUEST", "data": "Invalid latitude"})
    with pytest.raises(ServiceError, match="code 400: BAD_REQUEST"):
        backend.get_daily_timings(Location(lat=100, lon=2).resolve(), PrayerOptions(), date(2026, 3, 1))


@responses.activate
def test_connection_error_becomes_service_error(backend):
    responses.add(responses.GET, f"{BASE}/gToH/01-03-2026", body=requests.ConnectionError("refused"))
    with pytest.raises(ServiceError, match="request failed"):
        backend.gregorian_to_hijri(date(2026, 3, 1))


@responses.activate
def test_missing_timings_is_service_error(backend):
    responses.add(responses.GET, f"{BASE}/timings/01-03-2026", json=envelope({"date": {}}))
    with pytest.raises(ServiceError):
        backend.get_daily_timings(Location(lat=1, lon=2).resolve(), PrayerOptions(), date(2026, 3, 1))


@responses.activate
def test_hijri_calendar_paths(backend, ramadan_records):
    responses.add(responses.GET, f"{BASE}/hijriCalendar/1447/9", json=envelope(ramadan_records))
    responses.add(responses.GET, f"{BASE}/hijriCalendarByCity/1447/9", json=envelope([]))

    by_coords = backend.get_hijri_calendar(Location(lat=1, lon=2).resolve(), 9, 1447, PrayerOptions())
    by_city = backend.get_hijri_calendar(Location(city="Doha", country="Qatar").resolve(), 9, 1447,
                                         PrayerOptions())
    assert len(by_coords) == 3
    assert by_city == []


@responses.activate
def test_daily_responses_are_cached_for_today(tmp_path, daily_payload):
    backend = AladhanBackend({"cache_dir": str(tmp_path)})
    backend.cache_helper = CacheHelper(str(tmp_path), "prayer_times", today=lambda: date(2026, 3, 1))
    responses.add(responses.GET, f"{BASE}/timings/01-03-2026", json=envelope(daily_payload))

    query = Location(lat=1, lon=2).resolve()
    first = backend.get_daily_timings(query, PrayerOptions(), date(2026, 3, 1))
    second = backend.get_daily_timings(query, PrayerOptions(), date(2026, 3, 1))

    assert first == second
    assert len(responses.calls) == 1


def test_cache_entries_expire_the_next_day(tmp_path):
    today = [date(2026, 3, 1)]
    cache = CacheHelper(str(tmp_path), "ns", today=lambda: today[0])
    cache.save_to_cache("key", {"a": 1})
    assert cache.get_cached_content("key") == {"a": 1}
    today[0] = date(2026, 3, 2)
    assert cache.get_cached_content("key") is None


def test_unknown_backend_is_rejected():
    with pytest.raises(ConfigurationError):
        create_backend({"backend": "local", "cache_enabled": False})
