import requests
from datetime import date
from typing import Dict, Any, List, Optional
import logging
from abc import ABC, abstractmethod
from prayer_board.core.cache_helper import CacheHelper
from prayer_board.core.errors import ConfigurationError, ServiceError
from .models import LocationQuery, PrayerOptions, QueryKind

class PrayerBackend(ABC):
    """Base class for prayer time data backends"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.timeout = config.get('timeout', 10)
        self.cache_helper = None
        if config.get('cache_enabled', True):
            self.cache_helper = CacheHelper(config.get('cache_dir'), "prayer_times")

    @abstractmethod
    def get_daily_timings(self, query: LocationQuery, options: PrayerOptions,
                          day: Optional[date] = None) -> Dict[str, Any]:
        """Get one day's record: {timings, date: {readable, gregorian, hijri}, meta}
        Raises:
            ServiceError: service unreachable or returned an error payload
        """
        pass

    @abstractmethod
    def gregorian_to_hijri(self, day: date) -> Dict[str, Any]:
        """Convert a Gregorian date; returns {hijri: {...}, gregorian: {...}}"""
        pass

    @abstractmethod
    def get_hijri_calendar(self, query: LocationQuery, month: int, year: int,
                           options: PrayerOptions) -> List[Dict[str, Any]]:
        """Get every day of a Hijri month as a list of daily records"""
        pass

class AladhanBackend(PrayerBackend):
    """Prayer times backend using api.aladhan.com"""

    BASE_URL = "https://api.aladhan.com/v1"

    DAILY_PATHS = {
        QueryKind.COORDINATES: "/timings",
        QueryKind.CITY: "/timingsByCity",
        QueryKind.ADDRESS: "/timingsByAddress",
    }

    HIJRI_CALENDAR_PATHS = {
        QueryKind.COORDINATES: "/hijriCalendar",
        QueryKind.CITY: "/hijriCalendarByCity",
        QueryKind.ADDRESS: "/hijriCalendarByAddress",
    }

    def get_daily_timings(self, query: LocationQuery, options: PrayerOptions,
                          day: Optional[date] = None) -> Dict[str, Any]:
        day = day or date.today()
        path = f"{self.DAILY_PATHS[query.kind]}/{day.strftime('%d-%m-%Y')}"
        data = self._fetch(path, {**query.params, **options.query_params()}, use_cache=True)
        if not isinstance(data, dict) or not isinstance(data.get('timings'), dict):
            raise ServiceError("Aladhan returned no timings for this location")
        return data

    def gregorian_to_hijri(self, day: date) -> Dict[str, Any]:
        data = self._fetch(f"/gToH/{day.strftime('%d-%m-%Y')}", {}, use_cache=True)
        if not isinstance(data, dict):
            raise ServiceError("Aladhan returned an invalid date conversion")
        return data

    def get_hijri_calendar(self, query: LocationQuery, month: int, year: int,
                           options: PrayerOptions) -> List[Dict[str, Any]]:
        path = f"{self.HIJRI_CALENDAR_PATHS[query.kind]}/{year}/{month}"
        data = self._fetch(path, {**query.params, **options.query_params()}, use_cache=True)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ServiceError("Aladhan returned an invalid calendar payload")
        return data

    def _fetch(self, path: str, params: Dict[str, Any], use_cache: bool = False) -> Any:
        """GET an Aladhan endpoint and unwrap {code, status, data}"""
        url = f"{self.BASE_URL}{path}"
        params = {k: v for k, v in params.items() if v is not None and v != ""}
        cache_key = f"{url}?{sorted(params.items())}"

        if use_cache and self.cache_helper:
            cached = self.cache_helper.get_cached_content(cache_key)
            if cached is not None:
                self.logger.debug(f"Got from cache: {url}")
                return cached

        self.logger.info(f"Making API request to {url} with params {params}")
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ServiceError(f"Aladhan API request failed: {e}")

        if not response.ok:
            raise ServiceError(f"Aladhan API error {response.status_code}: {response.text}",
                               status=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            raise ServiceError("Aladhan API returned a non-JSON response", status=response.status_code)

        if not isinstance(payload, dict) or payload.get('code') != 200:
            code = payload.get('code') if isinstance(payload, dict) else None
            status = payload.get('status') if isinstance(payload, dict) else None
            raise ServiceError(f"Aladhan responded with code {code}: {status}", status=code)

        data = payload.get('data')
        if use_cache and self.cache_helper:
            self.cache_helper.save_to_cache(cache_key, data)
        return data

def create_backend(config: Dict[str, Any]) -> PrayerBackend:
    """Create prayer times backend based on configuration"""
    backend_type = config.get('backend', 'aladhan')
    if backend_type == 'aladhan':
        return AladhanBackend(config)
    raise ConfigurationError(f"Unknown prayer times backend: {backend_type}")
