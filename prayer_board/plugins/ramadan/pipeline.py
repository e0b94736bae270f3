"""
Ramadan calendar: resolve the current Hijri year, fetch month 9 for a location, and adjust
each day the same way the daily timings are adjusted.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from prayer_board.core.errors import ServiceError
from prayer_board.plugins.prayer import adjustments
from prayer_board.plugins.prayer.models import Location, LocationQuery, PrayerOptions
from prayer_board.plugins.prayer.prayer_base import PrayerBackend
from prayer_board.plugins.prayer.time_codec import TimeOfDay, parse

RAMADAN_MONTH = 9
GREGORIAN_FORMAT = "%d-%m-%Y"


class RamadanPhase:
    BEFORE = "before"
    DURING = "during"
    AFTER = "after"


@dataclass(frozen=True)
class CalendarDay:
    gregorian_date: date
    hijri_date: str
    timings: Dict[str, str]
    hijri_weekday: Optional[str] = None
    readable: Optional[str] = None


@dataclass(frozen=True)
class RamadanCalendar:
    hijri_year: int
    days: Tuple[CalendarDay, ...] = ()
    start: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self.days)

    def __iter__(self) -> Iterator[CalendarDay]:
        return iter(self.days)

    def day_for(self, d: date) -> Optional[CalendarDay]:
        if isinstance(d, datetime):
            d = d.date()
        for day in self.days:
            if day.gregorian_date == d:
                return day
        return None

    def available_dates(self) -> List[date]:
        return [day.gregorian_date for day in self.days]

    def phase(self, now: datetime) -> Optional[str]:
        if not self.days or self.start is None:
            return None
        if now < self.start:
            return RamadanPhase.BEFORE
        if now.date() <= self.days[-1].gregorian_date:
            return RamadanPhase.DURING
        return RamadanPhase.AFTER

    def countdown_to_start(self, now: datetime) -> Optional[str]:
        if self.start is None:
            return None
        remaining = int((self.start - now).total_seconds())
        if remaining <= 0:
            return None
        days, rest = divmod(remaining, 86400)
        hours, rest = divmod(rest, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{days} days {hours}h {minutes}m {seconds}s"

    @staticmethod
    def sehri(day: CalendarDay) -> Optional[str]:
        return day.timings.get("Imsak") or day.timings.get("Fajr")

    @staticmethod
    def iftar(day: CalendarDay) -> Optional[str]:
        return day.timings.get("Maghrib")


def parse_gregorian(value: Any) -> date:
    try:
        return datetime.strptime(str(value), GREGORIAN_FORMAT).date()
    except ValueError:
        raise ServiceError(f"Unexpected Gregorian date in calendar payload: {value!r}")


def fast_start(first_date: date, adjusted: Dict[str, str]) -> datetime:
    """Day 0's Imsak, falling back to Fajr, then to the start of the day."""
    for key in ("Imsak", "Fajr"):
        parsed = parse(adjusted.get(key))
        if isinstance(parsed, TimeOfDay):
            return datetime.combine(first_date, time(parsed.hour, parsed.minute))
    return datetime.combine(first_date, time(0, 0))


class RamadanCalendarPipeline:
    def __init__(self, backend: PrayerBackend, options: PrayerOptions,
                 clock: Callable[[], datetime] = datetime.now):
        self.backend = backend
        self.options = options
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)

    def resolve_hijri_year(self, today: date) -> int:
        data = self.backend.gregorian_to_hijri(today)
        year = (data.get("hijri") or {}).get("year")
        try:
            return int(str(year).strip())
        except (TypeError, ValueError):
            raise ServiceError(f"Date conversion returned a non-numeric Hijri year: {year!r}")

    def fetch_month(self, query: LocationQuery, hijri_year: int) -> List[Dict[str, Any]]:
        return self.backend.get_hijri_calendar(query, RAMADAN_MONTH, hijri_year, self.options)

    def build(self, hijri_year: int, records: List[Dict[str, Any]]) -> RamadanCalendar:
        """Turn raw day records into an ordered calendar; one bad record fails the whole build."""
        built = []
        for record in records:
            try:
                raw_timings = record["timings"]
                date_info = record["date"]
                gregorian = parse_gregorian(date_info["gregorian"]["date"])
            except (KeyError, TypeError):
                raise ServiceError("Malformed day record in calendar payload")
            if not isinstance(raw_timings, dict):
                raise ServiceError(f"Calendar day {gregorian} has no timings")
            hijri = date_info.get("hijri") or {}
            adjusted = adjustments.apply(raw_timings, self.options.adjustments)
            day = CalendarDay(
                gregorian_date=gregorian,
                hijri_date=hijri.get("date", ""),
                timings=adjustments.apply_for_display(raw_timings, self.options.adjustments),
                hijri_weekday=(hijri.get("weekday") or {}).get("en"),
                readable=date_info.get("readable"),
            )
            built.append((day, adjusted))

        built.sort(key=lambda pair: pair[0].gregorian_date)
        if not built:
            return RamadanCalendar(hijri_year=hijri_year)

        first, first_adjusted = built[0]
        return RamadanCalendar(
            hijri_year=hijri_year,
            days=tuple(day for day, _ in built),
            start=fast_start(first.gregorian_date, first_adjusted),
        )

    def run(self, location: Location, today: Optional[date] = None) -> RamadanCalendar:
        query = location.resolve()
        today = today or self.clock().date()
        hijri_year = self.resolve_hijri_year(today)
        self.logger.info(f"Fetching Ramadan {hijri_year} calendar for {location.label}")
        calendar = self.build(hijri_year, self.fetch_month(query, hijri_year))
        self.logger.info(f"Ramadan calendar ready: {len(calendar)} days, starts {calendar.start}")
        return calendar
