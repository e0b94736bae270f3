"""
Current/next prayer resolution over one day's timings.

Only the five obligatory prayers take part; Sunrise, Sunset, Imsak and Midnight are
display-only. All instants are built on the reference instant's calendar day.
"""
from datetime import datetime, time, timedelta
from typing import Dict, Optional

from .models import NextPrayer, ResolvedPrayerState
from .time_codec import TimeOfDay, format_duration, parse

PRAYER_ORDER = ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha")
DISPLAY_ORDER = ("Fajr", "Sunrise", "Dhuhr", "Asr", "Maghrib", "Sunset", "Isha")


def same_day_instant(raw: str, now: datetime) -> Optional[datetime]:
    parsed = parse(raw)
    if not isinstance(parsed, TimeOfDay):
        return None
    return datetime.combine(now.date(), time(parsed.hour, parsed.minute), tzinfo=now.tzinfo)


def find_current(timings: Dict[str, str], now: datetime) -> Optional[str]:
    """Last prayer whose time is <= now. Before Fajr the previous night's Isha is still current."""
    present = [name for name in PRAYER_ORDER if timings.get(name)]
    last_passed = None
    for name in present:
        instant = same_day_instant(timings[name], now)
        if instant is not None and instant <= now:
            last_passed = name

    if last_passed is None and present:
        return present[-1]
    return last_passed


def find_next(timings: Dict[str, str], now: datetime) -> Optional[NextPrayer]:
    """Nearest prayer strictly after now, or None once Isha has passed."""
    best = None
    for name in PRAYER_ORDER:
        raw = timings.get(name)
        if not raw:
            continue
        instant = same_day_instant(raw, now)
        if instant is None:
            continue
        diff = instant - now
        if diff > timedelta(0) and (best is None or diff < best[2]):
            best = (name, instant, diff)

    if best is None:
        return None

    name, instant, diff = best
    countdown_ms = diff // timedelta(milliseconds=1)
    return NextPrayer(
        name=name,
        time=timings[name],
        countdown_ms=countdown_ms,
        countdown_text=format_duration(countdown_ms),
        at=instant,
    )


def resolve(timings: Dict[str, str], now: datetime) -> ResolvedPrayerState:
    return ResolvedPrayerState(current=find_current(timings, now), next=find_next(timings, now))
