"""
Time-of-day parsing and formatting for Aladhan timing strings such as "05:12" or "05:12 (IST)".

Parsing never raises: a value that does not look like HH:MM comes back as Unchanged so
malformed upstream data still renders. Arithmetic works on the clock only and wraps at
midnight without advancing any date.
"""
import re
from dataclasses import dataclass, replace
from typing import Union

ANNOTATION_RE = re.compile(r"\s*\([^)]+\)\s*$")
CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class TimeOfDay:
    hour: int
    minute: int
    suffix: str = ""

    @property
    def clock(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @property
    def total_minutes(self) -> int:
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.clock}{self.suffix}"


@dataclass(frozen=True)
class Unchanged:
    """A raw value that did not parse; carried through verbatim."""
    raw: object

    def __str__(self) -> str:
        return str(self.raw)


ParseResult = Union[TimeOfDay, Unchanged]


def parse(raw) -> ParseResult:
    """Parse "HH:MM" with an optional trailing "(annotation)" kept as the suffix."""
    if not isinstance(raw, str):
        return Unchanged(raw)

    match = ANNOTATION_RE.search(raw)
    if match:
        clock_part, suffix = raw[:match.start()], raw[match.start():]
    else:
        clock_part, suffix = raw, ""

    clock = CLOCK_RE.match(clock_part.strip())
    if not clock:
        return Unchanged(raw)

    hour, minute = int(clock.group(1)), int(clock.group(2))
    if hour > 23 or minute > 59:
        return Unchanged(raw)
    return TimeOfDay(hour, minute, suffix)


def add_minutes(t: TimeOfDay, delta: int) -> TimeOfDay:
    """Shift the clock by delta minutes. Crossing midnight wraps the hour and does not roll the date."""
    total = t.total_minutes + int(delta)
    return replace(t, hour=(total // 60) % 24, minute=total % 60)


def to_12_hour(t: Union[TimeOfDay, str]) -> str:
    """Render as "h:MM AM/PM". Strings that do not parse are returned as given."""
    if not isinstance(t, TimeOfDay):
        parsed = parse(t)
        if isinstance(parsed, Unchanged):
            return t
        t = parsed

    period = "PM" if t.hour >= 12 else "AM"
    hour = t.hour % 12 or 12
    return f"{hour}:{t.minute:02d} {period}"


def to_am_pm_with_adjustment(raw: str, delta: int = 0) -> str:
    """Drop the annotation, shift by delta minutes and render in 12-hour form."""
    parsed = parse(raw)
    if isinstance(parsed, Unchanged):
        return raw
    shifted = add_minutes(replace(parsed, suffix=""), delta)
    return to_12_hour(shifted)


def format_duration(ms: int) -> str:
    """MM:SS below one hour, HH:MM:SS otherwise. Negative input renders as 00:00."""
    total_sec = max(0, int(ms) // 1000)
    hours, rest = divmod(total_sec, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"
