"""
Session layer for today's prayer times: fetch through the backend, adjust, resolve current/next,
and keep the countdown pointed at the next prayer. Holds the latest snapshot for the API and CLI.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from prayer_board.core.errors import PrayerBoardError
from prayer_board.core.task_manager import TaskManager

from . import adjustments
from .countdown import CountdownScheduler
from .models import DailyTimings, Location, NextPrayer, PrayerOptions, ResolvedPrayerState
from .prayer_base import PrayerBackend
from .resolver import resolve


class SessionStatus:
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class PrayerSnapshot:
    status: str = SessionStatus.IDLE
    location: Optional[str] = None
    timings: Optional[Dict[str, str]] = None
    date_label: Optional[str] = None
    hijri_date: Optional[str] = None
    current: Optional[str] = None
    next: Optional[NextPrayer] = None
    error: Optional[str] = None
    fetched_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def daily_timings_from_payload(data: Dict[str, Any], adjustment_map: Dict[str, int]) -> DailyTimings:
    date_info = data.get("date") or {}
    meta = data.get("meta") or {}
    readable = date_info.get("readable")
    if not readable and meta.get("timezone"):
        readable = f"Timezone: {meta['timezone']}"
    hijri = date_info.get("hijri") or {}
    return DailyTimings(
        timings=adjustments.apply(data["timings"], adjustment_map),
        date_label=readable,
        hijri_date=hijri.get("date"),
        timezone=meta.get("timezone"),
    )


class PrayerTimesSession:
    TASK_NAME = "prayer_times"
    MIDNIGHT_TASK_NAME = "prayer_times_next_day"

    def __init__(
        self,
        backend: PrayerBackend,
        task_manager: TaskManager,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_tick: Optional[Callable[[str], None]] = None,
    ):
        self.backend = backend
        self.task_manager = task_manager
        self.clock = clock
        self.sleep = sleep
        self.logger = logging.getLogger(self.__class__.__name__)
        self.location: Optional[Location] = None
        self.options = PrayerOptions()
        self.snapshot = PrayerSnapshot()
        self.countdown = CountdownScheduler(
            on_elapsed=self.refresh, clock=clock, sleep=sleep, on_tick=on_tick
        )

    def request(self, location: Optional[Location], options: PrayerOptions) -> asyncio.Task:
        """Load timings for location; an earlier load still in flight is cancelled."""
        self.location = location
        self.options = options
        self.task_manager.cancel(self.MIDNIGHT_TASK_NAME)
        return self.task_manager.schedule(self.TASK_NAME, self._load(location, options))

    def cancel(self) -> None:
        """Drop any in-flight load and the pending next-day refresh; stop counting down."""
        self.task_manager.cancel(self.TASK_NAME)
        self.task_manager.cancel(self.MIDNIGHT_TASK_NAME)
        self.countdown.retarget(None)

    def fail(self, message: str) -> None:
        """Cancel pending work and publish message as the session error."""
        self.cancel()
        self.snapshot = PrayerSnapshot(status=SessionStatus.ERROR, error=message)

    def refresh(self) -> None:
        self.logger.info("Refreshing prayer times")
        self.request(self.location, self.options)

    def state(self, now: Optional[datetime] = None) -> ResolvedPrayerState:
        """Current/next projected from the latest timings at `now`."""
        if not self.snapshot.timings:
            return ResolvedPrayerState()
        return resolve(self.snapshot.timings, now or self.clock())

    async def _load(self, location: Optional[Location], options: PrayerOptions) -> None:
        if location is None:
            self.snapshot = PrayerSnapshot()
            self.countdown.retarget(None)
            return

        self.snapshot = PrayerSnapshot(status=SessionStatus.LOADING, location=location.label)
        try:
            query = location.resolve()
            data = await asyncio.to_thread(self.backend.get_daily_timings, query, options, self.clock().date())
            daily = daily_timings_from_payload(data, options.adjustments)
        except asyncio.CancelledError:
            self.logger.debug(f"Prayer times request for {location.label} superseded")
            return
        except (PrayerBoardError, KeyError) as e:
            message = str(e) if isinstance(e, PrayerBoardError) else f"Malformed timings payload: missing {e}"
            self.logger.error(f"Failed to load prayer times: {message}")
            self.snapshot = PrayerSnapshot(status=SessionStatus.ERROR, location=location.label, error=message)
            self.countdown.retarget(None)
            return

        now = self.clock()
        state = resolve(daily.timings, now)
        self.snapshot = PrayerSnapshot(
            status=SessionStatus.SUCCESS,
            location=location.label,
            timings=daily.timings,
            date_label=daily.date_label,
            hijri_date=daily.hijri_date,
            current=state.current,
            next=state.next,
            fetched_at=now,
            extra={"timezone": daily.timezone} if daily.timezone else {},
        )
        self.logger.info(f"Prayer times loaded for {location.label}: current={state.current}, "
                         f"next={state.next.name if state.next else None}")
        self.countdown.retarget(state.next)
        if state.next is None:
            self._schedule_next_day_update(now)

    def _schedule_next_day_update(self, now: datetime) -> None:
        """All prayers passed: reload shortly after midnight for the next day's schedule."""
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
        delay = (midnight - now).total_seconds() + 1

        async def wait_and_refresh():
            await self.sleep(delay)
            self.refresh()

        self.logger.info(f"All prayers passed; next refresh at {midnight.strftime('%Y-%m-%d %H:%M')}")
        self.task_manager.schedule(self.MIDNIGHT_TASK_NAME, wait_and_refresh())
