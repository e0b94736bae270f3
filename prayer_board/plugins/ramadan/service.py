"""
Session holder for the Ramadan calendar. A new request cancels the one in flight; a failed
run clears the day list instead of leaving the previous location's days behind.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from prayer_board.core.errors import PrayerBoardError
from prayer_board.core.task_manager import TaskManager
from prayer_board.plugins.prayer.models import Location, PrayerOptions
from prayer_board.plugins.prayer.prayer_base import PrayerBackend
from prayer_board.plugins.prayer.service import SessionStatus

from .pipeline import CalendarDay, RamadanCalendar, RamadanCalendarPipeline


@dataclass(frozen=True)
class RamadanSnapshot:
    status: str = SessionStatus.IDLE
    location: Optional[str] = None
    calendar: Optional[RamadanCalendar] = None
    error: Optional[str] = None


class RamadanSession:
    TASK_NAME = "ramadan_calendar"

    def __init__(self, backend: PrayerBackend, task_manager: TaskManager,
                 clock: Callable[[], datetime] = datetime.now):
        self.backend = backend
        self.task_manager = task_manager
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)
        self.snapshot = RamadanSnapshot()
        self.selected_date: Optional[date] = None

    def request(self, location: Optional[Location], options: PrayerOptions) -> asyncio.Task:
        return self.task_manager.schedule(self.TASK_NAME, self._load(location, options))

    def clear(self, message: Optional[str] = None) -> None:
        """Cancel any in-flight load and drop the calendar; with a message the session reports an error."""
        self.task_manager.cancel(self.TASK_NAME)
        self.selected_date = None
        if message is None:
            self.snapshot = RamadanSnapshot()
        else:
            self.snapshot = RamadanSnapshot(status=SessionStatus.ERROR, error=message)

    def select(self, d: date) -> Optional[CalendarDay]:
        """Select a date in the calendar; dates outside Ramadan select nothing."""
        calendar = self.snapshot.calendar
        day = calendar.day_for(d) if calendar else None
        if day is not None:
            self.selected_date = day.gregorian_date
        return day

    @property
    def selected_day(self) -> Optional[CalendarDay]:
        calendar = self.snapshot.calendar
        if calendar is None or self.selected_date is None:
            return None
        return calendar.day_for(self.selected_date)

    async def _load(self, location: Optional[Location], options: PrayerOptions) -> None:
        if location is None:
            self.snapshot = RamadanSnapshot()
            self.selected_date = None
            return

        self.snapshot = RamadanSnapshot(status=SessionStatus.LOADING, location=location.label)
        pipeline = RamadanCalendarPipeline(self.backend, options, clock=self.clock)
        try:
            calendar = await asyncio.to_thread(pipeline.run, location, self.clock().date())
        except asyncio.CancelledError:
            self.logger.debug(f"Ramadan calendar request for {location.label} superseded")
            return
        except PrayerBoardError as e:
            self.logger.error(f"Failed to load Ramadan calendar: {e}")
            self.snapshot = RamadanSnapshot(status=SessionStatus.ERROR, location=location.label, error=str(e))
            self.selected_date = None
            return

        self.snapshot = RamadanSnapshot(status=SessionStatus.SUCCESS, location=location.label, calendar=calendar)
        self.selected_date = calendar.days[0].gregorian_date if calendar.days else None
