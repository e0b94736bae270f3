"""
Once-per-second countdown to the next prayer with a single refresh signal when it reaches zero.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from .models import NextPrayer
from .time_codec import format_duration

ELAPSED_TEXT = "00:00"


class CountdownState:
    IDLE = "idle"
    TICKING = "ticking"
    ELAPSED = "elapsed"


class CountdownScheduler:
    """
    Owns the timer for one next-prayer target. retarget() with a different target tears the
    timer down and resets the one-shot flag; on_elapsed fires at most once per target.
    """

    def __init__(
        self,
        on_elapsed: Callable[[], None],
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        interval: float = 1.0,
        on_tick: Optional[Callable[[str], None]] = None,
    ):
        self.on_elapsed = on_elapsed
        self.clock = clock
        self.sleep = sleep
        self.interval = interval
        self.on_tick = on_tick
        self.logger = logging.getLogger(self.__class__.__name__)

        self.target: Optional[NextPrayer] = None
        self.state = CountdownState.IDLE
        self.display = ""
        self._fired = False
        self._started = False
        self._task: Optional[asyncio.Task] = None

    def retarget(self, next_prayer: Optional[NextPrayer]) -> None:
        if self._same_target(next_prayer):
            return

        self._cancel_task()
        self.target = next_prayer
        self._fired = False
        if next_prayer is not None and next_prayer.at > self.clock():
            self.state = CountdownState.TICKING
            self.logger.info(f"Counting down to {next_prayer.name} at {next_prayer.at.strftime('%H:%M')}")
        else:
            self.state = CountdownState.IDLE
            self.display = ""
            self.logger.debug("No upcoming prayer; countdown idle")

        if self._started:
            self._spawn()

    def tick(self) -> str:
        if self.state == CountdownState.TICKING:
            diff = self.target.at - self.clock()
            diff_ms = int(diff.total_seconds() * 1000)
            if diff_ms > 0:
                self.display = format_duration(diff_ms)
            else:
                self.state = CountdownState.ELAPSED
                self.display = ELAPSED_TEXT
                self._fire()
        elif self.state == CountdownState.ELAPSED:
            self.display = ELAPSED_TEXT
        else:
            self.display = ""

        if self.on_tick:
            self.on_tick(self.display)
        return self.display

    def start(self) -> None:
        """Start ticking on the running event loop."""
        self._started = True
        self._spawn()

    def stop(self) -> None:
        self._started = False
        self._cancel_task()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _fire(self) -> None:
        if self._fired:
            return
        self._fired = True
        self.logger.info(f"{self.target.name} time reached; requesting refresh")
        try:
            self.on_elapsed()
        except Exception as e:
            self.logger.exception(f"Refresh callback failed: {e}")

    def _same_target(self, next_prayer: Optional[NextPrayer]) -> bool:
        if self.target is None or next_prayer is None:
            return self.target is None and next_prayer is None and self.state == CountdownState.IDLE
        return (self.target.name, self.target.at) == (next_prayer.name, next_prayer.at)

    def _spawn(self) -> None:
        if self.state == CountdownState.IDLE or self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while self.state != CountdownState.IDLE:
            self.tick()
            await self.sleep(self.interval)

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
