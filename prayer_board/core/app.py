import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import Config
from .errors import ConfigurationError
from .task_manager import TaskManager
from prayer_board.plugins.prayer.adjustments import AdjustmentProfiles
from prayer_board.plugins.prayer.models import Location, PrayerOptions
from prayer_board.plugins.prayer.prayer_base import create_backend
from prayer_board.plugins.prayer.service import PrayerTimesSession
from prayer_board.plugins.ramadan.service import RamadanSession


class PrayerBoardApp:
    def __init__(self, config_path: Optional[str] = None, watch_config: bool = True,
                 clock: Callable[[], datetime] = datetime.now,
                 on_tick: Optional[Callable[[str], None]] = None, setup_logging: bool = True):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.clock = clock

        self.config = Config(config_path=config_path, watch=watch_config)
        self.config.register_change_callback(self.handle_config_change)

        self.manage_logging = setup_logging
        if setup_logging:
            self._setup_logging()
            logging.info("Prayer board starting...")

        self.task_manager = TaskManager()
        self.backend = create_backend(self.config.backend_config())
        self.prayer_session = PrayerTimesSession(
            self.backend, self.task_manager, clock=clock, on_tick=on_tick or self._log_tick
        )
        self.ramadan_session = RamadanSession(self.backend, self.task_manager, clock=clock)

    def _setup_logging(self) -> None:
        """Configure logging to write to both file and stdout"""
        log_config = self.config.get_section("logging")
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        log_file = log_config.get("file")
        if log_file:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)


    def _log_tick(self, text: str) -> None:
        next_prayer = self.prayer_session.countdown.target
        if next_prayer is not None and text:
            self.logger.debug(f"Next: {next_prayer.name} in {text}")

    def location(self) -> Optional[Location]:
        """Configured location, or None when the location section is empty."""
        location = Location.from_config(self.config.get_section("location"))
        if location == Location():
            return None
        return location

    def prayer_options(self) -> PrayerOptions:
        prayer = self.config.get_section("prayer")
        profiles = AdjustmentProfiles.from_config(prayer)
        return PrayerOptions(
            method=prayer.get("method"),
            school=prayer.get("school"),
            adjustments=profiles.get(prayer.get("adjustment_profile", "default")),
        )

    def rebuild_backend(self) -> None:
        """Recreate the backend from the current config and hand it to both sessions."""
        self.backend = create_backend(self.config.backend_config())
        self.prayer_session.backend = self.backend
        self.ramadan_session.backend = self.backend

    @property
    def ramadan_enabled(self) -> bool:
        return bool(self.config.get_section("ramadan").get("enable", True))

    def load_all(self, include_ramadan: Optional[bool] = None) -> List[asyncio.Task]:
        """(Re)request every session; in-flight requests are cancelled."""
        if include_ramadan is None:
            include_ramadan = self.ramadan_enabled
        try:
            location = self.location()
            options = self.prayer_options()
        except ConfigurationError as e:
            self._reject_config(e)
            return []

        tasks = [self.prayer_session.request(location, options)]
        if include_ramadan:
            tasks.append(self.ramadan_session.request(location, options))
        else:
            self.ramadan_session.clear()
        return tasks

    def _reject_config(self, error: ConfigurationError) -> None:
        """Cancel whatever the previous config started and report the error on both sessions."""
        self.logger.error(f"Invalid configuration: {error}")
        self.prayer_session.fail(str(error))
        self.ramadan_session.clear(str(error))

    async def load_once(self, include_ramadan: Optional[bool] = None) -> None:
        """Load everything once and wait for it (CLI --once)."""
        tasks = self.load_all(include_ramadan)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Handle configuration changes"""
        self.logger.info("Handling config change")
        try:
            if self.manage_logging:
                self._setup_logging()
            self.rebuild_backend()
        except ConfigurationError as e:
            self._reject_config(e)
            return
        try:
            self.load_all()
        except Exception as e:
            self.logger.error(f"Error handling config change: {e}", exc_info=True)

    def session_summaries(self) -> List[Dict[str, Any]]:
        return [
            {"name": "prayer", "status": self.prayer_session.snapshot.status,
             "error": self.prayer_session.snapshot.error},
            {"name": "ramadan", "status": self.ramadan_session.snapshot.status,
             "error": self.ramadan_session.snapshot.error, "enabled": self.ramadan_enabled},
        ]

    async def run_async(self) -> None:
        loop = asyncio.get_running_loop()
        self.config.loop = loop
        self.task_manager.loop = loop

        try:
            from prayer_board.api import run_api_server
            run_api_server(self)
        except Exception as e:
            self.logger.warning(f"API server not started: {e}")

        self.load_all()
        self.prayer_session.countdown.start()
        # Runs until interrupted
        await asyncio.Event().wait()

    def run(self) -> None:
        try:
            asyncio.run(self.run_async())
        except KeyboardInterrupt:
            self.logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def stop(self) -> None:
        self.prayer_session.countdown.stop()
        self.task_manager.stop()
        self.config.cleanup()
