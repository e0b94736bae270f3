import asyncio
import copy
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from watchdog.events import FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .errors import ConfigurationError

DEFAULT_CONFIG: Dict[str, Any] = {
    "location": {
        "city": None,
        "region": None,
        "country": None,
        "lat": None,
        "lon": None,
    },
    "prayer": {
        "backend": "aladhan",
        "method": 2,  # ISNA
        "school": 0,  # 0 = Shafi, 1 = Hanafi
        "adjustment_profile": "default",
        "adjustment_profiles": {
            "default": {"Dhuhr": 48, "Asr": 48, "Maghrib": 5},
            "reduced": {"Dhuhr": 45, "Asr": 45, "Maghrib": 5},
        },
        "timeout": 10,  # seconds per API request
    },
    "ramadan": {
        "enable": True,
    },
    "cache": {
        "enable": True,
        "directory": "~/.prayer_board/cache",
    },
    "api": {
        "enabled": False,
        "host": "127.0.0.1",
        "port": 8765,
    },
    "logging": {
        "level": "INFO",
        "file": "~/.prayer_board/prayer_board.log",
    },
}

ENV_LINE_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")
ENV_REF_RE = re.compile(r"^\$\{([A-Za-z_][A-Za-z0-9_]*)\}$|^\$([A-Za-z_][A-Za-z0-9_]*)$")


def read_env_file(path: Path) -> Dict[str, str]:
    """KEY=VALUE pairs from a .env file; blank lines and # comments are skipped."""
    values = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = ENV_LINE_RE.match(line)
        if match:
            key, value = match.groups()
            values[key] = value.strip().strip('"').strip("'")
    return values


def substitute_env_vars(data: Any) -> Any:
    """Replace whole-string ${VAR} / $VAR values; unknown variables are left as written."""
    if isinstance(data, dict):
        return {key: substitute_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    if isinstance(data, str):
        match = ENV_REF_RE.match(data)
        if match:
            return os.environ.get(match.group(1) or match.group(2), data)
    return data


def merge_defaults(defaults: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(defaults)
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


def diff_config(old: Dict[str, Any], new: Dict[str, Any], path: str = "") -> List[Tuple[str, Any, Any]]:
    """Dotted-path (key, old, new) triples; a missing side is None."""
    changes = []
    for key in sorted(set(old) | set(new), key=str):
        dotted = f"{path}.{key}" if path else str(key)
        before, after = old.get(key), new.get(key)
        if isinstance(before, dict) and isinstance(after, dict):
            changes.extend(diff_config(before, after, dotted))
        elif key not in old or key not in new or before != after:
            changes.append((dotted, before, after))
    return changes


class ConfigChangeHandler(FileSystemEventHandler):
    """Reloads the config when its file is written, at most once per cooldown."""

    def __init__(self, config, cooldown: float = 1.0):
        self.config = config
        self.cooldown = cooldown
        self.last_reload = 0.0

    def on_modified(self, event):
        if not isinstance(event, FileModifiedEvent):
            return
        if Path(event.src_path) != self.config.config_file:
            return

        now = time.monotonic()
        if now - self.last_reload < self.cooldown:
            return
        self.last_reload = now
        try:
            self.config.reload()
        except Exception as e:
            logging.error(f"Error handling config change: {e}")


class Config:
    def __init__(self, config_path: Optional[str] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None, watch: bool = True):
        logging.debug("Initializing Config class")

        self.loop = loop
        self.change_callbacks: List[Callable[[Dict[str, Any]], None]] = []
        self.data: Optional[Dict[str, Any]] = None
        self._reloading = False
        self.observer = None

        if config_path:
            self.config_file = Path(config_path).expanduser().resolve()
        else:
            self.config_file = Path.home() / ".prayer_board" / "config.yaml"
        self.config_dir = self.config_file.parent
        logging.debug(f"Using config file: {self.config_file}")

        self._load_env_file()
        self._ensure_config_exists()
        self._load_config()

        if watch:
            self.observer = Observer()
            self.observer.schedule(ConfigChangeHandler(self), str(self.config_dir), recursive=False)
            self.observer.start()
            logging.info(f"Watching {self.config_file} for changes")

    def register_change_callback(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Register a callback to be called with the new config after a reload"""
        self.change_callbacks.append(callback)

    def reload(self) -> None:
        """Reload config and notify listeners; callbacks run on the event loop when one is attached"""
        if self._reloading:
            return

        self._reloading = True
        try:
            logging.info("Config file change detected - reloading configuration")
            # Editors can fire the event before the write is complete
            time.sleep(0.1)

            previous = copy.deepcopy(self.data) if self.data else {}
            self._load_config()
            changes = diff_config(previous, self.data)
            for key, before, after in changes:
                logging.info(f"Config changed: {key}: {before} -> {after}")
            if not changes:
                logging.info("Config reloaded with no changes")

            for callback in self.change_callbacks:
                try:
                    if self.loop is not None and not self.loop.is_closed():
                        self.loop.call_soon_threadsafe(callback, self.data)
                    else:
                        callback(self.data)
                except Exception as e:
                    logging.error(f"Error in config change callback: {e}")
        finally:
            self._reloading = False

    def cleanup(self) -> None:
        """Stop the file observer"""
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None

    def _ensure_config_exists(self) -> None:
        """Create default config if it doesn't exist"""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        if not self.config_file.exists():
            logging.info(f"Creating default config file: {self.config_file}")
            self.config_file.write_text(yaml.dump(DEFAULT_CONFIG, sort_keys=False))

    def _load_env_file(self) -> None:
        """Load the first .env found next to the config, one level up, or in the cwd"""
        candidates = [self.config_dir / ".env", self.config_dir.parent / ".env", Path.cwd() / ".env"]
        env_file = next((path for path in candidates if path.is_file()), None)
        if env_file is None:
            logging.debug("No .env file found, skipping environment variable loading")
            return

        logging.info(f"Loading environment variables from: {env_file}")
        try:
            values = read_env_file(env_file)
        except OSError as e:
            logging.warning(f"Error loading .env file: {e}")
            return
        for key, value in values.items():
            # Variables already in the environment take precedence
            os.environ.setdefault(key, value)

    def _read_file(self) -> Dict[str, Any]:
        with open(self.config_file) as f:
            loaded = yaml.safe_load(f)
        if loaded is None:
            return {}
        if not isinstance(loaded, dict):
            raise ConfigurationError("Invalid config format: root must be a dictionary")
        return loaded

    def _load_config(self) -> None:
        """Load configuration from file, keeping the previous one (or defaults) on failure"""
        try:
            data = merge_defaults(DEFAULT_CONFIG, substitute_env_vars(self._read_file()))
        except (OSError, yaml.YAMLError, ConfigurationError) as e:
            logging.error(f"Error loading config: {e}")
            if self.data is None:
                logging.info("Using default configuration")
                self.data = copy.deepcopy(DEFAULT_CONFIG)
            else:
                logging.info("Keeping previous configuration")
            return

        log_file = (data.get("logging") or {}).get("file")
        if log_file:
            data["logging"]["file"] = os.path.expanduser(log_file)
        self.data = data
        logging.debug(f"Loaded config data: {self.data}")

    def get_section(self, name: str) -> Dict[str, Any]:
        """Get a top-level config section"""
        return self.data.get(name) or {}

    def backend_config(self) -> Dict[str, Any]:
        """Settings passed to the prayer times backend"""
        prayer = self.get_section("prayer")
        cache = self.get_section("cache")
        return {
            "backend": prayer.get("backend", "aladhan"),
            "timeout": prayer.get("timeout", 10),
            "cache_enabled": cache.get("enable", True),
            "cache_dir": cache.get("directory"),
        }
