"""
Per-prayer minute offsets applied on top of the calculated timings.
"""
import logging
from typing import Any, Dict, Optional

from prayer_board.core.errors import ConfigurationError

from .time_codec import Unchanged, add_minutes, parse, to_am_pm_with_adjustment

logger = logging.getLogger(__name__)

TimingsMap = Dict[str, str]
AdjustmentMap = Dict[str, int]

DEFAULT_PROFILES: Dict[str, AdjustmentMap] = {
    "default": {"Dhuhr": 48, "Asr": 48, "Maghrib": 5},
    "reduced": {"Dhuhr": 45, "Asr": 45, "Maghrib": 5},
}


def apply(timings: TimingsMap, adjustments: AdjustmentMap) -> TimingsMap:
    """Shift every key that has an adjustment, keeping any "(TZ)" annotation on the value.

    Keys without an adjustment, and values that do not parse, are copied verbatim.
    """
    result = dict(timings)
    for key, raw in timings.items():
        if key not in adjustments:
            continue
        parsed = parse(raw)
        if isinstance(parsed, Unchanged):
            logger.debug(f"Leaving unparseable timing {key}={raw!r} unadjusted")
            continue
        result[key] = str(add_minutes(parsed, adjustments[key]))
    return result


def apply_for_display(timings: TimingsMap, adjustments: AdjustmentMap) -> TimingsMap:
    """Adjust and render every key in 12-hour form; annotations are dropped."""
    return {
        key: to_am_pm_with_adjustment(raw, adjustments.get(key, 0))
        for key, raw in timings.items()
    }


class AdjustmentProfiles:
    """Named adjustment maps from the `prayer` config section."""

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None):
        source = profiles if profiles else DEFAULT_PROFILES
        self.profiles: Dict[str, AdjustmentMap] = {}
        for name, offsets in source.items():
            try:
                self.profiles[name] = {k: int(v) for k, v in (offsets or {}).items()}
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid adjustment profile '{name}': {e}")

    def get(self, name: str) -> AdjustmentMap:
        if name not in self.profiles:
            raise ConfigurationError(
                f"Unknown adjustment profile '{name}' (available: {', '.join(sorted(self.profiles))})"
            )
        return dict(self.profiles[name])

    @classmethod
    def from_config(cls, prayer_config: Optional[Dict[str, Any]]) -> "AdjustmentProfiles":
        prayer_config = prayer_config or {}
        return cls(prayer_config.get("adjustment_profiles"))
