"""
Error types shared across plugins. Parse failures are not errors (see time_codec.Unchanged);
cancellation is asyncio.CancelledError and is handled at the session boundary.
"""
from typing import Optional


class PrayerBoardError(Exception):
    """Base class for errors surfaced to the calling layer."""
    pass


class ServiceError(PrayerBoardError):
    """Raised when the prayer-times service fails or returns an unusable payload."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ConfigurationError(PrayerBoardError):
    """Raised before any network call when location or settings are incomplete."""
    pass
