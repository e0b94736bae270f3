"""
Value types for the daily prayer path: where to fetch for, how to calculate, and what was derived.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from prayer_board.core.errors import ConfigurationError


class QueryKind:
    """How a location is sent to the prayer-times service."""
    COORDINATES = "coordinates"
    CITY = "city"
    ADDRESS = "address"


@dataclass(frozen=True)
class LocationQuery:
    kind: str
    params: Dict[str, Any]


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    @classmethod
    def from_config(cls, data: Optional[Dict[str, Any]]) -> "Location":
        data = data or {}
        lat = data.get("lat", data.get("latitude"))
        lon = data.get("lon", data.get("longitude"))
        try:
            lat = float(lat) if lat is not None else None
            lon = float(lon) if lon is not None else None
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid coordinates: lat={lat!r}, lon={lon!r}")
        return cls(
            city=data.get("city") or None,
            region=data.get("region") or None,
            country=data.get("country") or None,
            lat=lat,
            lon=lon,
        )

    @property
    def label(self) -> str:
        parts = [p for p in (self.city, self.region, self.country) if p]
        if parts:
            return ", ".join(parts)
        if self.lat is not None and self.lon is not None:
            return f"{self.lat:.4f}, {self.lon:.4f}"
        return ""

    def resolve(self) -> LocationQuery:
        """Pick coordinates, then city + country, then city as a free-form address."""
        if self.lat is not None and self.lon is not None:
            return LocationQuery(QueryKind.COORDINATES, {"latitude": self.lat, "longitude": self.lon})
        if self.city and self.country:
            return LocationQuery(QueryKind.CITY, {"city": self.city, "country": self.country})
        if self.city:
            return LocationQuery(QueryKind.ADDRESS, {"address": self.city})
        raise ConfigurationError("Incomplete location: set lat/lon, city and country, or city")


@dataclass(frozen=True)
class PrayerOptions:
    method: Optional[int] = 2
    school: Optional[int] = 0
    adjustments: Dict[str, int] = field(default_factory=dict)

    def query_params(self) -> Dict[str, Any]:
        return {"method": self.method, "school": self.school}


@dataclass(frozen=True)
class NextPrayer:
    name: str
    time: str
    countdown_ms: int
    countdown_text: str
    at: datetime


@dataclass(frozen=True)
class ResolvedPrayerState:
    current: Optional[str] = None
    next: Optional[NextPrayer] = None


@dataclass(frozen=True)
class DailyTimings:
    """One day's record from the service: adjusted timings plus the date header."""
    timings: Dict[str, str]
    date_label: Optional[str] = None
    hijri_date: Optional[str] = None
    timezone: Optional[str] = None
