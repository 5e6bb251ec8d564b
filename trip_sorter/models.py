"""Plain data types shared by the trip detection pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
import uuid

LatLon = Tuple[float, float]


def format_day(dt: datetime, with_year: bool = False) -> str:
    """Render a date as `3 Jul` or `3 Jul 2024`."""
    text = f"{dt.day} {dt.strftime('%b')}"
    return f"{text} {dt.year}" if with_year else text


def format_date_range(start: datetime, end: datetime) -> str:
    """`3 Jul – 10 Jul 2024`, or `3 Jul 2023 – 10 Jul 2024` across years."""
    if start.year == end.year:
        return f"{format_day(start)} – {format_day(end, with_year=True)}"
    return f"{format_day(start, with_year=True)} – {format_day(end, with_year=True)}"


class TripSorterError(Exception):
    """Base class for errors raised by trip_sorter."""


class GeocodeFailure(TripSorterError):
    """A reverse geocode lookup failed (network error, throttling, no result)."""


class ScanCancelled(TripSorterError):
    """Raised inside the scan worker when cancellation has been requested."""


@dataclass(frozen=True)
class AssetRecord:
    """One media item as the asset source reports it."""
    id: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PhotoPoint:
    id: str
    lat: float
    lon: float
    timestamp: datetime

    @property
    def location(self) -> LatLon:
        return (self.lat, self.lon)


@dataclass
class Cluster:
    points: List[PhotoPoint] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.points)

    @property
    def start(self) -> datetime:
        return self.points[0].timestamp

    @property
    def end(self) -> datetime:
        return self.points[-1].timestamp

    @property
    def centroid(self) -> LatLon:
        # arithmetic mean; drifts near the poles and the antimeridian
        total_lat = sum(p.lat for p in self.points)
        total_lon = sum(p.lon for p in self.points)
        return (total_lat / len(self.points), total_lon / len(self.points))


@dataclass(frozen=True)
class PlaceResult:
    """Address components returned by a reverse geocoder."""
    locality: Optional[str] = None
    admin_area: Optional[str] = None
    country: Optional[str] = None


@dataclass(frozen=True)
class Trip:
    name: str
    start: datetime
    end: datetime
    asset_ids: Tuple[str, ...]
    center: LatLon
    cover_asset_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def photo_count(self) -> int:
        return len(self.asset_ids)

    @property
    def date_range_text(self) -> str:
        if self.start.date() == self.end.date():
            return format_day(self.start, with_year=True)
        return format_date_range(self.start, self.end)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "photo_count": self.photo_count,
            "asset_ids": list(self.asset_ids),
            "cover_asset_id": self.cover_asset_id,
            "center": list(self.center),
            "date_range": self.date_range_text,
        }


@dataclass(frozen=True)
class ScanCheckpoint:
    progress: float
    message: str
    saved_at: float


class ScanPhase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    COMPLETED = "completed"
    CANCELLED_OR_FAILED = "cancelled_or_failed"


@dataclass(frozen=True)
class ScanState:
    """Immutable snapshot of what the engine publishes to observers."""
    phase: ScanPhase = ScanPhase.IDLE
    is_scanning: bool = False
    progress: float = 0.0
    message: str = ""
    has_scanned: bool = False
    trips: Tuple[Trip, ...] = ()

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "is_scanning": self.is_scanning,
            "progress": round(self.progress, 4),
            "message": self.message,
            "has_scanned": self.has_scanned,
            "trip_count": len(self.trips),
        }
