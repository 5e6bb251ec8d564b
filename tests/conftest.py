"""
Shared fixtures for the trip_sorter test suite.

Provides:
- in-memory key-value store and a controllable clock
- a scripted reverse geocoder that records every call
- factories for photo points and asset records
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytest

from trip_sorter.models import AssetRecord, GeocodeFailure, PhotoPoint, PlaceResult
from trip_sorter.settings import TripSettings
from trip_sorter.storage import MemoryStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)

# ~1 km in degrees of latitude
KM_LAT = 1 / 111.0


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGeocoder:
    """Returns scripted places per coarse key; unknown keys get a default place."""

    def __init__(self, places: Optional[Dict[str, PlaceResult]] = None, fail: bool = False,
                 default: PlaceResult = PlaceResult(locality="Paris", country="France")):
        self.places = places or {}
        self.fail = fail
        self.default = default
        self.calls: List[Tuple[float, float]] = []

    def reverse_geocode(self, lat: float, lon: float) -> PlaceResult:
        self.calls.append((lat, lon))
        if self.fail:
            raise GeocodeFailure("throttled")
        return self.places.get("%.1f,%.1f" % (lat, lon), self.default)


def make_point(idx: int, lat: float, lon: float, when: datetime) -> PhotoPoint:
    return PhotoPoint(id=f"asset-{idx}", lat=lat, lon=lon, timestamp=when)


def make_records(points: List[PhotoPoint]) -> List[AssetRecord]:
    return [AssetRecord(id=p.id, lat=p.lat, lon=p.lon, timestamp=p.timestamp) for p in points]


def trip_points(start_idx: int, lat: float, lon: float, start: datetime, count: int,
                step: timedelta = timedelta(hours=12)) -> List[PhotoPoint]:
    """`count` points a few hundred metres apart, `step` apart in time."""
    return [
        make_point(start_idx + i, lat + (i % 3) * 0.002, lon + (i % 2) * 0.002, start + step * i)
        for i in range(count)
    ]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def settings():
    return TripSettings(geocode_delay_seconds=0.0)
