"""Coordinate helpers: distances, coarse cache keys and coordinate labels."""
from __future__ import annotations

import re

from geopy.distance import great_circle

from .models import LatLon

# bare "lat,lon" as produced by a raw coordinate dump
_COORDINATE_PAIR = re.compile(r"^[-+]?[0-9]*\.?[0-9]+,[ ]?[-+]?[0-9]*\.?[0-9]+$")


def distance_km(a: LatLon, b: LatLon) -> float:
    """Great-circle distance between two (lat, lon) pairs in kilometres."""
    return great_circle(a, b).kilometers


def coarse_key(location: LatLon) -> str:
    """Round to one decimal degree (~11 km cell) so nearby trips share a key."""
    return "%.1f,%.1f" % (location[0], location[1])


def coordinate_label(location: LatLon) -> str:
    """Human-ish label such as `52°N 1°W`, used when geocoding fails."""
    lat, lon = location
    lat_dir = "N" if lat >= 0 else "S"
    lon_dir = "E" if lon >= 0 else "W"
    return "%.0f°%s %.0f°%s" % (abs(lat), lat_dir, abs(lon), lon_dir)


def looks_like_coordinates(name: str) -> bool:
    return "°" in name or _COORDINATE_PAIR.match(name) is not None
