"""Trip naming: deduplicated, rate-limited, cache-backed reverse geocoding.

Cluster centroids are rounded to a coarse key (one decimal degree) so trips in
the same city share one lookup. Only keys missing from the persisted cache are
sent to the geocoder, one call each, with a fixed pause before every call.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence
import logging
import random
import time

from .geo import coarse_key, coordinate_label, looks_like_coordinates
from .geocoder import ReverseGeocoder
from .models import Cluster, GeocodeFailure, PlaceResult, ScanCancelled, Trip, format_date_range
from .points import CancelCheck, ProgressCallback
from .settings import DEFAULT_SETTINGS
from .storage import KeyValueStore

log = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown Location"
GEOCODE_DELAY_SECONDS = DEFAULT_SETTINGS.geocode_delay_seconds
PROGRESS_START = 0.6
PROGRESS_END = 0.95


def place_name(place: Optional[PlaceResult]) -> str:
    """`Locality, Country`; the admin area stands in for a missing locality."""
    if place is None:
        return UNKNOWN_LOCATION
    parts = []
    if place.locality:
        parts.append(place.locality)
    elif place.admin_area:
        parts.append(place.admin_area)
    if place.country:
        parts.append(place.country)
    return ", ".join(parts) if parts else UNKNOWN_LOCATION


def display_name(name: str, cluster: Cluster) -> str:
    """Never show raw coordinates to the user; use the trip's date range instead."""
    if looks_like_coordinates(name):
        return format_date_range(cluster.start, cluster.end)
    return name


class GeoCache:
    """Coarse key -> place name, persisted as one dictionary. Entries are never evicted."""

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_SETTINGS.geo_cache_key):
        self.store = store
        self.key = key

    def load(self) -> Dict[str, str]:
        raw = self.store.get(self.key)
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, str)}

    def save(self, entries: Dict[str, str]) -> None:
        merged = self.load()
        merged.update(entries)
        self.store.set(self.key, merged)


class GeocodeResolver:
    def __init__(
        self,
        geocoder: ReverseGeocoder,
        cache: GeoCache,
        delay: float = GEOCODE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.geocoder = geocoder
        self.cache = cache
        self.delay = delay
        self.sleep = sleep

    def lookup(self, lat: float, lon: float) -> str:
        """One rate-limited lookup. Failures degrade to a coordinate label."""
        if self.delay > 0:
            self.sleep(self.delay)
        try:
            return place_name(self.geocoder.reverse_geocode(lat, lon))
        except GeocodeFailure as exc:
            log.info("Reverse geocode failed for %.1f,%.1f (%s); using coordinates", lat, lon, exc)
            return coordinate_label((lat, lon))
        except Exception:
            log.exception("Unexpected reverse geocode error for %.1f,%.1f; using coordinates", lat, lon)
            return coordinate_label((lat, lon))

    def resolve(
        self,
        clusters: Sequence[Cluster],
        progress: Optional[ProgressCallback] = None,
        cancelled: Optional[CancelCheck] = None,
        on_pending: Optional[Callable[[int], None]] = None,
    ) -> List[str]:
        """Return the cached place name for each cluster, geocoding uncached keys first.

        `on_pending` receives the number of keys that need a lookup before any
        call is made. Raises ScanCancelled between lookups when cancelled; the
        cache is then left untouched.
        """
        keys = []
        centers = {}
        for cluster in clusters:
            center = cluster.centroid
            key = coarse_key(center)
            keys.append(key)
            centers.setdefault(key, center)

        cache = self.cache.load()
        uncached = [key for key in centers if key not in cache]
        if on_pending:
            on_pending(len(uncached))

        fresh: Dict[str, str] = {}
        for idx, key in enumerate(uncached):
            if cancelled and cancelled():
                raise ScanCancelled()
            lat, lon = centers[key]
            fresh[key] = self.lookup(lat, lon)
            if progress:
                progress(PROGRESS_START + (PROGRESS_END - PROGRESS_START) * (idx + 1) / len(uncached))

        if fresh:
            self.cache.save(fresh)
            cache.update(fresh)
            log.info("Geocoded %d new locations (%d cached)", len(fresh), len(centers) - len(fresh))
        return [cache.get(key, UNKNOWN_LOCATION) for key in keys]


def build_trips(clusters: Sequence[Cluster], names: Sequence[str],
                choose_cover: Callable[[Sequence[str]], str] = random.choice) -> List[Trip]:
    trips = []
    for cluster, name in zip(clusters, names):
        asset_ids = tuple(p.id for p in cluster.points)
        trips.append(Trip(
            name=display_name(name, cluster),
            start=cluster.start,
            end=cluster.end,
            asset_ids=asset_ids,
            center=cluster.centroid,
            cover_asset_id=choose_cover(asset_ids) if asset_ids else None,
        ))
    return trips
