"""Time + distance clustering of photo points, home detection and trip filtering.

Clustering is chain linkage: each point is compared only to the last point
appended to the current cluster. A cluster can therefore drift arbitrarily far if
consecutive points keep stepping within the thresholds. This is a cheap single
pass over time-sorted points, not density clustering.
"""
from __future__ import annotations

from typing import List, Optional, Sequence
import logging

from .geo import distance_km
from .models import Cluster, LatLon, PhotoPoint, ScanCancelled
from .points import CancelCheck
from .settings import DEFAULT_SETTINGS

log = logging.getLogger(__name__)

DISTANCE_THRESHOLD_KM = DEFAULT_SETTINGS.distance_threshold_km
TIME_GAP_DAYS = DEFAULT_SETTINGS.time_gap_days
MIN_TRIP_PHOTOS = DEFAULT_SETTINGS.min_trip_photos
HOME_MIN_POINTS = DEFAULT_SETTINGS.home_min_points
HOME_RADIUS_KM = DEFAULT_SETTINGS.home_radius_km

_SECONDS_PER_DAY = 24 * 3600


def cluster_points(
    points: Sequence[PhotoPoint],
    time_gap_days: float = TIME_GAP_DAYS,
    distance_threshold_km: float = DISTANCE_THRESHOLD_KM,
    cancelled: Optional[CancelCheck] = None,
    check_every: int = DEFAULT_SETTINGS.clustering_yield_every,
) -> List[Cluster]:
    """Partition time-sorted `points` into chained clusters."""
    if not points:
        return []

    clusters: List[Cluster] = []
    current = Cluster([points[0]])
    for i in range(1, len(points)):
        if cancelled and i % check_every == 0 and cancelled():
            raise ScanCancelled()
        prev = current.points[-1]
        curr = points[i]
        gap_days = (curr.timestamp - prev.timestamp).total_seconds() / _SECONDS_PER_DAY
        if gap_days <= time_gap_days and distance_km(prev.location, curr.location) <= distance_threshold_km:
            current.points.append(curr)
        else:
            clusters.append(current)
            current = Cluster([curr])
    clusters.append(current)

    log.debug("Chained %d points into %d clusters", len(points), len(clusters))
    return clusters


def resolve_home(clusters: Sequence[Cluster], min_points: int = HOME_MIN_POINTS) -> Optional[LatLon]:
    """Centroid of the largest cluster, if it holds at least `min_points` points."""
    if not clusters:
        return None
    # max() keeps the first of equally large clusters
    largest = max(clusters, key=lambda c: c.size)
    if largest.size < min_points:
        return None
    return largest.centroid


def filter_trips(
    clusters: Sequence[Cluster],
    home: Optional[LatLon],
    min_photos: int = MIN_TRIP_PHOTOS,
    home_radius_km: float = HOME_RADIUS_KM,
) -> List[Cluster]:
    """Drop small and home-adjacent clusters; newest trip (by last point) first."""
    kept = []
    for cluster in clusters:
        if cluster.size < min_photos:
            continue
        if home is not None and distance_km(cluster.centroid, home) < home_radius_km:
            continue
        kept.append(cluster)
    kept.sort(key=lambda c: c.end, reverse=True)
    return kept
