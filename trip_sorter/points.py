"""Point extraction: turn asset records into clusterable photo points."""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence
import logging

from .models import AssetRecord, PhotoPoint, ScanCancelled
from .settings import DEFAULT_SETTINGS

log = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
CancelCheck = Callable[[], bool]

# share of the whole scan spent extracting points
EXTRACTION_SHARE = 0.4


def to_point(record: AssetRecord) -> Optional[PhotoPoint]:
    """Return a PhotoPoint, or None when the record has no usable time or place.

    (0, 0) is the "no location" sentinel some cameras write, never a real capture site.
    """
    if record.timestamp is None or record.lat is None or record.lon is None:
        return None
    if record.lat == 0 and record.lon == 0:
        return None
    return PhotoPoint(id=record.id, lat=float(record.lat), lon=float(record.lon), timestamp=record.timestamp)


def extract_points(
    assets: Sequence[AssetRecord],
    progress: Optional[ProgressCallback] = None,
    cancelled: Optional[CancelCheck] = None,
    check_every: int = DEFAULT_SETTINGS.extraction_check_every,
) -> List[PhotoPoint]:
    """Collect geotagged points from `assets` (already sorted by capture time).

    Every `check_every` items the cancel check is polled and progress in
    [0, 0.4] is reported. Raises ScanCancelled when cancellation is seen.
    """
    total = len(assets)
    points: List[PhotoPoint] = []
    for i, record in enumerate(assets):
        if i % check_every == 0:
            if cancelled and cancelled():
                raise ScanCancelled()
            if progress and total:
                progress(i / total * EXTRACTION_SHARE)
        point = to_point(record)
        if point is not None:
            points.append(point)

    log.debug("Extracted %d geotagged points from %d assets", len(points), total)
    return points
