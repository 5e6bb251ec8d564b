"""Asset sources: where geotagged media records come from."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence
import logging

from .extractor import extract_metadata
from .models import AssetRecord, ScanCancelled
from .points import CancelCheck
from .scanner import find_media

log = logging.getLogger(__name__)


class AssetSource(Protocol):
    def fetch_geotagged(self, cancelled: Optional[CancelCheck] = None) -> Sequence[AssetRecord]:
        """Every media item, sorted ascending by capture time.

        Sources that do slow work per item poll `cancelled` and raise
        ScanCancelled; in-memory sources may ignore it.
        """
        ...


def _capture_order(records: Iterable[AssetRecord]) -> List[AssetRecord]:
    # items without a timestamp go last; the extractor drops them anyway
    return sorted(records, key=lambda r: (r.timestamp is None, r.timestamp or datetime.min))


class MemoryAssetSource:
    """In-process list of records, e.g. handed over by a host application."""

    def __init__(self, records: Iterable[AssetRecord] = ()):
        self._records = _capture_order(records)

    def fetch_geotagged(self, cancelled: Optional[CancelCheck] = None) -> Sequence[AssetRecord]:
        return list(self._records)


class FolderAssetSource:
    """Reads capture time and GPS from EXIF of every image under a directory.

    The asset id is the file path relative to the root folder. Cancellation is
    checked before each file is opened, so a cancelled scan stops after at most
    one more EXIF read. Two sources over the same folder do not coordinate.
    """

    def __init__(self, root, extensions: Optional[Iterable[str]] = None, recursive: bool = True):
        self.root = Path(root).expanduser()
        self.extensions = extensions
        self.recursive = recursive

    def fetch_geotagged(self, cancelled: Optional[CancelCheck] = None) -> Sequence[AssetRecord]:
        records = []
        for path in find_media(self.root, self.extensions, self.recursive):
            if cancelled and cancelled():
                log.info("Metadata read cancelled after %d files under %s", len(records), self.root)
                raise ScanCancelled()
            meta = extract_metadata(path)
            gps = meta.get("gps")
            records.append(AssetRecord(
                id=path.relative_to(self.root).as_posix(),
                lat=gps[0] if gps else None,
                lon=gps[1] if gps else None,
                timestamp=meta.get("datetime"),
            ))
        log.info("Read metadata for %d files under %s", len(records), self.root)
        return _capture_order(records)
