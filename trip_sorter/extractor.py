"""Extractor: read capture time and GPS position from image EXIF.

Pillow + piexif is tried first (HEIC via pillow-heif), then exifread as a pure
Python fallback. Unlike a file sorter we never fall back to the file mtime: a
file without a capture time cannot be placed on a trip timeline.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple
import logging

import exifread
import piexif
import pillow_heif
from PIL import Image, UnidentifiedImageError

pillow_heif.register_heif_opener()

log = logging.getLogger(__name__)

_EXIF_FORMAT = "%Y:%m:%d %H:%M:%S"
_EXIFREAD_DATE_TAGS = ("EXIF DateTimeOriginal", "EXIF DateTimeDigitized", "Image DateTime")


def _parse_datetime(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode(errors="ignore")
    value = str(value).replace("\x00", "").strip()
    if not value:
        return None
    try:
        return datetime.strptime(value, _EXIF_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _ratio(value) -> float:
    # piexif gives (num, den) tuples, exifread gives Ratio objects
    if not isinstance(value, tuple):
        return float(value)
    num, den = value
    return float(num) / float(den) if den else float(num)


def _dms_to_decimal(dms, ref: str) -> float:
    deg, minute, sec = (_ratio(v) for v in dms[:3])
    dec = deg + (minute / 60.0) + (sec / 3600.0)
    if ref.upper().startswith(("S", "W")):
        dec = -dec
    return dec


def _ref(value) -> str:
    return value.decode(errors="ignore") if isinstance(value, bytes) else str(value)


def _from_piexif(exif_bytes: bytes) -> Tuple[Optional[datetime], Optional[Tuple[float, float]]]:
    exif = piexif.load(exif_bytes)
    taken = _parse_datetime(exif.get("Exif", {}).get(piexif.ExifIFD.DateTimeOriginal))
    if taken is None:
        taken = _parse_datetime(exif.get("0th", {}).get(piexif.ImageIFD.DateTime))

    gps = None
    gps_ifd = exif.get("GPS") or {}
    lat = gps_ifd.get(piexif.GPSIFD.GPSLatitude)
    lat_ref = gps_ifd.get(piexif.GPSIFD.GPSLatitudeRef)
    lon = gps_ifd.get(piexif.GPSIFD.GPSLongitude)
    lon_ref = gps_ifd.get(piexif.GPSIFD.GPSLongitudeRef)
    if lat and lon and lat_ref and lon_ref:
        gps = (_dms_to_decimal(lat, _ref(lat_ref)), _dms_to_decimal(lon, _ref(lon_ref)))
    return taken, gps


def _from_exifread(path: Path) -> Tuple[Optional[datetime], Optional[Tuple[float, float]]]:
    with open(path, "rb") as fh:
        tags = exifread.process_file(fh, details=False)

    taken = None
    for tag_name in _EXIFREAD_DATE_TAGS:
        if tag_name in tags:
            taken = _parse_datetime(tags[tag_name])
            if taken:
                break

    gps = None
    if "GPS GPSLatitude" in tags and "GPS GPSLongitude" in tags:
        lat_ref = str(tags.get("GPS GPSLatitudeRef", "N"))
        lon_ref = str(tags.get("GPS GPSLongitudeRef", "E"))
        gps = (
            _dms_to_decimal(tags["GPS GPSLatitude"].values, lat_ref),
            _dms_to_decimal(tags["GPS GPSLongitude"].values, lon_ref),
        )
    return taken, gps


def extract_metadata(path: Path) -> Dict:
    """Return `{"datetime": datetime | None, "gps": (lat, lon) | None}` for an image.

    Never raises for unreadable or EXIF-less files; missing values stay None.
    """
    path = Path(path)
    meta = {"datetime": None, "gps": None}

    try:
        with Image.open(path) as img:
            exif_bytes = img.info.get("exif")
        if exif_bytes:
            meta["datetime"], meta["gps"] = _from_piexif(exif_bytes)
    except (OSError, UnidentifiedImageError, ValueError, KeyError, ZeroDivisionError) as exc:
        log.debug("Pillow could not read EXIF from %s: %s", path, exc)

    if meta["datetime"] is None or meta["gps"] is None:
        try:
            taken, gps = _from_exifread(path)
        except (OSError, ValueError, KeyError, IndexError, ZeroDivisionError, AttributeError) as exc:
            log.debug("exifread could not read %s: %s", path, exc)
        else:
            meta["datetime"] = meta["datetime"] or taken
            meta["gps"] = meta["gps"] or gps

    return meta
