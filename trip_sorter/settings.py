"""Tunable thresholds for trip detection, optionally overridden by a JSON rules file."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging
import os

log = logging.getLogger(__name__)

_RULES_PATH = Path(__file__).with_name("trip_rules.json")
RULES_ENV = "TRIP_SORTER_RULES"


@dataclass(frozen=True)
class TripSettings:
    distance_threshold_km: float = 50.0
    time_gap_days: float = 3.0
    min_trip_photos: int = 5
    home_min_points: int = 20
    home_radius_km: float = 30.0
    geocode_delay_seconds: float = 0.5
    checkpoint_ttl_seconds: float = 20 * 60
    extraction_check_every: int = 4000
    clustering_yield_every: int = 5000
    key_prefix: str = "com.tripsorter"

    @property
    def geo_cache_key(self) -> str:
        return f"{self.key_prefix}.tripGeoCache"

    @property
    def checkpoint_key_prefix(self) -> str:
        return f"{self.key_prefix}.tripScanCheckpoint"


DEFAULT_SETTINGS = TripSettings()


def _coerce(name: str, value: Any, default: Any) -> Any:
    if isinstance(default, str):
        if isinstance(value, str) and value.strip():
            return value.strip()
        raise ValueError(f"{name} must be a non-empty string")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number")
    coerced = int(value) if isinstance(default, int) else float(value)
    if coerced <= 0:
        raise ValueError(f"{name} must be positive")
    return coerced


def settings_from_dict(raw: Dict[str, Any], base: TripSettings = DEFAULT_SETTINGS) -> TripSettings:
    """Overlay known keys from `raw` on `base`; unknown or invalid entries are ignored."""
    known = {f.name: getattr(base, f.name) for f in fields(TripSettings)}
    overrides = {}
    for key, value in (raw or {}).items():
        if key not in known:
            log.warning("Ignoring unknown trip setting %r", key)
            continue
        try:
            overrides[key] = _coerce(key, value, known[key])
        except ValueError as exc:
            log.warning("Ignoring trip setting: %s", exc)
    return replace(base, **overrides)


@lru_cache(maxsize=4)
def load_settings(path: Optional[str] = None) -> TripSettings:
    """Load settings from `path`, $TRIP_SORTER_RULES or trip_rules.json beside the package.

    A missing or unreadable file yields the defaults.
    """
    candidate = Path(path or os.environ.get(RULES_ENV) or _RULES_PATH)
    if not candidate.exists():
        return DEFAULT_SETTINGS
    try:
        raw = json.loads(candidate.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.exception("Failed to read trip rules from %s", candidate)
        return DEFAULT_SETTINGS
    if not isinstance(raw, dict):
        log.warning("Trip rules in %s are not a JSON object", candidate)
        return DEFAULT_SETTINGS
    return settings_from_dict(raw)
