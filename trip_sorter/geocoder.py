"""Reverse geocoding transports: offline `reverse_geocoder`, online `geopy` Nominatim.

Transports only translate a coordinate into address parts. Rate limiting,
caching and fallback labels are the resolver's job (see `naming`).
"""
from __future__ import annotations

from typing import Optional, Protocol, Sequence
import logging

import reverse_geocoder as rg
from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from .models import GeocodeFailure, PlaceResult

log = logging.getLogger(__name__)

_LOCALITY_KEYS = ("city", "town", "village", "hamlet", "municipality")
_ADMIN_KEYS = ("state", "county", "region")


class ReverseGeocoder(Protocol):
    def reverse_geocode(self, lat: float, lon: float) -> PlaceResult:
        """Address parts for (lat, lon); raises GeocodeFailure on error or throttling."""
        ...


def _first(address: dict, keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = address.get(key)
        if value:
            return value
    return None


class NominatimGeocoder:
    """Online lookups against OpenStreetMap Nominatim."""

    def __init__(self, user_agent: str = "trip_sorter_app", language: str = "en", timeout: float = 10.0,
                 geolocator: Optional[Nominatim] = None):
        self.language = language
        self.geolocator = geolocator or Nominatim(user_agent=user_agent, timeout=timeout)

    def reverse_geocode(self, lat: float, lon: float) -> PlaceResult:
        try:
            loc = self.geolocator.reverse((lat, lon), language=self.language, addressdetails=True, exactly_one=True)
        except GeopyError as exc:
            log.debug("Nominatim reverse failed for %.4f,%.4f: %s", lat, lon, exc)
            raise GeocodeFailure(str(exc)) from exc
        if not loc:
            return PlaceResult()
        addr = loc.raw.get("address", {})
        return PlaceResult(
            locality=_first(addr, _LOCALITY_KEYS),
            admin_area=_first(addr, _ADMIN_KEYS),
            country=addr.get("country"),
        )


class OfflineGeocoder:
    """City-level lookups from the bundled GeoNames dataset; no network needed."""

    def __init__(self, mode: int = 1):
        self.mode = mode

    def reverse_geocode(self, lat: float, lon: float) -> PlaceResult:
        try:
            results = rg.search([(lat, lon)], mode=self.mode, verbose=False)
        except (OSError, ValueError, IndexError) as exc:
            raise GeocodeFailure(str(exc)) from exc
        if not results:
            return PlaceResult()
        r = results[0]
        return PlaceResult(locality=r.get("name") or None, admin_area=r.get("admin1") or None,
                           country=r.get("cc") or None)


class FallbackGeocoder:
    """Try each geocoder in turn; fail only when all of them fail."""

    def __init__(self, *geocoders: ReverseGeocoder):
        if not geocoders:
            raise ValueError("FallbackGeocoder needs at least one geocoder")
        self.geocoders = geocoders

    def reverse_geocode(self, lat: float, lon: float) -> PlaceResult:
        failure: Optional[GeocodeFailure] = None
        for geocoder in self.geocoders:
            try:
                return geocoder.reverse_geocode(lat, lon)
            except GeocodeFailure as exc:
                log.debug("%s failed, trying next geocoder", type(geocoder).__name__)
                failure = exc
        raise failure
