"""Trip Sorter package - detect trips in a geotagged photo library and name them by place."""

from .models import AssetRecord, GeocodeFailure, PhotoPoint, PlaceResult, ScanPhase, ScanState, Trip
from .clustering import cluster_points, filter_trips, resolve_home
from .geocoder import FallbackGeocoder, NominatimGeocoder, OfflineGeocoder
from .points import extract_points
from .services.trip_engine import TripDetectionEngine
from .sources import FolderAssetSource, MemoryAssetSource
from .storage import JsonFileStore, MemoryStore

__all__ = [
    "AssetRecord", "GeocodeFailure", "PhotoPoint", "PlaceResult", "ScanPhase", "ScanState", "Trip",
    "cluster_points", "filter_trips", "resolve_home", "extract_points",
    "FallbackGeocoder", "NominatimGeocoder", "OfflineGeocoder",
    "TripDetectionEngine", "FolderAssetSource", "MemoryAssetSource", "JsonFileStore", "MemoryStore",
]
