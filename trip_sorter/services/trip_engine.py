"""Background trip detection: one worker thread per scan, observable state.

The pipeline runs extraction -> clustering -> home/filter -> naming inside a
single daemon thread. Published state only changes under the engine lock, and
every write from the worker carries the scan generation it was started with, so
a worker that has been cancelled or superseded can never publish again.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Optional
import logging
import random
import threading
import time

from trip_sorter.checkpoint import CheckpointStore
from trip_sorter.clustering import cluster_points, filter_trips, resolve_home
from trip_sorter.geocoder import ReverseGeocoder
from trip_sorter.models import ScanCancelled, ScanPhase, ScanState, Trip
from trip_sorter.naming import GeoCache, GeocodeResolver, build_trips
from trip_sorter.points import extract_points
from trip_sorter.settings import TripSettings, load_settings
from trip_sorter.sources import AssetSource
from trip_sorter.storage import KeyValueStore

log = logging.getLogger(__name__)

Listener = Callable[[ScanState], None]

MSG_FIRST_SCAN = "One-time scan — finding all your trips..."
MSG_RESUMING = "Resuming trip scan..."
MSG_SCANNING = "Scanning your photo library..."
MSG_NO_PHOTOS = "No photos found"
MSG_NOT_ENOUGH = "Not enough geotagged photos"
MSG_DETECTING = "Detecting trip patterns..."
MSG_CACHED_NAMES = "Loading cached trip names..."

CLUSTERING_PROGRESS = 0.45
NAMING_PROGRESS = 0.6


class TripDetectionEngine:
    """Detects trips in an asset source. Construct one per library; no shared state."""

    def __init__(
        self,
        source: AssetSource,
        geocoder: ReverseGeocoder,
        store: KeyValueStore,
        settings: Optional[TripSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        choose_cover: Callable = random.choice,
    ):
        self.source = source
        self.settings = settings or load_settings()
        self.checkpoints = CheckpointStore(
            store,
            ttl=self.settings.checkpoint_ttl_seconds,
            key_prefix=self.settings.checkpoint_key_prefix,
            clock=clock,
        )
        self.resolver = GeocodeResolver(
            geocoder,
            GeoCache(store, self.settings.geo_cache_key),
            delay=self.settings.geocode_delay_seconds,
            sleep=sleep,
        )
        self.choose_cover = choose_cover

        self._lock = threading.RLock()
        self._state = ScanState()
        self._listeners: List[Listener] = []
        self._generation = 0
        self._cancel_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._show_progress = True
        self._restore_checkpoint()

    # -- observable state -------------------------------------------------

    def snapshot(self) -> ScanState:
        with self._lock:
            return self._state

    @property
    def trips(self) -> List[Trip]:
        return list(self.snapshot().trips)

    @property
    def is_scanning(self) -> bool:
        return self.snapshot().is_scanning

    @property
    def progress(self) -> float:
        return self.snapshot().progress

    @property
    def message(self) -> str:
        return self.snapshot().message

    @property
    def has_scanned(self) -> bool:
        return self.snapshot().has_scanned

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with every new state; returns a function that unsubscribes."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def _set_state(self, **changes) -> None:
        # caller holds the lock
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                log.exception("Scan state listener failed")

    def _restore_checkpoint(self) -> None:
        checkpoint = self.checkpoints.load()
        if checkpoint is None:
            self.checkpoints.clear()
            return
        with self._lock:
            self._set_state(progress=checkpoint.progress, message=checkpoint.message)

    # -- commands ---------------------------------------------------------

    def scan(self, show_progress: bool = True) -> bool:
        """Start a background scan. Returns False when one is running or results exist."""
        with self._lock:
            if self._state.is_scanning or self._state.phase == ScanPhase.COMPLETED:
                return False
            self._show_progress = show_progress

            checkpoint = self.checkpoints.load()
            if checkpoint and 0 < checkpoint.progress < 1:
                progress = checkpoint.progress
                message = checkpoint.message or self._msg(MSG_RESUMING)
            else:
                progress = 0.0
                message = self._msg(MSG_FIRST_SCAN)

            self._generation += 1
            self._cancel_event = threading.Event()
            self._set_state(phase=ScanPhase.SCANNING, is_scanning=True, progress=progress, message=message)
            self.checkpoints.save(progress, message)

            self._thread = threading.Thread(
                target=self._worker,
                args=(self._generation, self._cancel_event),
                name=f"trip-scan-{self._generation}",
                daemon=True,
            )
            self._thread.start()
            log.info("Trip scan %d started", self._generation)
            return True

    def rescan(self, show_progress: bool = True) -> bool:
        """Forget the completed result and scan again.

        The previous trips stay published until the new scan replaces them.
        """
        self.cancel()
        with self._lock:
            self.checkpoints.clear()
            self._set_state(phase=ScanPhase.IDLE, has_scanned=False, progress=0.0, message="")
        return self.scan(show_progress=show_progress)

    def cancel(self) -> None:
        """Ask the running scan to stop. Its partial results are never published."""
        with self._lock:
            self._cancel_event.set()
            if self._state.is_scanning:
                self._generation += 1
                self._set_state(phase=ScanPhase.CANCELLED_OR_FAILED, is_scanning=False, progress=0.0, message="")
                log.info("Trip scan cancelled")
            self.checkpoints.clear()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current worker thread exits. True if it has."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    # -- worker -----------------------------------------------------------

    def _msg(self, text: str) -> str:
        return text if self._show_progress else ""

    def _report(self, generation: int, progress: Optional[float] = None, message: Optional[str] = None) -> None:
        """Publish progress from the worker; raises ScanCancelled if the scan is stale.

        Progress never moves backwards within a scan, so a restored checkpoint
        value stays on screen until the new pass catches up with it.
        """
        with self._lock:
            if generation != self._generation or not self._state.is_scanning:
                raise ScanCancelled()
            changes = {}
            if progress is not None:
                changes["progress"] = max(self._state.progress, progress)
            if message is not None:
                changes["message"] = self._msg(message)
            self._set_state(**changes)
            self.checkpoints.save(self._state.progress, self._state.message)

    def _finish(self, generation: int, trips: List[Trip], message: str = "", progress: float = 1.0) -> None:
        with self._lock:
            if generation != self._generation:
                raise ScanCancelled()
            self._set_state(
                phase=ScanPhase.COMPLETED,
                is_scanning=False,
                has_scanned=True,
                trips=tuple(trips),
                progress=progress,
                message=message,
            )
            self.checkpoints.clear()

    def _worker(self, generation: int, cancel_event: threading.Event) -> None:
        try:
            self._run(generation, cancel_event.is_set)
        except ScanCancelled:
            log.info("Trip scan %d stopped", generation)
        except Exception:
            log.exception("Trip scan %d failed", generation)
            with self._lock:
                if generation == self._generation:
                    self._set_state(phase=ScanPhase.CANCELLED_OR_FAILED, is_scanning=False, message="")
                    self.checkpoints.clear()

    def _run(self, generation: int, cancelled: Callable[[], bool]) -> None:
        s = self.settings
        assets = self.source.fetch_geotagged(cancelled)
        if cancelled():
            raise ScanCancelled()
        if not assets:
            self._finish(generation, [], MSG_NO_PHOTOS, progress=0.0)
            return

        self._report(generation, message=MSG_SCANNING)
        points = extract_points(
            assets,
            progress=lambda value: self._report(generation, progress=value),
            cancelled=cancelled,
            check_every=s.extraction_check_every,
        )
        if len(points) < s.min_trip_photos:
            log.info("Only %d geotagged photos out of %d assets", len(points), len(assets))
            self._finish(generation, [], MSG_NOT_ENOUGH, progress=0.0)
            return

        self._report(generation, CLUSTERING_PROGRESS, MSG_DETECTING)
        clusters = cluster_points(points, s.time_gap_days, s.distance_threshold_km,
                                  cancelled=cancelled, check_every=s.clustering_yield_every)
        home = resolve_home(clusters, s.home_min_points)
        trip_clusters = filter_trips(clusters, home, s.min_trip_photos, s.home_radius_km)
        log.info("%d clusters, %d trips, home %s", len(clusters), len(trip_clusters),
                 "found" if home else "not found")

        self._report(generation, NAMING_PROGRESS, f"Naming {len(trip_clusters)} trips...")

        def on_pending(count: int) -> None:
            text = f"Identifying {count} locations..." if count else MSG_CACHED_NAMES
            self._report(generation, message=text)

        names = self.resolver.resolve(
            trip_clusters,
            progress=lambda value: self._report(generation, progress=value),
            cancelled=cancelled,
            on_pending=on_pending,
        )
        if cancelled():
            raise ScanCancelled()
        trips = build_trips(trip_clusters, names, self.choose_cover)
        self._finish(generation, trips)
        log.info("Trip scan %d finished with %d trips", generation, len(trips))
