"""
Tests for trip_sorter/services/trip_engine.py

Covers:
- end-to-end detection and naming on an in-memory library
- terminal "no photos" / "not enough geotagged photos" states
- scan() no-op guards, rescan(), cancel() mid-geocoding and while the source reads
- display-only checkpoint restore and monotonic progress within a scan
- failures inside the pipeline and unexpected geocoder errors
"""

from __future__ import annotations

from datetime import timedelta
import threading
import time

import pytest

from trip_sorter.checkpoint import CheckpointStore
from trip_sorter.models import AssetRecord, PlaceResult, ScanCancelled, ScanPhase
from trip_sorter.services.trip_engine import (
    MSG_FIRST_SCAN,
    MSG_NO_PHOTOS,
    MSG_NOT_ENOUGH,
    MSG_RESUMING,
    TripDetectionEngine,
)
from trip_sorter.sources import MemoryAssetSource

from conftest import BASE_TIME, FakeGeocoder, make_point, make_records, trip_points

WAIT = 5


def _library():
    """Daily photos at home for 25 days, then two trips."""
    home = [make_point(i, 52.0, 0.001 * (i % 3), BASE_TIME + timedelta(days=i)) for i in range(25)]
    lisbon = trip_points(100, 38.72, -9.14, BASE_TIME + timedelta(days=40), 7)
    rome = trip_points(200, 41.90, 12.50, BASE_TIME + timedelta(days=80), 5)
    return make_records(home + lisbon + rome)


class BlockingGeocoder(FakeGeocoder):
    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def reverse_geocode(self, lat, lon):
        self.entered.set()
        self.release.wait(WAIT)
        return super().reverse_geocode(lat, lon)


class ExplodingSource:
    def fetch_geotagged(self, cancelled=None):
        raise RuntimeError("library unavailable")


class SlowSource:
    """Stands in for a folder walk: polls the cancel check until told to stop."""

    def __init__(self):
        self.entered = threading.Event()
        self.stopped = threading.Event()

    def fetch_geotagged(self, cancelled=None):
        self.entered.set()
        for _ in range(WAIT * 100):
            if cancelled and cancelled():
                self.stopped.set()
                raise ScanCancelled()
            time.sleep(0.01)
        return _library()


class DroppedConnectionGeocoder(FakeGeocoder):
    def reverse_geocode(self, lat, lon):
        self.calls.append((lat, lon))
        raise ConnectionError("connection reset by peer")


def _engine(records, store, settings, geocoder=None, clock=None):
    kwargs = {"clock": clock} if clock else {}
    return TripDetectionEngine(MemoryAssetSource(records), geocoder or FakeGeocoder(), store,
                               settings=settings, sleep=lambda _: None, **kwargs)


class TestScan:

    def test_detects_and_names_trips_newest_first(self, store, settings):
        geocoder = FakeGeocoder(places={
            "38.7,-9.1": PlaceResult(locality="Lisbon", country="Portugal"),
            "41.9,12.5": PlaceResult(admin_area="Lazio", country="Italy"),
        })
        engine = _engine(_library(), store, settings, geocoder)
        assert engine.scan() is True
        assert engine.wait(WAIT)

        state = engine.snapshot()
        assert state.phase == ScanPhase.COMPLETED
        assert state.has_scanned and not state.is_scanning
        assert state.progress == 1.0
        assert state.message == ""
        assert [t.name for t in engine.trips] == ["Lazio, Italy", "Lisbon, Portugal"]
        assert [t.photo_count for t in engine.trips] == [5, 7]
        ends = [t.end for t in engine.trips]
        assert ends == sorted(ends, reverse=True)
        assert len(geocoder.calls) == 2

    def test_checkpoint_cleared_after_completion(self, store, settings):
        engine = _engine(_library(), store, settings)
        engine.scan()
        engine.wait(WAIT)
        assert CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix).load() is None

    def test_second_scan_is_noop_once_completed(self, store, settings):
        geocoder = FakeGeocoder()
        engine = _engine(_library(), store, settings, geocoder)
        engine.scan()
        engine.wait(WAIT)
        first = engine.trips
        assert engine.scan() is False
        assert engine.trips == first

    def test_second_rescan_uses_cached_names(self, store, settings):
        geocoder = FakeGeocoder()
        engine = _engine(_library(), store, settings, geocoder)
        engine.scan()
        engine.wait(WAIT)
        assert engine.rescan() is True
        engine.wait(WAIT)
        assert len(geocoder.calls) == 2
        assert len(engine.trips) == 2

    def test_no_photos(self, store, settings):
        engine = _engine([], store, settings)
        engine.scan()
        engine.wait(WAIT)
        state = engine.snapshot()
        assert state.trips == ()
        assert state.has_scanned and not state.is_scanning
        assert state.message == MSG_NO_PHOTOS

    def test_not_enough_geotagged_photos(self, store, settings):
        records = make_records(trip_points(0, 35.0, 139.0, BASE_TIME, 4))
        records.append(AssetRecord(id="no-gps", timestamp=BASE_TIME + timedelta(days=1)))
        engine = _engine(records, store, settings)
        engine.scan()
        engine.wait(WAIT)
        state = engine.snapshot()
        assert state.trips == ()
        assert state.has_scanned
        assert state.phase == ScanPhase.COMPLETED
        assert state.message == MSG_NOT_ENOUGH
        assert CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix).load() is None

    def test_failed_geocode_named_by_dates(self, store, settings):
        records = make_records(trip_points(0, 12.2, -34.4, BASE_TIME, 6))
        engine = _engine(records, store, settings, FakeGeocoder(fail=True))
        engine.scan()
        engine.wait(WAIT)
        (trip,) = engine.trips
        assert "°" not in trip.name
        assert trip.name == "1 Jan – 4 Jan 2024"

    def test_unexpected_geocoder_error_still_completes(self, store, settings):
        geocoder = DroppedConnectionGeocoder()
        engine = _engine(_library(), store, settings, geocoder)
        engine.scan()
        assert engine.wait(WAIT)

        state = engine.snapshot()
        assert state.phase == ScanPhase.COMPLETED
        assert len(geocoder.calls) == 2
        assert [t.photo_count for t in state.trips] == [5, 7]
        assert all("°" not in t.name for t in state.trips)
        assert all(t.name.endswith("2024") for t in state.trips)

    def test_quiet_scan_has_no_messages(self, store, settings):
        messages = []
        engine = _engine(_library(), store, settings)
        engine.subscribe(lambda state: messages.append(state.message))
        engine.scan(show_progress=False)
        engine.wait(WAIT)
        assert set(messages) == {""}

    def test_progress_never_moves_backwards(self, store, settings):
        seen = []
        engine = _engine(_library(), store, settings)
        engine.subscribe(lambda state: seen.append(state.progress))
        engine.scan()
        engine.wait(WAIT)
        assert seen == sorted(seen)
        assert seen[-1] == 1.0

    def test_pipeline_error_ends_in_failed_state(self, store, settings):
        engine = TripDetectionEngine(ExplodingSource(), FakeGeocoder(), store, settings=settings)
        engine.scan()
        engine.wait(WAIT)
        state = engine.snapshot()
        assert state.phase == ScanPhase.CANCELLED_OR_FAILED
        assert not state.is_scanning
        assert CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix).load() is None


class TestCancel:

    def test_cancel_mid_scan_leaves_nothing_behind(self, store, settings):
        geocoder = BlockingGeocoder()
        engine = _engine(_library(), store, settings, geocoder)
        engine.scan()
        assert geocoder.entered.wait(WAIT)

        engine.cancel()
        geocoder.release.set()
        assert engine.wait(WAIT)

        state = engine.snapshot()
        assert state.trips == ()
        assert not state.is_scanning
        assert state.phase == ScanPhase.CANCELLED_OR_FAILED
        assert state.message == ""
        assert CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix).load() is None

    def test_cancelled_rescan_keeps_previous_trips(self, store, settings):
        engine = _engine(_library(), store, settings, FakeGeocoder())
        engine.scan()
        engine.wait(WAIT)
        previous = engine.trips

        blocking = BlockingGeocoder()
        engine.resolver.geocoder = blocking
        engine.resolver.cache.store.delete(engine.resolver.cache.key)
        engine.rescan()
        assert blocking.entered.wait(WAIT)
        engine.cancel()
        blocking.release.set()
        engine.wait(WAIT)

        assert engine.trips == previous
        assert not engine.is_scanning

    def test_scan_allowed_again_after_cancel(self, store, settings):
        geocoder = BlockingGeocoder()
        engine = _engine(_library(), store, settings, geocoder)
        engine.scan()
        geocoder.entered.wait(WAIT)
        engine.cancel()
        geocoder.release.set()
        engine.wait(WAIT)

        assert engine.scan() is True
        engine.wait(WAIT)
        assert engine.snapshot().phase == ScanPhase.COMPLETED
        assert len(engine.trips) == 2


    def test_cancel_observed_while_source_is_reading(self, store, settings):
        source = SlowSource()
        engine = TripDetectionEngine(source, FakeGeocoder(), store, settings=settings, sleep=lambda _: None)
        engine.scan()
        assert source.entered.wait(WAIT)

        engine.cancel()
        assert source.stopped.wait(WAIT)
        assert engine.wait(WAIT)
        state = engine.snapshot()
        assert state.phase == ScanPhase.CANCELLED_OR_FAILED
        assert state.trips == ()


class TestCheckpointRestore:

    def test_fresh_checkpoint_shown_on_construction(self, store, settings, clock):
        CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix, clock=clock).save(0.3, "Scanning...")
        engine = _engine(_library(), store, settings, clock=clock)
        assert engine.progress == pytest.approx(0.3)
        assert engine.message == "Scanning..."
        assert not engine.is_scanning

    def test_stale_checkpoint_ignored_and_cleared(self, store, settings, clock):
        checkpoints = CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix, clock=clock)
        checkpoints.save(0.3, "Scanning...")
        clock.advance(settings.checkpoint_ttl_seconds + 1)
        engine = _engine(_library(), store, settings, clock=clock)
        assert engine.progress == 0.0
        assert engine.message == ""
        assert store.get(checkpoints.timestamp_key) is None

    def test_scan_starts_from_restored_progress(self, store, settings, clock):
        CheckpointStore(store, key_prefix=settings.checkpoint_key_prefix, clock=clock).save(0.5, "")
        engine = _engine(_library(), store, settings, BlockingGeocoder(), clock=clock)
        first = []
        engine.subscribe(lambda state: first.append(state) if not first else None)
        engine.scan()
        assert first[0].progress == pytest.approx(0.5)
        assert first[0].message == MSG_RESUMING
        engine.cancel()
        engine.resolver.geocoder.release.set()
        engine.wait(WAIT)

    def test_first_scan_message_without_checkpoint(self, store, settings):
        engine = _engine(_library(), store, settings, BlockingGeocoder())
        first = []
        engine.subscribe(lambda state: first.append(state) if not first else None)
        engine.scan()
        assert first[0].progress == 0.0
        assert first[0].message == MSG_FIRST_SCAN
        engine.cancel()
        engine.resolver.geocoder.release.set()
        engine.wait(WAIT)
