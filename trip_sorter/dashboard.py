"""Small JSON API over one TripDetectionEngine."""
from __future__ import annotations

import sys

from flask import Flask, jsonify

from trip_sorter.geocoder import FallbackGeocoder, NominatimGeocoder, OfflineGeocoder
from trip_sorter.services.trip_engine import TripDetectionEngine
from trip_sorter.sources import FolderAssetSource
from trip_sorter.storage import JsonFileStore
from trip_sorter.utils.logging_util import setup_logging


def create_app(engine: TripDetectionEngine) -> Flask:
    app = Flask(__name__)
    app.config["ENGINE"] = engine

    @app.route("/api/status", methods=["GET"])
    def api_status():
        state = engine.snapshot()
        payload = state.to_dict()
        payload["percent"] = round(state.progress * 100, 2)
        return jsonify(payload)

    @app.route("/api/trips", methods=["GET"])
    def api_trips():
        return jsonify({"trips": [trip.to_dict() for trip in engine.trips]})

    @app.route("/api/scan", methods=["POST"])
    def api_scan():
        started = engine.scan()
        return jsonify({"started": started, **engine.snapshot().to_dict()}), 202 if started else 200

    @app.route("/api/rescan", methods=["POST"])
    def api_rescan():
        started = engine.rescan()
        return jsonify({"started": started, **engine.snapshot().to_dict()}), 202

    @app.route("/api/cancel", methods=["POST"])
    def api_cancel():
        engine.cancel()
        return jsonify(engine.snapshot().to_dict())

    return app


def build_engine(folder: str) -> TripDetectionEngine:
    geocoder = FallbackGeocoder(OfflineGeocoder(), NominatimGeocoder())
    return TripDetectionEngine(FolderAssetSource(folder), geocoder, JsonFileStore())


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: python -m trip_sorter.dashboard <photo folder>")
        sys.exit(2)
    setup_logging()
    create_app(build_engine(sys.argv[1])).run(host="127.0.0.1", port=5000)
