"""Flat string-keyed stores used for the geocode cache and the scan checkpoint.

Persistence is best-effort: a failed read behaves like an empty store and a
failed write is logged and not retried.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Protocol
import json
import logging
import os
import threading

log = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".trip_sorter_store.json"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore:
    """All keys live in one JSON object on disk, rewritten on every change."""

    def __init__(self, path=DEFAULT_STORE_PATH):
        self.path = Path(path).expanduser()
        self._data: Optional[Dict[str, Any]] = None
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        self._data = {}
        try:
            if self.path.exists():
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(raw, dict):
                    self._data = raw
                else:
                    log.warning("Ignoring store %s: not a JSON object", self.path)
        except (OSError, ValueError):
            log.exception("Failed to read store %s", self.path)
        return self._data

    def _save(self) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError:
            log.exception("Failed to write store %s", self.path)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._load()[key] = value
            self._save()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._load().pop(key, None) is not None:
                self._save()
