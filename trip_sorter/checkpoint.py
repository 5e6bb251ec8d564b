"""Scan checkpoint: last known progress and message, for display only.

Restoring a checkpoint never resumes work. A new scan always starts extraction
from the first asset; the restored progress is just shown until the new pass
catches up, so the bar can jump back or forward.
"""
from __future__ import annotations

from typing import Callable, Optional
import logging
import time

from .models import ScanCheckpoint
from .settings import DEFAULT_SETTINGS
from .storage import KeyValueStore

log = logging.getLogger(__name__)

CHECKPOINT_TTL_SECONDS = DEFAULT_SETTINGS.checkpoint_ttl_seconds


class CheckpointStore:
    def __init__(
        self,
        store: KeyValueStore,
        ttl: float = CHECKPOINT_TTL_SECONDS,
        key_prefix: str = DEFAULT_SETTINGS.checkpoint_key_prefix,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self._last_saved = 0.0
        self.progress_key = f"{key_prefix}.progress"
        self.message_key = f"{key_prefix}.message"
        self.timestamp_key = f"{key_prefix}.timestamp"

    def save(self, progress: float, message: str) -> None:
        self.store.set(self.progress_key, float(progress))
        self.store.set(self.message_key, message or "")
        # wall clock may step backwards; saved_at must not
        self._last_saved = max(float(self.clock()), self._last_saved)
        self.store.set(self.timestamp_key, self._last_saved)

    def load(self) -> Optional[ScanCheckpoint]:
        """The stored checkpoint if younger than the TTL; stale records are cleared."""
        try:
            timestamp = float(self.store.get(self.timestamp_key) or 0.0)
            progress = float(self.store.get(self.progress_key) or 0.0)
        except (TypeError, ValueError):
            log.warning("Discarding unreadable scan checkpoint")
            self.clear()
            return None
        if timestamp <= 0:
            return None
        if self.clock() - timestamp > self.ttl:
            log.debug("Scan checkpoint expired")
            self.clear()
            return None
        message = self.store.get(self.message_key) or ""
        return ScanCheckpoint(progress=progress, message=str(message), saved_at=timestamp)

    def clear(self) -> None:
        for key in (self.progress_key, self.message_key, self.timestamp_key):
            self.store.delete(key)
