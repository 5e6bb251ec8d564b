"""Logging setup for trip_sorter processes."""
from __future__ import annotations

from logging.handlers import RotatingFileHandler
from typing import Optional
import logging
import os


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Attach console (and optionally rotating file) handlers to the `trip_sorter` logger.

    Calling it again is a no-op once handlers are installed.
    """
    root_logger = logging.getLogger("trip_sorter")
    root_logger.setLevel(logging.DEBUG)
    if root_logger.handlers:
        return root_logger

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(fmt)
    root_logger.addHandler(ch)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(os.path.join(log_dir, "trip_sorter.log"), maxBytes=5 * 1024 * 1024, backupCount=3)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)
    return root_logger
