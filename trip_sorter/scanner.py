"""Locate image files under a library folder.

Hidden entries (names starting with a dot) are skipped, including whole hidden
directories such as `.thumbnails` or `.trash`, since they hold caches and deleted
items rather than captures.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional
import os

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".tif", ".tiff", ".webp", ".heic", ".heif"})


def _visible(name: str) -> bool:
    return not name.startswith(".")


def find_media(root, extensions: Optional[Iterable[str]] = None, recursive: bool = True) -> List[Path]:
    """Sorted paths of the image files below `root`.

    `extensions` replaces IMAGE_EXTENSIONS when given; matching ignores case.
    Raises FileNotFoundError when `root` is not a directory.
    """
    base = Path(root).expanduser()
    if not base.is_dir():
        raise FileNotFoundError(f"Library folder not found: {root}")

    wanted = frozenset(e.lower() for e in extensions) if extensions else IMAGE_EXTENSIONS
    found = []
    for dirpath, dirnames, filenames in os.walk(base):
        if recursive:
            dirnames[:] = [d for d in dirnames if _visible(d)]
        else:
            dirnames[:] = []
        for name in filenames:
            if _visible(name) and os.path.splitext(name)[1].lower() in wanted:
                found.append(Path(dirpath, name))
    return sorted(found)
