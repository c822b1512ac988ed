"""Process-lifetime registry of the template data generated per unit."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .models import TemplateData


class DerivedStateRegistry:
    """Maps a unit directory to the TemplateData its adapter was last rendered from.

    All access goes through one lock that is held only for the dictionary
    operation itself; callers get copies and never iterate the live mapping.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[Path, TemplateData] = {}

    def upsert(self, unit_dir: Path, data: TemplateData) -> None:
        with self._lock:
            self._entries[unit_dir] = data

    def remove(self, unit_dir: Path) -> Optional[TemplateData]:
        with self._lock:
            return self._entries.pop(unit_dir, None)

    def get(self, unit_dir: Path) -> Optional[TemplateData]:
        with self._lock:
            return self._entries.get(unit_dir)

    def snapshot(self) -> Dict[Path, TemplateData]:
        """Return a point-in-time copy of the registry."""
        with self._lock:
            return dict(self._entries)

    def evict_missing(self, exists: Callable[[Path], bool] | None = None) -> List[Path]:
        """Drop entries whose generated file is gone; return the evicted unit dirs.

        The filesystem is checked outside the lock, and an entry is only
        evicted if it was not replaced while the check ran.
        """
        check = exists or (lambda path: path.exists())
        candidates = [
            (unit_dir, data)
            for unit_dir, data in self.snapshot().items()
            if not check(data.file_path)
        ]
        evicted: List[Path] = []
        with self._lock:
            for unit_dir, data in candidates:
                if self._entries.get(unit_dir) is data:
                    del self._entries[unit_dir]
                    evicted.append(unit_dir)
        return evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, unit_dir: object) -> bool:
        with self._lock:
            return unit_dir in self._entries


__all__ = ["DerivedStateRegistry"]
