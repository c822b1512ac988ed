"""Filesystem watching: one recursive watch per project and event coalescing."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .exclusions import Excluder
from .logging import get_logger
from .scheduler import DebounceScheduler

# Dedup cache entries older than this many windows are pruned.
_DEDUP_PRUNE_FACTOR = 50
_DEDUP_PRUNE_SIZE = 1024


class WatcherError(RuntimeError):
    """Raised when filesystem notifications cannot be set up."""


def create_observer(observer_cls: Callable[[], Any] | None = None) -> Any:
    """Create a watchdog observer, wrapping setup failures in :class:`WatcherError`."""
    cls = observer_cls or Observer
    try:
        return cls()
    except Exception as exc:
        raise WatcherError(f"failed to create filesystem observer: {exc}") from exc


def watch_root(observer: Any, handler: FileSystemEventHandler, root: Path) -> Any:
    """Register a single recursive watch covering the whole project.

    The observer follows new subdirectories on its own; excluded paths are
    dropped by the handler rather than left unwatched.
    """
    try:
        return observer.schedule(handler, str(root), recursive=True)
    except OSError as exc:
        raise WatcherError(f"failed to watch {root}: {exc}") from exc


def _event_path(raw: Any) -> Path:
    return Path(os.fsdecode(raw))


class EventCoalescer(FileSystemEventHandler):
    """Turns raw watchdog events into one debounced regeneration per directory."""

    def __init__(
        self,
        excluder: Excluder,
        scheduler: DebounceScheduler,
        regenerate: Callable[[Path], None],
        *,
        debounce_seconds: float = 0.1,
        dedup_window_seconds: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self.excluder = excluder
        self.scheduler = scheduler
        self.regenerate = regenerate
        self.debounce_seconds = debounce_seconds
        self.dedup_window_seconds = dedup_window_seconds
        self.clock = clock
        self._seen_lock = threading.Lock()
        self._last_seen: Dict[Path, float] = {}
        self.logger = get_logger("watcher")

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception:
            # Keep the observer thread alive; the next event gets a fresh try.
            self.logger.exception("Watcher error while handling %s", event)

    def on_created(self, event: FileSystemEvent) -> None:
        path = _event_path(event.src_path)
        if event.is_directory:
            self.directory_created(path)
        else:
            self.file_changed(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.file_changed(_event_path(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = _event_path(event.src_path)
        if event.is_directory:
            self.directory_removed(path)
        else:
            self.file_changed(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        src = _event_path(event.src_path)
        dest = _event_path(event.dest_path)
        if event.is_directory:
            self.directory_removed(src)
            self.directory_created(dest)
        else:
            self.file_changed(src)
            self.file_changed(dest)

    def file_changed(self, path: Path) -> bool:
        """Schedule regeneration for the file's directory; return True when scheduled."""
        if not self.excluder.is_tracked_source(path):
            return False
        if self._is_duplicate(path):
            self.logger.debug("Skipping duplicate event for %s", path)
            return False
        self.logger.info("Change detected: %s", path)
        self.schedule(path.parent)
        return True

    def directory_created(self, directory: Path) -> None:
        """Schedule the new directory and any subdirectories that arrived with it."""
        if self.excluder.is_excluded_dir(directory):
            return
        for path in self.excluder.walk_dirs(directory):
            self.schedule(path)

    def directory_removed(self, directory: Path) -> None:
        if not self.excluder.is_excluded_dir(directory):
            self.schedule(directory)

    def schedule(self, directory: Path) -> None:
        self.scheduler.schedule(
            directory, self.debounce_seconds, lambda: self.regenerate(directory)
        )

    def _is_duplicate(self, path: Path) -> bool:
        now = self.clock()
        with self._seen_lock:
            last = self._last_seen.get(path)
            if last is not None and now - last < self.dedup_window_seconds:
                return True
            self._last_seen[path] = now
            if len(self._last_seen) > _DEDUP_PRUNE_SIZE:
                horizon = now - self.dedup_window_seconds * _DEDUP_PRUNE_FACTOR
                self._last_seen = {
                    key: seen for key, seen in self._last_seen.items() if seen >= horizon
                }
        return False


__all__ = ["EventCoalescer", "WatcherError", "create_observer", "watch_root"]
