"""Startup sequence, reconciliation sweep and the long-running watch loop."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

from .aggregator import CentralAggregator
from .config import RestateGenConfig
from .dependencies import DependencyChecker
from .exclusions import Excluder
from .extraction import ExtractionError, Extractor
from .files import remove_if_exists
from .logging import get_logger
from .processor import ProcessOutcome, UnitProcessor, generated_file_name
from .registry import DerivedStateRegistry
from .rendering import TemplateRenderer
from .scheduler import DebounceScheduler
from .tsconfig import update_tsconfig
from .watcher import EventCoalescer, WatcherError, create_observer, watch_root


class Orchestrator:
    """Wires the watcher, processor and aggregator around one registry."""

    def __init__(
        self,
        config: RestateGenConfig,
        *,
        extractor: Extractor | None = None,
        dependencies: DependencyChecker | None = None,
        renderer: TemplateRenderer | None = None,
        registry: DerivedStateRegistry | None = None,
        scheduler: DebounceScheduler | None = None,
        observer_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.config = config
        self.root = config.root
        self.logger = get_logger("orchestrator")
        self.excluder = Excluder.from_config(config)
        self.registry = registry if registry is not None else DerivedStateRegistry()
        self.renderer = renderer or TemplateRenderer()
        self.dependencies = dependencies or DependencyChecker(
            config.root,
            required=config.dependencies.required,
            auto_install=config.dependencies.auto_install,
            timeout=config.dependencies.timeout_seconds,
        )
        self.extractor = extractor or Extractor(
            config.extractor.command,
            cwd=config.root,
            timeout=config.extractor.timeout_seconds,
        )
        self.processor = UnitProcessor(
            self.registry,
            self.extractor,
            self.renderer,
            self.dependencies,
            marker_file=config.marker_file,
            generated_suffix=config.generated_suffix,
        )
        self.aggregator = CentralAggregator(self.registry, config.output_path, self.renderer)
        self.scheduler = scheduler or DebounceScheduler()
        self.coalescer = EventCoalescer(
            self.excluder,
            self.scheduler,
            self.regenerate,
            debounce_seconds=config.debounce_seconds,
            dedup_window_seconds=config.dedup_window_seconds,
        )
        self._observer_factory = observer_factory
        self.observer: Optional[Any] = None
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Regeneration

    def regenerate(self, directory: Path) -> ProcessOutcome:
        """Process one directory, then refresh the central index from the registry."""
        outcome = self.processor.process(directory)
        self.aggregator.run()
        return outcome

    def initial_scan(self) -> List[ProcessOutcome]:
        """Process every unit found under the project root."""
        outcomes = []
        for directory in self.excluder.walk_dirs():
            if self.processor.is_unit(directory):
                outcomes.append(self.processor.process(directory))
        self.logger.debug("Initial scan processed %d unit(s)", len(outcomes))
        return outcomes

    def sweep_dangling(self) -> List[Path]:
        """Delete generated adapters left behind by units that no longer produce them."""
        removed = []
        suffix = self.config.generated_suffix
        for directory in self.excluder.walk_dirs():
            try:
                candidates = sorted(
                    path for path in directory.iterdir()
                    if path.is_file() and path.name.endswith(suffix)
                )
            except OSError as exc:
                self.logger.warning("Could not list %s: %s", directory, exc)
                continue
            for path in candidates:
                if self._is_dangling(directory, path):
                    if self._remove_dangling(directory, path):
                        removed.append(path)
        return removed

    def _is_dangling(self, directory: Path, path: Path) -> bool:
        if not self.processor.is_unit(directory):
            return True
        try:
            manifest = self.extractor.extract(directory)
        except ExtractionError as exc:
            self.logger.warning("Skipping sweep of %s: %s", path, exc)
            return False
        if not manifest.handlers:
            return True
        if not manifest.service_name:
            return False
        # Left over from an earlier declared name.
        return path.name != generated_file_name(manifest.service_name, self.config.generated_suffix)

    def _remove_dangling(self, directory: Path, path: Path) -> bool:
        try:
            remove_if_exists(path)
        except OSError as exc:
            self.logger.error("Error removing generated file %s: %s", path, exc)
            return False
        self.logger.info("Removed generated file: %s", path)
        entry = self.registry.get(directory)
        if entry is not None and entry.file_path == path:
            self.registry.remove(directory)
        return True

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        """Bring generated output in line with the source tree and start watching."""
        self.logger.info("Monitoring project at: %s", self.root)
        self.extractor.verify()
        self.dependencies.probe()

        observer = create_observer(self._observer_factory)
        watch_root(observer, self.coalescer, self.root)
        try:
            observer.start()
        except Exception as exc:
            raise WatcherError(f"failed to start filesystem observer: {exc}") from exc
        self.observer = observer

        self.initial_scan()
        self.sweep_dangling()
        self.aggregator.run()

        if self.config.patch_tsconfig:
            self._patch_tsconfig()

    def _patch_tsconfig(self) -> None:
        try:
            update_tsconfig(self.root, self.config.output_dir)
        except FileNotFoundError:
            self.logger.warning("No tsconfig.json in %s; skipping path alias setup", self.root)
        except OSError as exc:
            self.logger.error("Error updating tsconfig.json: %s", exc)

    def run(self, poll_interval: float = 1.0) -> None:
        """Start, then block until :meth:`stop` is called or the observer dies."""
        try:
            self.start()
            while not self._stop.wait(poll_interval):
                if self.observer is not None and not self.observer.is_alive():
                    raise WatcherError("filesystem observer stopped unexpectedly")
        finally:
            self.shutdown()

    def stop(self) -> None:
        self._stop.set()

    def shutdown(self) -> None:
        cancelled = self.scheduler.cancel_all()
        if cancelled:
            self.logger.debug("Cancelled %d pending regeneration(s)", cancelled)
        if self.observer is not None:
            self.observer.stop()
            self.observer.join(timeout=5)
            self.observer = None


__all__ = ["Orchestrator"]
