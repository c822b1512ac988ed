"""Per-unit pipeline: extract, classify, render and write or delete the adapter."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .dependencies import DependencyChecker, DependencyError
from .extraction import ExtractionError, Extractor
from .files import remove_if_exists, write_atomic
from .logging import get_logger
from .models import (
    SERVICE,
    VIRTUAL_OBJECT,
    WORKFLOW,
    HandlerEntry,
    HandlerGroup,
    Manifest,
    TemplateData,
)
from .registry import DerivedStateRegistry
from .rendering import TemplateRenderer

# Stripped in this order, each at most once.
_TRIMMED_SUFFIXES = ("Workflow", "Object", "Service")

GENERATED = "generated"
REMOVED = "removed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ProcessOutcome:
    """Result of processing one unit directory."""

    unit_dir: Path
    status: str
    file_path: Optional[Path] = None
    message: str = ""


def trim_suffixes(name: str) -> str:
    for suffix in _TRIMMED_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    return name


def group_handlers(handlers: Iterable[HandlerEntry]) -> List[HandlerGroup]:
    """Group handlers by source file, keeping first-seen order of files and handlers."""
    groups: Dict[str, HandlerGroup] = {}
    for handler in handlers:
        group = groups.get(handler.source)
        if group is None:
            group = HandlerGroup(source=handler.source, handlers=[])
            groups[handler.source] = group
        group.handlers.append(handler)
    return list(groups.values())


def generated_file_name(service_name: str, suffix: str) -> str:
    return f"{service_name.lower()}{suffix}"


def build_template_data(manifest: Manifest, unit_dir: Path, suffix: str) -> TemplateData:
    by_category: Dict[str, List[HandlerEntry]] = {SERVICE: [], WORKFLOW: [], VIRTUAL_OBJECT: []}
    for handler in manifest.handlers:
        by_category[handler.category].append(handler)
    return TemplateData(
        service_name=manifest.service_name,
        service_name_trimmed=trim_suffixes(manifest.service_name),
        service_group=group_handlers(by_category[SERVICE]),
        workflow_group=group_handlers(by_category[WORKFLOW]),
        virtual_object_group=group_handlers(by_category[VIRTUAL_OBJECT]),
        file_path=unit_dir / generated_file_name(manifest.service_name, suffix),
    )


class UnitProcessor:
    """Drives one unit directory through extraction to a generated adapter.

    A pass performs at most one adapter write or delete and exactly one
    registry upsert or removal. Failures are logged and leave both the
    previous adapter and the registry entry untouched.
    """

    def __init__(
        self,
        registry: DerivedStateRegistry,
        extractor: Extractor,
        renderer: TemplateRenderer | None = None,
        dependencies: DependencyChecker | None = None,
        *,
        marker_file: str = "encore.service.ts",
        generated_suffix: str = ".restate.ts",
    ) -> None:
        self.registry = registry
        self.extractor = extractor
        self.renderer = renderer or TemplateRenderer()
        self.dependencies = dependencies
        self.marker_file = marker_file
        self.generated_suffix = generated_suffix
        self.logger = get_logger("processor")

    def is_unit(self, directory: Path) -> bool:
        return (directory / self.marker_file).is_file()

    def process(self, unit_dir: Path) -> ProcessOutcome:
        if not self.is_unit(unit_dir):
            # Marker gone (or never there): anything we generated here is stale.
            previous = self.registry.get(unit_dir)
            if previous is None:
                return ProcessOutcome(unit_dir, SKIPPED, message="not a unit")
            return self._remove(unit_dir, previous.file_path, previous)

        if self.dependencies is not None:
            try:
                self.dependencies.ensure_installed()
            except DependencyError as exc:
                self.logger.error("Error ensuring required packages for %s: %s", unit_dir, exc)
                return ProcessOutcome(unit_dir, FAILED, message=str(exc))

        try:
            manifest = self.extractor.extract(unit_dir)
        except ExtractionError as exc:
            self.logger.error("Error extracting manifest from %s: %s", unit_dir, exc)
            return ProcessOutcome(unit_dir, FAILED, message=str(exc))
        if not manifest.service_name:
            self.logger.warning("No service name declared in %s; skipping", unit_dir)
            return ProcessOutcome(unit_dir, SKIPPED, message="no service name")

        data = build_template_data(manifest, unit_dir, self.generated_suffix)
        previous = self.registry.get(unit_dir)
        if data.is_empty():
            return self._remove(unit_dir, data.file_path, previous)
        return self._generate(unit_dir, data, previous)

    def _generate(
        self, unit_dir: Path, data: TemplateData, previous: Optional[TemplateData]
    ) -> ProcessOutcome:
        try:
            content = self.renderer.render_adapter(data)
        except Exception as exc:
            self.logger.error("Error rendering adapter for %s: %s", unit_dir, exc, exc_info=True)
            return ProcessOutcome(unit_dir, FAILED, message=str(exc))
        try:
            write_atomic(data.file_path, content)
        except OSError as exc:
            self.logger.error("Error generating file %s: %s", data.file_path, exc)
            return ProcessOutcome(unit_dir, FAILED, data.file_path, str(exc))

        self.registry.upsert(unit_dir, data)
        self.logger.info("Generated file: %s", data.file_path)

        if previous is not None and previous.file_path != data.file_path:
            # Declared name changed; the old adapter would otherwise linger.
            self._delete_file(previous.file_path)
        return ProcessOutcome(unit_dir, GENERATED, data.file_path)

    def _remove(
        self, unit_dir: Path, file_path: Path, previous: Optional[TemplateData]
    ) -> ProcessOutcome:
        paths = [file_path]
        if previous is not None and previous.file_path != file_path:
            paths.append(previous.file_path)
        for path in paths:
            if not self._delete_file(path):
                return ProcessOutcome(unit_dir, FAILED, path, "delete failed")
        self.registry.remove(unit_dir)
        return ProcessOutcome(unit_dir, REMOVED, file_path)

    def _delete_file(self, path: Path) -> bool:
        try:
            removed = remove_if_exists(path)
        except OSError as exc:
            self.logger.error("Error removing generated file %s: %s", path, exc)
            return False
        if removed:
            self.logger.info("Removed generated file: %s", path)
        return True


__all__ = [
    "FAILED",
    "GENERATED",
    "REMOVED",
    "SKIPPED",
    "ProcessOutcome",
    "UnitProcessor",
    "build_template_data",
    "generated_file_name",
    "group_handlers",
    "trim_suffixes",
]
