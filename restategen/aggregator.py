"""Central index generation across all units in the registry."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping

from .files import write_atomic
from .logging import get_logger
from .models import CATEGORIES, CATEGORY_INDEX_DIRS, CATEGORY_KINDS, TemplateData
from .registry import DerivedStateRegistry
from .rendering import TemplateRenderer, render_category_index

INDEX_FILENAME = "index.ts"


def import_specifier(target: Path, from_dir: Path) -> str:
    """Relative module specifier for ``target`` as imported from ``from_dir``."""
    rel = Path(os.path.relpath(target, from_dir)).as_posix()
    if rel.endswith(".ts"):
        rel = rel[: -len(".ts")]
    if not rel.startswith("."):
        rel = f"./{rel}"
    return rel


class CentralAggregator:
    """Rewrites the category barrels and the root index from a registry snapshot.

    Output depends only on the registry contents, so two runs without an
    intervening registry change produce byte-identical files. Concurrent
    runs are tolerated: the next coalesced trigger rewrites from a fresher
    snapshot.
    """

    def __init__(
        self,
        registry: DerivedStateRegistry,
        output_dir: Path,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.registry = registry
        self.output_dir = output_dir
        self.renderer = renderer or TemplateRenderer()
        self.logger = get_logger("aggregator")

    def index_dir(self, category: str) -> Path:
        return self.output_dir / CATEGORY_INDEX_DIRS[category]

    def build_exports(self, snapshot: Mapping[Path, TemplateData]) -> Dict[str, List[str]]:
        exports: Dict[str, List[str]] = {category: [] for category in CATEGORIES}
        ordered = sorted(snapshot.values(), key=lambda data: data.file_path.as_posix())
        for data in ordered:
            for category in CATEGORIES:
                if not data.groups_for(category):
                    continue
                trimmed = data.service_name_trimmed
                kind = CATEGORY_KINDS[category]
                specifier = import_specifier(data.file_path, self.index_dir(category))
                exports[category].append(
                    f"export {{ {trimmed}{kind} as {trimmed} }} from '{specifier}';"
                )
        return exports

    def render(self) -> Dict[Path, str]:
        """Reconcile the registry and return the content of every index file."""
        evicted = self.registry.evict_missing()
        for unit_dir in evicted:
            self.logger.info("Dropped %s from the index: generated file is gone", unit_dir)

        exports = self.build_exports(self.registry.snapshot())
        files: Dict[Path, str] = {}
        for category in CATEGORIES:
            files[self.index_dir(category) / INDEX_FILENAME] = render_category_index(
                exports[category]
            )
        files[self.output_dir / INDEX_FILENAME] = self.renderer.render_root_index()
        return files

    def run(self) -> bool:
        """Write all index files; log and return False on I/O failure."""
        try:
            files = self.render()
        except Exception as exc:
            self.logger.error("Error rendering central index: %s", exc, exc_info=True)
            return False
        ok = True
        for path, content in files.items():
            try:
                write_atomic(path, content)
            except OSError as exc:
                self.logger.error("Error writing index %s: %s", path, exc)
                ok = False
        if ok:
            self.logger.debug("Central index updated under %s", self.output_dir)
        return ok


__all__ = ["CentralAggregator", "INDEX_FILENAME", "import_specifier"]
