"""Exclusion rules shared by the initial scan, the watcher and the startup sweep."""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, List

from .config import RestateGenConfig

_DEFAULT_EXCLUDED_DIRS = {
    "node_modules",
    "dist",
    ".build",
    ".git",
    ".encore",
}

# Directory-name globs; "*.gen" covers encore.gen and friends.
_DEFAULT_EXCLUDED_DIR_GLOBS = ("*.gen",)


class Excluder:
    """Decides which directories and files the watcher ignores.

    Every component of a path below the project root is checked, so a file
    nested anywhere under ``node_modules`` is excluded exactly like the
    directory itself.
    """

    def __init__(
        self,
        root: Path,
        *,
        output_dir: str = "restate.gen",
        source_suffix: str = ".ts",
        generated_suffix: str = ".restate.ts",
        extra_dirs: Iterable[str] = (),
    ) -> None:
        self.root = root
        self.source_suffix = source_suffix
        self.generated_suffix = generated_suffix
        self.excluded_names = set(_DEFAULT_EXCLUDED_DIRS)
        self.excluded_names.add(output_dir)
        self.excluded_globs: List[str] = list(_DEFAULT_EXCLUDED_DIR_GLOBS)
        for name in extra_dirs:
            if any(ch in name for ch in "*?["):
                self.excluded_globs.append(name)
            else:
                self.excluded_names.add(name)

    @classmethod
    def from_config(cls, config: RestateGenConfig) -> "Excluder":
        return cls(
            config.root,
            output_dir=config.output_dir,
            source_suffix=config.source_suffix,
            generated_suffix=config.generated_suffix,
            extra_dirs=config.exclude_dirs,
        )

    def _is_excluded_name(self, name: str) -> bool:
        if name in self.excluded_names:
            return True
        return any(fnmatchcase(name, pattern) for pattern in self.excluded_globs)

    def _relative_parts(self, path: Path) -> tuple[str, ...]:
        try:
            return path.relative_to(self.root).parts
        except ValueError:
            return path.parts

    def is_excluded_dir(self, path: Path) -> bool:
        """Return True when ``path`` or any of its ancestors below root is excluded."""
        return any(self._is_excluded_name(part) for part in self._relative_parts(path))

    def is_generated_file(self, path: Path) -> bool:
        return path.name.endswith(self.generated_suffix)

    def is_tracked_source(self, path: Path) -> bool:
        """Return True for hand-written source files whose changes trigger regeneration."""
        if not path.name.endswith(self.source_suffix):
            return False
        if self.is_generated_file(path):
            return False
        return not self.is_excluded_dir(path.parent)

    def walk_dirs(self, start: Path | None = None) -> Iterator[Path]:
        """Yield ``start`` and every non-excluded directory beneath it, top-down."""
        start = start or self.root
        if self.is_excluded_dir(start):
            return
        pending = [start]
        while pending:
            current = pending.pop()
            yield current
            try:
                children = sorted(
                    (entry for entry in current.iterdir() if entry.is_dir() and not entry.is_symlink()),
                    reverse=True,
                )
            except OSError:
                continue
            for child in children:
                if not self._is_excluded_name(child.name):
                    pending.append(child)


__all__ = ["Excluder"]
