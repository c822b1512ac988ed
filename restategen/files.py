"""Filesystem helpers for generated output."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` so readers never observe a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(content)
        # mkstemp creates 0600 files.
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def remove_if_exists(path: Path) -> bool:
    """Delete ``path``; return False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


__all__ = ["remove_if_exists", "write_atomic"]
