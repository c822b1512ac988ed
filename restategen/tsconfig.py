"""Idempotent patching of the host project's tsconfig.json."""

from __future__ import annotations

import re
from pathlib import Path
from typing import List

from .files import write_atomic
from .logging import get_logger

_PATHS_RE = re.compile(r'("paths"\s*:\s*\{)([\s\S]*?)(\s*\})')
_INCLUDE_RE = re.compile(r'("include"\s*:\s*\[)([\s\S]*?)(\s*\])')
_COMPILER_OPTIONS_RE = re.compile(r'("compilerOptions"\s*:\s*\{)')


def _path_entries(output_dir: str) -> str:
    return (
        f'\n      "~restate": ["./{output_dir}/index.ts"],'
        f'\n      "~restate/*": ["./{output_dir}/*"]'
    )


def _include_entries(output_dir: str) -> List[str]:
    return ['"**/*.ts"', '"./**/*.ts"', f'"./{output_dir}/**/*.ts"']


def is_patched(content: str, output_dir: str = "restate.gen") -> bool:
    required = ['"~restate"', '"~restate/*"', *_include_entries(output_dir)]
    return all(token in content for token in required)


def patch_tsconfig(content: str, output_dir: str = "restate.gen") -> str:
    """Return ``content`` with the ~restate path aliases and include globs present."""
    if is_patched(content, output_dir):
        return content

    def _patch_paths(match: re.Match[str]) -> str:
        prefix, body, suffix = match.group(1), match.group(2), match.group(3)
        if '"~restate"' not in body:
            body = body.rstrip(" \n\r\t").rstrip(",")
            if body:
                body += ","
            body += _path_entries(output_dir)
        return prefix + body.rstrip("\n") + suffix

    if _PATHS_RE.search(content):
        content = _PATHS_RE.sub(_patch_paths, content, count=1)
    elif _COMPILER_OPTIONS_RE.search(content):
        content = _COMPILER_OPTIONS_RE.sub(
            lambda m: m.group(1) + '\n    "paths": {' + _path_entries(output_dir) + "\n    },",
            content,
            count=1,
        )

    def _patch_include(match: re.Match[str]) -> str:
        prefix, body, suffix = match.group(1), match.group(2).strip(), match.group(3)
        elements = [item.strip() for item in body.split(",") if item.strip()] if body else []
        for required in _include_entries(output_dir):
            if required not in elements:
                elements.append(required)
        return prefix + "\n    " + ",\n    ".join(elements) + "\n  " + suffix.lstrip()

    if _INCLUDE_RE.search(content):
        content = _INCLUDE_RE.sub(_patch_include, content, count=1)
    else:
        stripped = content.rstrip(" \n\r\t")
        if stripped.endswith("}"):
            entries = ",\n    ".join(_include_entries(output_dir))
            head = stripped[:-1].rstrip()
            separator = "" if head.endswith("{") else ","
            content = head + separator + '\n  "include": [\n    ' + entries + "\n  ]\n}\n"

    return content.replace("}\n,", "},")


def update_tsconfig(root: Path, output_dir: str = "restate.gen") -> bool:
    """Patch ``root/tsconfig.json`` in place; return True when the file changed."""
    logger = get_logger("tsconfig")
    path = root / "tsconfig.json"
    original = path.read_text(encoding="utf-8")
    patched = patch_tsconfig(original, output_dir)
    if patched == original:
        logger.debug("tsconfig.json already up to date")
        return False
    write_atomic(path, patched)
    logger.info("Updated %s with ~restate paths and include globs", path)
    return True


__all__ = ["is_patched", "patch_tsconfig", "update_tsconfig"]
