"""Boundary to the external handler extraction collaborator."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, Callable, Iterable, List, Sequence

from .logging import get_logger
from .models import CATEGORIES, HandlerEntry, Manifest

Runner = Callable[..., str]

_SCRIPT_SUFFIXES = {".js", ".mjs", ".cjs", ".ts"}


class ExtractionError(RuntimeError):
    """Raised when the collaborator fails or returns an unusable manifest."""


class Extractor:
    """Runs the extraction command for a unit directory and parses its manifest.

    The command is invoked as ``<command...> <directory>`` from the project
    root and must print a JSON document shaped like::

        {"serviceName": "UserManager",
         "handlers": [{"exportName": "signupUser", "source": "./user", "type": "service"}]}
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        runner: Runner | None = None,
    ) -> None:
        if not command:
            raise ValueError("extractor command must not be empty")
        self.command = list(command)
        self.cwd = cwd
        self.timeout = timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("extraction")

    def verify(self) -> None:
        """Fail fast when a script named in the command does not exist.

        The extractor script belongs to the host project and is not bundled.
        """
        for arg in self.command[1:]:
            if arg.startswith("-") or Path(arg).suffix not in _SCRIPT_SUFFIXES:
                continue
            script = Path(arg)
            if not script.is_absolute():
                script = self.cwd / script
            if not script.is_file():
                raise ExtractionError(
                    f"extractor script not found: {script}. Add the handler extractor "
                    "to the project or set extractor.command in .restategen.yml"
                )

    def extract(self, directory: Path) -> Manifest:
        args = [*self.command, str(directory)]
        try:
            output = self._runner(args, cwd=self.cwd, timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise ExtractionError(
                f"extractor timed out after {exc.timeout}s for {directory}"
            ) from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip()
            raise ExtractionError(
                f"extractor exited with status {exc.returncode} for {directory}: {detail}"
            ) from exc
        except OSError as exc:
            raise ExtractionError(f"failed to run extractor {self.command[0]!r}: {exc}") from exc
        return parse_manifest(output)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        timeout: float | None = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def parse_manifest(output: str) -> Manifest:
    """Parse the collaborator's JSON output into a :class:`Manifest`."""
    try:
        payload = json.loads(output)
    except json.JSONDecodeError as exc:
        snippet = output.strip()[:200]
        raise ExtractionError(f"failed to parse manifest JSON: {exc}; output: {snippet}") from exc
    if not isinstance(payload, dict):
        raise ExtractionError("manifest must be a JSON object")

    service_name = _first_str(payload, "serviceName", "declaredName") or ""
    raw_handlers = payload.get("handlers") or []
    if not isinstance(raw_handlers, list):
        raise ExtractionError("manifest 'handlers' must be a list")

    handlers: List[HandlerEntry] = []
    for raw in raw_handlers:
        entry = _handler_from_dict(raw)
        if entry is not None:
            handlers.append(entry)
    return Manifest(service_name=service_name.strip(), handlers=handlers)


def _handler_from_dict(raw: Any) -> HandlerEntry | None:
    if not isinstance(raw, dict):
        raise ExtractionError(f"handler entry must be an object, got {raw!r}")
    export_name = _first_str(raw, "exportName")
    source = _first_str(raw, "source", "sourceFile")
    category = _first_str(raw, "type", "category")
    if not export_name or not source:
        raise ExtractionError(f"handler entry is missing exportName or source: {raw!r}")
    if category not in CATEGORIES:
        # Unknown kinds are not generated; the collaborator may learn new ones first.
        get_logger("extraction").debug(
            "Ignoring handler %s with unsupported type %r", export_name, category
        )
        return None
    return HandlerEntry(export_name=export_name, source=source, category=category)


def _first_str(payload: dict, *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str):
            return value
    return None


__all__ = ["ExtractionError", "Extractor", "parse_manifest"]
