"""Presence check and one-time install of the SDK packages generated code imports."""

from __future__ import annotations

import json
import subprocess
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .config import DEFAULT_REQUIRED_PACKAGES
from .logging import get_logger

Runner = Callable[..., str]

_INSTALL_VERBS = {
    "yarn": "add",
    "pnpm": "add",
    "npm": "install",
}


class DependencyError(RuntimeError):
    """Raised when required packages are missing and cannot be installed."""


def detect_package_manager(root: Path) -> str:
    """Return ``yarn``, ``pnpm`` or ``npm`` based on the lock file present in root."""
    if (root / "yarn.lock").exists():
        return "yarn"
    if (root / "pnpm-lock.yaml").exists():
        return "pnpm"
    return "npm"


class DependencyChecker:
    """Tracks whether the required packages are installed in the project.

    The install runs at most once at a time: the first caller performs it
    while concurrent callers wait for its outcome instead of starting a
    second package-manager process.
    """

    def __init__(
        self,
        root: Path,
        *,
        required: Sequence[str] = DEFAULT_REQUIRED_PACKAGES,
        package_manager: str | None = None,
        auto_install: bool = True,
        timeout: float | None = None,
        runner: Runner | None = None,
    ) -> None:
        self.root = root
        self.required = list(required)
        self.package_manager = package_manager or detect_package_manager(root)
        self.auto_install = auto_install
        self.timeout = timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("dependencies")
        self._lock = threading.Lock()
        self._installed = False
        self._in_flight: Optional[threading.Event] = None

    @property
    def installed(self) -> bool:
        with self._lock:
            return self._installed

    def missing_packages(self) -> List[str]:
        """Return required packages absent from package.json (deps or devDeps)."""
        pkg_path = self.root / "package.json"
        try:
            data = json.loads(pkg_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise DependencyError(f"package.json not found in {self.root}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise DependencyError(f"failed to read {pkg_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise DependencyError(f"{pkg_path} must contain a JSON object")

        declared = set()
        for key in ("dependencies", "devDependencies"):
            section = data.get(key)
            if isinstance(section, dict):
                declared.update(section)
        return [name for name in self.required if name not in declared]

    def probe(self) -> bool:
        """Record whether the packages are already present, without installing."""
        try:
            missing = self.missing_packages()
        except DependencyError as exc:
            self.logger.warning("Could not check required packages: %s", exc)
            return False
        with self._lock:
            self._installed = not missing
        if missing:
            self.logger.info("Required packages not yet installed: %s", ", ".join(missing))
        return not missing

    def ensure_installed(self) -> None:
        """Install missing packages once; raise :class:`DependencyError` on failure."""
        with self._lock:
            if self._installed:
                return
            in_flight = self._in_flight
            leader = in_flight is None
            if leader:
                in_flight = threading.Event()
                self._in_flight = in_flight

        if not leader:
            in_flight.wait(self.timeout)
            with self._lock:
                if self._installed:
                    return
            raise DependencyError("concurrent dependency install did not succeed")

        try:
            self._check_and_install()
            with self._lock:
                self._installed = True
        finally:
            with self._lock:
                self._in_flight = None
            in_flight.set()

    def _check_and_install(self) -> None:
        missing = self.missing_packages()
        if not missing:
            return
        if not self.auto_install:
            raise DependencyError(
                f"missing required packages and auto-install is disabled: {', '.join(missing)}"
            )
        verb = _INSTALL_VERBS.get(self.package_manager)
        if verb is None:
            raise DependencyError(f"unsupported package manager: {self.package_manager}")

        self.logger.info(
            "Installing missing dependencies with %s: %s", self.package_manager, ", ".join(missing)
        )
        args = [self.package_manager, verb, *missing]
        try:
            output = self._runner(args, cwd=self.root, timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise DependencyError(f"{self.package_manager} {verb} timed out after {exc.timeout}s") from exc
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or exc.stdout or "").strip()
            raise DependencyError(
                f"{self.package_manager} {verb} exited with status {exc.returncode}: {detail}"
            ) from exc
        except OSError as exc:
            raise DependencyError(f"failed to run {self.package_manager}: {exc}") from exc
        if output:
            self.logger.debug("%s output:\n%s", self.package_manager, output.rstrip())

        still_missing = self.missing_packages()
        if still_missing:
            raise DependencyError(
                f"packages still missing after install: {', '.join(still_missing)}"
            )
        self.logger.info("Required packages installed successfully")

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


__all__ = ["DependencyChecker", "DependencyError", "detect_package_manager"]
