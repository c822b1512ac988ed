"""Configuration loading for restategen (.restategen.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAME = ".restategen.yml"

DEFAULT_REQUIRED_PACKAGES = (
    "@restatedev/restate-sdk",
    "@restatedev/restate-sdk-clients",
    "@restatedev/restate-sdk-core",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ExtractorConfig:
    """How to invoke the handler extraction collaborator."""

    command: List[str] = field(
        default_factory=lambda: ["node", ".restategen/extractHandlers.js"]
    )
    timeout_seconds: float = 60.0


@dataclass
class DependencyConfig:
    """Required SDK packages and install behaviour."""

    auto_install: bool = True
    required: List[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_PACKAGES))
    timeout_seconds: float = 300.0


@dataclass
class RestateGenConfig:
    """Represents the settings defined in .restategen.yml."""

    root: Path
    verbose: bool = False
    log_file: Optional[Path] = None
    debounce_seconds: float = 0.1
    dedup_window_seconds: float = 0.1
    marker_file: str = "encore.service.ts"
    source_suffix: str = ".ts"
    generated_suffix: str = ".restate.ts"
    output_dir: str = "restate.gen"
    exclude_dirs: List[str] = field(default_factory=list)
    extractor: ExtractorConfig = field(default_factory=ExtractorConfig)
    dependencies: DependencyConfig = field(default_factory=DependencyConfig)
    patch_tsconfig: bool = True

    @property
    def output_path(self) -> Path:
        return self.root / self.output_dir


def load_config(root: Path, environ: Mapping[str, str] | None = None) -> RestateGenConfig:
    """Load configuration for the project rooted at ``root``."""
    root = root.expanduser().resolve()
    env = os.environ if environ is None else environ
    config_file = root / CONFIG_FILENAME

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    config = RestateGenConfig(root=root)

    verbose = _as_bool(data.get("verbose"))
    if verbose is not None:
        config.verbose = verbose
    log_file = _as_str(data.get("log_file"))
    if log_file:
        config.log_file = root / log_file

    config.debounce_seconds = _positive_float(
        data.get("debounce_seconds"), config.debounce_seconds, "debounce_seconds"
    )
    config.dedup_window_seconds = _positive_float(
        data.get("dedup_window_seconds"), config.dedup_window_seconds, "dedup_window_seconds"
    )

    for key in ("marker_file", "source_suffix", "generated_suffix", "output_dir"):
        value = _as_str(data.get(key))
        if value:
            setattr(config, key, value)
    config.exclude_dirs = _as_str_list(data.get("exclude_dirs"))

    extractor_data = _as_dict(data.get("extractor"))
    if extractor_data:
        command = _as_str_list(extractor_data.get("command"))
        if command:
            config.extractor.command = command
        config.extractor.timeout_seconds = _positive_float(
            extractor_data.get("timeout_seconds"),
            config.extractor.timeout_seconds,
            "extractor.timeout_seconds",
        )

    deps_data = _as_dict(data.get("dependencies"))
    if deps_data:
        auto_install = _as_bool(deps_data.get("auto_install"))
        if auto_install is not None:
            config.dependencies.auto_install = auto_install
        required = _as_str_list(deps_data.get("required"))
        if required:
            config.dependencies.required = required
        config.dependencies.timeout_seconds = _positive_float(
            deps_data.get("timeout_seconds"),
            config.dependencies.timeout_seconds,
            "dependencies.timeout_seconds",
        )

    patch_tsconfig = _as_bool(data.get("patch_tsconfig"))
    if patch_tsconfig is not None:
        config.patch_tsconfig = patch_tsconfig

    _apply_env_overrides(config, env)
    return config


def _apply_env_overrides(config: RestateGenConfig, env: Mapping[str, str]) -> None:
    debounce = env.get("RESTATEGEN_DEBOUNCE_SECONDS")
    if debounce:
        config.debounce_seconds = _positive_float(
            debounce, config.debounce_seconds, "RESTATEGEN_DEBOUNCE_SECONDS"
        )
    timeout = env.get("RESTATEGEN_EXTRACTOR_TIMEOUT")
    if timeout:
        config.extractor.timeout_seconds = _positive_float(
            timeout, config.extractor.timeout_seconds, "RESTATEGEN_EXTRACTOR_TIMEOUT"
        )
    verbose = _as_bool(env.get("RESTATEGEN_VERBOSE"))
    if verbose is not None:
        config.verbose = verbose


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _positive_float(value: Any, default: float, label: str) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{label} must be a number, got {value!r}") from exc
    if number <= 0:
        raise ConfigError(f"{label} must be positive, got {number}")
    return number


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "DependencyConfig",
    "ExtractorConfig",
    "RestateGenConfig",
    "load_config",
]
