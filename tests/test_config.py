"""Tests for restategen.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from restategen.config import DEFAULT_REQUIRED_PACKAGES, ConfigError, RestateGenConfig, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, RestateGenConfig)
    assert config.root == tmp_path.resolve()
    assert config.verbose is False
    assert config.debounce_seconds == 0.1
    assert config.dedup_window_seconds == 0.1
    assert config.marker_file == "encore.service.ts"
    assert config.generated_suffix == ".restate.ts"
    assert config.output_path == tmp_path.resolve() / "restate.gen"
    assert config.extractor.command == ["node", ".restategen/extractHandlers.js"]
    assert config.dependencies.required == list(DEFAULT_REQUIRED_PACKAGES)
    assert config.patch_tsconfig is True


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    (tmp_path / ".restategen.yml").write_text(
        """
verbose: true
log_file: logs/restategen.log
debounce_seconds: 0.25
output_dir: gen
exclude_dirs: [vendor, "*.tmp"]
extractor:
  command: [npx, tsx, tools/extract.ts]
  timeout_seconds: 10
dependencies:
  auto_install: false
  required: ["@restatedev/restate-sdk"]
patch_tsconfig: false
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path, environ={})

    assert config.verbose is True
    assert config.log_file == tmp_path.resolve() / "logs/restategen.log"
    assert config.debounce_seconds == 0.25
    assert config.output_dir == "gen"
    assert config.exclude_dirs == ["vendor", "*.tmp"]
    assert config.extractor.command == ["npx", "tsx", "tools/extract.ts"]
    assert config.extractor.timeout_seconds == 10.0
    assert config.dependencies.auto_install is False
    assert config.dependencies.required == ["@restatedev/restate-sdk"]
    assert config.dependencies.timeout_seconds == 300.0
    assert config.patch_tsconfig is False


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / ".restategen.yml").write_text("debounce_seconds: 0.3\n", encoding="utf-8")

    config = load_config(
        tmp_path,
        environ={
            "RESTATEGEN_DEBOUNCE_SECONDS": "0.5",
            "RESTATEGEN_EXTRACTOR_TIMEOUT": "7",
            "RESTATEGEN_VERBOSE": "yes",
        },
    )

    assert config.debounce_seconds == 0.5
    assert config.extractor.timeout_seconds == 7.0
    assert config.verbose is True


@pytest.mark.parametrize(
    "content, message",
    [
        ("verbose: [unclosed\n", "Failed to parse"),
        ("- just\n- a list\n", "must contain a mapping"),
        ("debounce_seconds: -1\n", "must be positive"),
        ("debounce_seconds: fast\n", "must be a number"),
        ("extractor:\n  timeout_seconds: true\n", "must be a number"),
    ],
)
def test_invalid_config_raises(tmp_path: Path, content: str, message: str) -> None:
    (tmp_path / ".restategen.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match=message):
        load_config(tmp_path, environ={})


def test_empty_config_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".restategen.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path, environ={}).debounce_seconds == 0.1
