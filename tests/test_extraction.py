"""Tests for restategen.extraction."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from restategen.extraction import ExtractionError, Extractor, parse_manifest
from restategen.models import HandlerEntry


def test_extract_invokes_command_with_directory(tmp_path: Path) -> None:
    seen = {}

    def runner(args, *, cwd, timeout=None):
        seen.update(args=args, cwd=cwd, timeout=timeout)
        return json.dumps({"serviceName": "UserManager", "handlers": []})

    extractor = Extractor(["node", "extract.js"], cwd=tmp_path, timeout=5, runner=runner)
    manifest = extractor.extract(tmp_path / "users")

    assert seen == {
        "args": ["node", "extract.js", str(tmp_path / "users")],
        "cwd": tmp_path,
        "timeout": 5,
    }
    assert manifest.service_name == "UserManager"
    assert manifest.handlers == []


def test_parse_manifest_reads_handlers() -> None:
    manifest = parse_manifest(
        json.dumps(
            {
                "serviceName": " Shop ",
                "handlers": [
                    {"exportName": "checkout", "source": "./checkout", "type": "workflow"},
                    {"exportName": "add", "sourceFile": "./cart", "category": "virtualObject"},
                ],
            }
        )
    )

    assert manifest.service_name == "Shop"
    assert manifest.handlers == [
        HandlerEntry("checkout", "./checkout", "workflow"),
        HandlerEntry("add", "./cart", "virtualObject"),
    ]


def test_parse_manifest_skips_unknown_types() -> None:
    manifest = parse_manifest(
        json.dumps(
            {
                "serviceName": "Shop",
                "handlers": [{"exportName": "cron", "source": "./cron", "type": "cronJob"}],
            }
        )
    )

    assert manifest.handlers == []


def test_parse_manifest_defaults_missing_service_name() -> None:
    assert parse_manifest("{}").service_name == ""


@pytest.mark.parametrize(
    "output, message",
    [
        ("not json", "failed to parse manifest JSON"),
        ("[]", "must be a JSON object"),
        ('{"handlers": {}}', "must be a list"),
        ('{"handlers": [{"source": "./x", "type": "service"}]}', "missing exportName"),
        ('{"handlers": ["x"]}', "must be an object"),
    ],
)
def test_parse_manifest_rejects_malformed_output(output: str, message: str) -> None:
    with pytest.raises(ExtractionError, match=message):
        parse_manifest(output)


@pytest.mark.parametrize(
    "error, message",
    [
        (subprocess.CalledProcessError(2, ["node"], output="", stderr="boom"), "status 2"),
        (subprocess.TimeoutExpired(["node"], 3), "timed out after 3s"),
        (FileNotFoundError("node"), "failed to run extractor 'node'"),
    ],
)
def test_extract_wraps_runner_failures(tmp_path: Path, error: Exception, message: str) -> None:
    def runner(args, *, cwd, timeout=None):
        raise error

    extractor = Extractor(["node", "extract.js"], cwd=tmp_path, runner=runner)

    with pytest.raises(ExtractionError, match=message):
        extractor.extract(tmp_path)


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Extractor([], cwd=tmp_path)


def test_verify_reports_missing_script(tmp_path: Path) -> None:
    extractor = Extractor(["node", ".restategen/extractHandlers.js"], cwd=tmp_path)

    with pytest.raises(ExtractionError, match="extractor script not found"):
        extractor.verify()


def test_verify_accepts_existing_script_and_ignores_flags(tmp_path: Path) -> None:
    (tmp_path / "tools").mkdir()
    (tmp_path / "tools" / "extract.ts").write_text("", encoding="utf-8")
    extractor = Extractor(["npx", "--yes", "tsx", "tools/extract.ts"], cwd=tmp_path)

    extractor.verify()
