from __future__ import annotations

from pathlib import Path

import pytest

from restategen.extraction import Extractor
from restategen.registry import DerivedStateRegistry
from tests._fixtures.project_builder import ManifestRunner, ProjectBuilder


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Provide a reusable project builder rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def manifests() -> ManifestRunner:
    return ManifestRunner()


@pytest.fixture
def extractor(project: ProjectBuilder, manifests: ManifestRunner) -> Extractor:
    project.write({"extract.js": "// stands in for the node extractor\n"})
    return Extractor(["node", "extract.js"], cwd=project.root, runner=manifests)


@pytest.fixture
def registry() -> DerivedStateRegistry:
    return DerivedStateRegistry()
