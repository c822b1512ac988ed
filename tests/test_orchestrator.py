"""Tests for restategen.orchestrator."""

from __future__ import annotations

import time

import pytest

from restategen.dependencies import DependencyChecker
from restategen.extraction import ExtractionError, Extractor
from restategen.orchestrator import Orchestrator
from restategen.scheduler import DebounceScheduler
from restategen.watcher import WatcherError
from tests._fixtures.project_builder import FakeObserver, FakeTimerFactory


def _no_install(args, *, cwd, timeout=None):
    raise AssertionError(f"unexpected install: {args}")


def _build(project, extractor, registry, observer: FakeObserver, **overrides) -> Orchestrator:
    project.package_json()
    config = project.config(**overrides)
    return Orchestrator(
        config,
        extractor=extractor,
        dependencies=DependencyChecker(project.root, runner=_no_install),
        registry=registry,
        scheduler=DebounceScheduler(timer_factory=FakeTimerFactory()),
        observer_factory=lambda: observer,
    )


@pytest.fixture
def observer() -> FakeObserver:
    return FakeObserver()


@pytest.fixture
def seeded(project, manifests):
    users = project.unit("user-manager", "UserManager")
    manifests.set(users, "UserManager", [("signupUser", "./user", "service")])
    signup = project.unit("signup", "SignupWorkflow")
    manifests.set(signup, "SignupWorkflow", [("run", "./flow", "workflow")])
    email = project.unit("email", "Email")
    manifests.set(email, "Email", [])
    project.write(
        {
            "email/email.restate.ts": "// stale\n",
            "lib/orphan.restate.ts": "// stale\n",
            "node_modules/pkg/encore.service.ts": "export default {};\n",
            "tsconfig.json": '{\n  "compilerOptions": {\n    "strict": true\n  }\n}\n',
        }
    )
    return {"users": users, "signup": signup, "email": email}


def test_start_generates_sweeps_and_aggregates(project, manifests, extractor, registry, observer, seeded) -> None:
    orchestrator = _build(project, extractor, registry, observer)

    orchestrator.start()

    assert observer.started is True
    assert (seeded["users"] / "usermanager.restate.ts").exists()
    assert (seeded["signup"] / "signupworkflow.restate.ts").exists()
    assert not (seeded["email"] / "email.restate.ts").exists()
    assert not project.path("lib/orphan.restate.ts").exists()
    assert set(registry.snapshot()) == {seeded["users"], seeded["signup"]}

    out = project.path("restate.gen")
    assert "UserManagerService as UserManager" in (out / "services/index.ts").read_text()
    assert "SignupWorkflow as Signup" in (out / "workflows/index.ts").read_text()
    assert (out / "objects/index.ts").read_text() == "export default {};\n"
    assert (out / "index.ts").exists()

    assert observer.scheduled == [(str(project.root), True)]
    assert manifests.calls_for(project.path("node_modules/pkg")) == 0

    tsconfig = project.path("tsconfig.json").read_text()
    assert '"~restate": ["./restate.gen/index.ts"]' in tsconfig
    assert '"./restate.gen/**/*.ts"' in tsconfig


def test_start_skips_tsconfig_when_disabled(project, extractor, registry, observer, seeded) -> None:
    original = project.path("tsconfig.json").read_text()
    orchestrator = _build(project, extractor, registry, observer, patch_tsconfig=False)

    orchestrator.start()

    assert project.path("tsconfig.json").read_text() == original


def test_sweep_keeps_adapter_when_extraction_fails(project, manifests, extractor, registry, observer) -> None:
    unit = project.unit("flaky", "Flaky")
    project.write({"flaky/flaky.restate.ts": "// previous\n"})
    manifests.fail(unit)
    orchestrator = _build(project, extractor, registry, observer)

    removed = orchestrator.sweep_dangling()

    assert removed == []
    assert (unit / "flaky.restate.ts").exists()


def test_sweep_removes_adapter_from_previous_name(project, manifests, extractor, registry, observer) -> None:
    unit = project.unit("billing", "Payments")
    manifests.set(unit, "Payments", [("charge", "./charge", "service")])
    project.write({"billing/billing.restate.ts": "// old name\n"})
    orchestrator = _build(project, extractor, registry, observer)

    removed = orchestrator.sweep_dangling()

    assert removed == [unit / "billing.restate.ts"]


def test_regenerate_updates_index_after_handler_removal(project, manifests, extractor, registry, observer) -> None:
    unit = project.unit("signup", "SignupWorkflow")
    manifests.set(unit, "SignupWorkflow", [("run", "./flow", "workflow")])
    orchestrator = _build(project, extractor, registry, observer)
    orchestrator.regenerate(unit)
    workflows = project.path("restate.gen/workflows/index.ts")
    assert "SignupWorkflow as Signup" in workflows.read_text()

    manifests.set(unit, "SignupWorkflow", [])
    orchestrator.regenerate(unit)

    assert workflows.read_text() == "export default {};\n"
    assert not (unit / "signupworkflow.restate.ts").exists()


def test_run_returns_after_stop_and_shuts_down(project, extractor, registry, observer) -> None:
    orchestrator = _build(project, extractor, registry, observer)
    orchestrator.stop()

    orchestrator.run(poll_interval=0.01)

    assert observer.stopped is True
    assert orchestrator.observer is None


def test_run_raises_when_observer_dies(project, extractor, registry) -> None:
    observer = FakeObserver(alive=False)
    orchestrator = _build(project, extractor, registry, observer)

    with pytest.raises(WatcherError, match="stopped unexpectedly"):
        orchestrator.run(poll_interval=0.01)
    assert observer.stopped is True


def test_start_wraps_observer_start_failure(project, extractor, registry) -> None:
    observer = FakeObserver(fail_start=True)
    orchestrator = _build(project, extractor, registry, observer)

    with pytest.raises(WatcherError, match="inotify watch limit"):
        orchestrator.start()


def test_missing_packages_are_installed_once_on_first_unit(project, manifests, extractor, registry, observer) -> None:
    project.package_json(packages=[])
    calls = []

    def installer(args, *, cwd, timeout=None):
        calls.append(list(args))
        project.package_json()
        return "added 3 packages"

    config = project.config()
    orchestrator = Orchestrator(
        config,
        extractor=extractor,
        dependencies=DependencyChecker(project.root, runner=installer),
        registry=registry,
        scheduler=DebounceScheduler(timer_factory=FakeTimerFactory()),
        observer_factory=lambda: observer,
    )
    for name in ("one", "two"):
        unit = project.unit(name, name.title())
        manifests.set(unit, name.title(), [("run", "./run", "service")])

    orchestrator.start()

    assert calls == [
        [
            "npm",
            "install",
            "@restatedev/restate-sdk",
            "@restatedev/restate-sdk-clients",
            "@restatedev/restate-sdk-core",
        ]
    ]
    assert len(registry) == 2


def test_start_fails_fast_when_extractor_script_is_missing(project, manifests, registry, observer) -> None:
    extractor = Extractor(
        ["node", ".restategen/extractHandlers.js"], cwd=project.root, runner=manifests
    )
    orchestrator = _build(project, extractor, registry, observer)

    with pytest.raises(ExtractionError, match="extractor script not found"):
        orchestrator.start()
    assert observer.started is False
    assert manifests.calls == []


def test_real_observer_watches_large_trees(project, manifests, extractor, registry) -> None:
    project.write({f"src/d{i:03d}/index.ts": "export {};\n" for i in range(300)})
    project.package_json()
    orchestrator = Orchestrator(
        project.config(debounce_seconds=0.05, patch_tsconfig=False),
        extractor=extractor,
        dependencies=DependencyChecker(project.root, runner=_no_install),
        registry=registry,
    )
    unit = project.path("src/d250")
    manifests.set(unit, "Deep", [("run", "./index", "service")])
    adapter = unit / "deep.restate.ts"

    try:
        orchestrator.start()
        project.unit("src/d250", "Deep")
        deadline = time.monotonic() + 10
        while registry.get(unit) is None and time.monotonic() < deadline:
            time.sleep(0.05)
    finally:
        orchestrator.shutdown()

    assert registry.get(unit) is not None
    assert adapter.exists()
