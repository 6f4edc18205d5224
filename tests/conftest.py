"""
Pytest configuration and shared test utilities.

Provides a throwaway project directory with helpers to populate the
``.deck`` layers, plus fakes for the interactive UI, the port engine and the
container engine so launch tests never touch real sockets or subprocesses.
"""

from pathlib import Path

import pytest

from deck.engine.handles import ContainerEngine
from deck.models import (
    ContainerInfo,
    ContainerStatus,
    EngineType,
    PortConflictInfo,
    Protocol,
    SyncResult,
)
from deck.ports.conflict import PortConflictEngine
from deck.resources.layout import DeckLayout
from deck.utils.config import reset_config_cache

DEFAULT_ENV = "DEV_PORT=5000\nWEB_PORT=8080\nPROJECT_NAME=demo\n"
DEFAULT_COMPOSE = (
    "services:\n"
    "  app-dev:\n"
    "    container_name: ${PROJECT_NAME:-demo}-dev\n"
    "    hostname: ${PROJECT_NAME:-demo}-dev\n"
    "    ports:\n"
    '      - "${WEB_PORT}:8080"\n'
)


# ===================================================================
# Project factory
# ===================================================================


def make_resource(
    root: Path,
    name: str,
    env: str = DEFAULT_ENV,
    compose: str = DEFAULT_COMPOSE,
    dockerfile: str | None = "FROM alpine\n",
) -> Path:
    """Create a resource directory with the three required files.

    Pass ``None`` (or omit via the arguments) to leave a file out.
    """
    directory = root / name
    directory.mkdir(parents=True)
    if env is not None:
        (directory / ".env").write_bytes(env.encode("utf-8"))
    if compose is not None:
        (directory / "compose.yaml").write_text(compose, encoding="utf-8")
    if dockerfile is not None:
        (directory / "Dockerfile").write_text(dockerfile, encoding="utf-8")
    return directory


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep the config cache and DECK_* variables from leaking between tests."""
    monkeypatch.delenv("DECK_PROJECT", raising=False)
    monkeypatch.delenv("DECK_CONFIG", raising=False)
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def project(tmp_path) -> DeckLayout:
    """Empty project with the ``.deck`` skeleton in place."""
    layout = DeckLayout(tmp_path / "project")
    layout.project_root.mkdir()
    layout.ensure_skeleton()
    return layout


# ===================================================================
# Fakes
# ===================================================================


class FakeUI:
    """Scripted InteractiveUI: answers are consumed in order."""

    def __init__(self, selections=(), confirmations=()):
        self.selections = list(selections)
        self.confirmations = list(confirmations)
        self.select_calls: list[tuple[str, list]] = []
        self.confirm_calls: list[str] = []
        self.shown_plans = []

    async def select(self, message, options):
        self.select_calls.append((message, options))
        if not self.selections:
            return None
        answer = self.selections.pop(0)
        return answer(options) if callable(answer) else answer

    async def confirm(self, message, default=False):
        self.confirm_calls.append(message)
        return self.confirmations.pop(0) if self.confirmations else default

    def show_port_plan(self, plan):
        self.shown_plans.append(plan)


def pick(name: str):
    """Selection answer choosing the menu entry whose resource is ``name``."""

    def chooser(options):
        for option in options:
            resource = getattr(option.value, "resource", None)
            if resource is not None and resource.name == name and not option.disabled:
                return option.value
        raise AssertionError(f"No enabled option for {name}")

    return chooser


class FakePortEngine(PortConflictEngine):
    """Port engine over an in-memory set of busy ports."""

    def __init__(self, busy=()):
        super().__init__()
        self.busy = set(busy)

    def _probe(self, port, protocol):
        return port not in self.busy

    async def detect_conflict(self, port, protocol=Protocol.TCP):
        if port not in self.busy:
            return PortConflictInfo(port=port, protocol=protocol)
        return PortConflictInfo(port=port, protocol=protocol, has_conflict=True)


class FakeEngine(ContainerEngine):
    """In-memory container engine recording every lifecycle call."""

    engine_type = EngineType.PODMAN

    def __init__(self, containers=None):
        super().__init__()
        self.containers: dict[str, ContainerInfo] = dict(containers or {})
        self.calls: list[tuple] = []
        self.composed_dirs: list[str] = []

    def compose_command(self):
        return ["fake-compose"]

    def parse_ps_output(self, output):
        return []

    async def inspect(self, name):
        self.calls.append(("inspect", name))
        if name not in self.containers and self.composed_dirs:
            # compose up created it
            self.containers[name] = ContainerInfo(id="c2", name=name, status=ContainerStatus.RUNNING)
        return self.containers.get(name)

    async def start(self, name):
        self.calls.append(("start", name))
        self.containers[name] = ContainerInfo(id="c1", name=name, status=ContainerStatus.RUNNING)

    async def stop(self, name, force=False):
        self.calls.append(("stop", name, force))
        self.containers[name] = ContainerInfo(id="c1", name=name, status=ContainerStatus.EXITED)

    async def restart(self, name):
        self.calls.append(("restart", name))

    async def compose_up(self, directory, build=True, project_name=None):
        self.calls.append(("compose_up", Path(directory).name, project_name))
        self.composed_dirs.append(Path(directory).name)


class FakeTemplateSync:
    def __init__(self, success=False, synced_count=0):
        self.success = success
        self.synced_count = synced_count
        self.calls = 0

    async def sync(self, force=False):
        self.calls += 1
        return SyncResult(success=self.success, synced_count=self.synced_count)


@pytest.fixture
def fake_ui():
    return FakeUI()


@pytest.fixture
def fake_ports():
    return FakePortEngine()


@pytest.fixture
def fake_engine():
    return FakeEngine()
