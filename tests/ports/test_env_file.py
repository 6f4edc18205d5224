"""Tests for .env port planning and byte-preserving rewrites."""

from datetime import datetime

import pytest

from deck.ports.env_file import (
    BACKUP_DIR_NAME,
    PortChange,
    apply_port_changes,
    backup_file,
    plan_port_changes,
    port_mappings,
    read_ports,
    update_project_name,
)
from tests.conftest import FakePortEngine

ENV_CRLF = (
    b"# Deck environment\r\n"
    b"DEV_PORT=5000\r\n"
    b"WEB_PORT = \"8080\"  # public\r\n"
    b"# WEB_PORT=8080\r\n"
    b"NODE_VERSION=20\r\n"
)

FIXED = datetime(2026, 10, 17, 14, 30, 5, 123000)


@pytest.fixture
def env_path(tmp_path):
    path = tmp_path / ".env"
    path.write_bytes(ENV_CRLF)
    return path


class TestReadPorts:
    def test_reads_declared_ports(self, env_path):
        assert read_ports(env_path) == {"DEV_PORT": 5000, "WEB_PORT": 8080}

    def test_skips_non_numeric(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("DEV_PORT=auto\nDEBUG_PORT=9229\n")
        assert read_ports(path) == {"DEBUG_PORT": 9229}

    def test_port_mappings_use_conventional_container_ports(self):
        mappings = port_mappings({"WEB_PORT": 18080})
        assert mappings[0].container_port == 8080
        assert mappings[0].host_port == 18080


class TestPlanPortChanges:
    @pytest.mark.asyncio
    async def test_no_conflicts(self, env_path):
        plan = await plan_port_changes(env_path, FakePortEngine())
        assert not plan.has_conflicts
        assert plan.changes == []

    @pytest.mark.asyncio
    async def test_planning_does_not_write(self, env_path):
        plan = await plan_port_changes(env_path, FakePortEngine(busy={8080}))

        assert plan.has_conflicts
        assert plan.changes == [PortChange("WEB_PORT", 8080, 8081)]
        assert env_path.read_bytes() == ENV_CRLF

    @pytest.mark.asyncio
    async def test_alternatives_avoid_declared_and_each_other(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("DEV_PORT=5000\nDEBUG_PORT=5001\nWEB_PORT=5002\n")
        engine = FakePortEngine(busy={5000, 5002})

        plan = await plan_port_changes(path, engine)

        new_ports = [change.new_port for change in plan.changes]
        assert len(set(new_ports)) == len(new_ports)
        assert not set(new_ports) & {5000, 5001, 5002}

    @pytest.mark.asyncio
    async def test_unresolvable(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("WEB_PORT=8080\n")
        engine = FakePortEngine(busy=set(range(8080, 8181)))

        plan = await plan_port_changes(path, engine)

        assert plan.unresolved == [8080]
        assert not plan.is_resolvable


class TestApplyPortChanges:
    def test_only_changed_lines_differ(self, env_path):
        backup = apply_port_changes(env_path, [PortChange("WEB_PORT", 8080, 8081)], clock=lambda: FIXED)

        expected = ENV_CRLF.replace(b'WEB_PORT = "8080"  # public', b'WEB_PORT = "8081"  # public')
        assert env_path.read_bytes() == expected
        # Commented-out line untouched
        assert b"# WEB_PORT=8080\r\n" in env_path.read_bytes()
        assert backup.read_bytes() == ENV_CRLF

    def test_backup_name_format(self, env_path):
        backup = apply_port_changes(env_path, [PortChange("DEV_PORT", 5000, 5001)], clock=lambda: FIXED)
        assert backup.parent == env_path.parent / BACKUP_DIR_NAME
        assert backup.name == ".env.20261017_143005_123.bak"

    def test_nothing_to_change(self, env_path):
        assert apply_port_changes(env_path, []) is None
        assert not (env_path.parent / BACKUP_DIR_NAME).exists()

    def test_backup_collision_gets_counter(self, env_path):
        first = backup_file(env_path, FIXED)
        second = backup_file(env_path, FIXED)
        assert first != second
        assert second.name == ".env.20261017_143005_123_01.bak"


class TestUpdateProjectName:
    def test_replaces_existing_value(self, tmp_path):
        path = tmp_path / ".env"
        path.write_bytes(b"PROJECT_NAME=old\r\nWEB_PORT=8080\r\n")

        update_project_name(path, "new-name")

        assert path.read_bytes() == b"PROJECT_NAME=new-name\r\nWEB_PORT=8080\r\n"

    def test_appends_when_missing(self, tmp_path):
        path = tmp_path / ".env"
        path.write_bytes(b"WEB_PORT=8080")

        update_project_name(path, "app")

        assert path.read_bytes() == b"WEB_PORT=8080\nPROJECT_NAME=app\n"
