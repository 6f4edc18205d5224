"""Tests for the port conflict engine."""

import socket
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import psutil
import pytest

from deck.models import (
    ConflictSeverity,
    PortConflictInfo,
    ProcessInfo,
    ResolutionType,
    RiskLevel,
)
from deck.ports.conflict import (
    PortConflictEngine,
    guess_service_type,
    severity_for,
    stop_command_for,
    validate_port,
)
from deck.ports.process_lookup import PortOwner
from tests.conftest import FakePortEngine


@pytest.fixture
def occupied_port():
    """A TCP port held by a listening socket for the duration of the test."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("", 0))
    sock.listen(1)
    try:
        yield sock.getsockname()[1]
    finally:
        sock.close()


class TestValidatePort:
    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_out_of_range(self, port):
        assert not validate_port(port).is_valid

    def test_privileged(self):
        result = validate_port(80)
        assert result.is_valid and result.is_privileged

    def test_regular(self):
        result = validate_port(8080)
        assert result.is_valid and not result.is_privileged


class TestHelpers:
    def test_guess_from_port_first(self):
        process = ProcessInfo(1, "node")
        assert guess_service_type(8080, process) == "HTTP Alternative"

    def test_guess_from_process_name(self):
        assert guess_service_type(4321, ProcessInfo(9, "nginx: master")) == "Nginx Web Server"
        assert guess_service_type(4321, None) is None

    def test_severity(self):
        assert severity_for(None) is ConflictSeverity.MEDIUM
        assert severity_for(ProcessInfo(4, "System", is_system_process=True)) is ConflictSeverity.CRITICAL
        assert severity_for(ProcessInfo(9, "x", can_be_stopped=False)) is ConflictSeverity.HIGH
        assert severity_for(ProcessInfo(9, "x")) is ConflictSeverity.MEDIUM

    def test_stop_command(self, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        assert stop_command_for(42) == "kill 42"
        monkeypatch.setattr(sys, "platform", "win32")
        assert stop_command_for(42) == "taskkill /PID 42 /F"


class TestAvailability:
    """Real socket probes."""

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_occupied_port_is_unavailable(self, occupied_port):
        assert await PortConflictEngine().check_port(occupied_port) is False

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_released_port_is_available(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("", 0))
        port = sock.getsockname()[1]
        sock.close()
        assert await PortConflictEngine().check_port(port) is True

    @pytest.mark.asyncio
    async def test_invalid_port_raises(self):
        with pytest.raises(ValueError):
            await PortConflictEngine().check_port(70000)

    @pytest.mark.asyncio
    async def test_check_ports_deduplicates(self):
        engine = FakePortEngine(busy={5000})
        assert await engine.check_ports([5000, 8080, 5000]) == {5000: False, 8080: True}

    @pytest.mark.asyncio
    async def test_find_available_port_skips_busy_and_excluded(self):
        engine = FakePortEngine(busy={8081})
        assert await engine.find_available_port(8081, 8090, exclude={8082}) == 8083

    @pytest.mark.asyncio
    async def test_find_available_port_exhausted(self):
        engine = FakePortEngine(busy=set(range(9000, 9011)))
        assert await engine.find_available_port(9000, 9010) is None


class TestDetectConflict:
    @pytest.mark.asyncio
    async def test_free_port_has_no_conflict(self):
        engine = FakePortEngine()
        info = await PortConflictEngine.detect_conflict(engine, 8080)
        assert not info.has_conflict

    @pytest.mark.asyncio
    @patch("deck.ports.conflict.describe_process")
    @patch("deck.ports.conflict.find_port_owner", new_callable=AsyncMock)
    async def test_conflict_describes_owner(self, mock_owner, mock_describe):
        """Owner, severity and service guess come from the lookup helpers."""
        mock_owner.return_value = PortOwner(pid=4242, state="LISTEN")
        mock_describe.return_value = ProcessInfo(4242, "node")
        engine = FakePortEngine(busy={3000})

        info = await PortConflictEngine.detect_conflict(engine, 3000)

        assert info.has_conflict
        assert info.occupying_process.process_id == 4242
        assert info.severity is ConflictSeverity.MEDIUM
        assert info.service_type_guess == "Node.js Dev Server"
        assert info.connection_state == "LISTEN"

    @pytest.mark.asyncio
    @patch("deck.ports.conflict.find_port_owner", new_callable=AsyncMock)
    async def test_unknown_owner(self, mock_owner):
        mock_owner.return_value = PortOwner(pid=None)
        engine = FakePortEngine(busy={4321})

        info = await PortConflictEngine.detect_conflict(engine, 4321)

        assert info.has_conflict
        assert info.occupying_process is None

    @pytest.mark.asyncio
    async def test_detect_conflicts_returns_only_conflicted(self):
        engine = FakePortEngine(busy={8080})
        conflicts = await engine.detect_conflicts([5000, 8080])
        assert [c.port for c in conflicts] == [8080]


class TestSuggestResolutions:
    """Ranking: risk ascending, then priority descending."""

    @pytest.mark.asyncio
    async def test_full_ranking(self):
        engine = FakePortEngine(busy={8080})
        conflict = PortConflictInfo(
            port=8080,
            has_conflict=True,
            occupying_process=ProcessInfo(77, "python"),
            connection_state="TIME_WAIT",
        )

        suggestions = await engine.suggest_resolutions(conflict)

        assert [s.type for s in suggestions] == [
            ResolutionType.USE_ALTERNATIVE_PORT,
            ResolutionType.WAIT_FOR_RELEASE,
            ResolutionType.MODIFY_CONFIGURATION,
            ResolutionType.STOP_PROCESS,
        ]
        assert suggestions[0].alternative_port == 8081
        assert suggestions[0].is_auto_executable
        stop = suggestions[-1]
        assert stop.risk is RiskLevel.LOW
        assert "77" in stop.command

    @pytest.mark.asyncio
    async def test_alternative_respects_exclusions(self):
        engine = FakePortEngine(busy={8080})
        conflict = PortConflictInfo(port=8080, has_conflict=True)

        suggestions = await engine.suggest_resolutions(conflict, exclude={8081, 8082})

        assert suggestions[0].alternative_port == 8083

    @pytest.mark.asyncio
    async def test_system_process_stop_is_high_risk_and_manual(self):
        engine = FakePortEngine(busy={445})
        conflict = PortConflictInfo(
            port=445,
            has_conflict=True,
            occupying_process=ProcessInfo(4, "System", is_system_process=True, can_be_stopped=False),
            severity=ConflictSeverity.CRITICAL,
        )

        suggestions = await engine.suggest_resolutions(conflict)

        stop = next(s for s in suggestions if s.type is ResolutionType.STOP_PROCESS)
        assert stop.risk is RiskLevel.HIGH
        assert not stop.is_auto_executable
        assert suggestions[-1] is stop

    @pytest.mark.asyncio
    async def test_no_alternative_when_range_exhausted(self):
        engine = FakePortEngine(busy=set(range(7000, 7101)))
        conflict = PortConflictInfo(port=7000, has_conflict=True)

        suggestions = await engine.suggest_resolutions(conflict)

        assert all(s.type is not ResolutionType.USE_ALTERNATIVE_PORT for s in suggestions)
        assert suggestions[0].type is ResolutionType.MODIFY_CONFIGURATION


class TestStopProcess:
    @patch("deck.ports.conflict.describe_process")
    def test_refuses_system_process(self, mock_describe):
        mock_describe.return_value = ProcessInfo(4, "System", is_system_process=True)
        assert PortConflictEngine().stop_process(4) is False

    @patch("deck.ports.conflict.psutil.Process")
    @patch("deck.ports.conflict.describe_process")
    def test_terminates_user_process(self, mock_describe, mock_process):
        mock_describe.return_value = ProcessInfo(77, "python")
        process = MagicMock()
        mock_process.return_value = process

        assert PortConflictEngine().stop_process(77) is True
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    @patch("deck.ports.conflict.psutil.Process")
    @patch("deck.ports.conflict.describe_process")
    def test_force_kills(self, mock_describe, mock_process):
        mock_describe.return_value = ProcessInfo(77, "python")
        process = MagicMock()
        mock_process.return_value = process

        PortConflictEngine().stop_process(77, force=True)
        process.kill.assert_called_once()

    @patch("deck.ports.conflict.psutil.Process")
    @patch("deck.ports.conflict.describe_process")
    def test_access_denied(self, mock_describe, mock_process):
        mock_describe.return_value = ProcessInfo(77, "python")
        mock_process.return_value.terminate.side_effect = psutil.AccessDenied(77)
        assert PortConflictEngine().stop_process(77) is False

    @patch("deck.ports.conflict.describe_process", return_value=None)
    def test_already_gone(self, _mock_describe):
        assert PortConflictEngine().stop_process(12345) is True
