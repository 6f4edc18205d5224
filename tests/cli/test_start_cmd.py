"""Tests for ``deck start``: argument handling and result reporting.

The orchestrator itself is covered in tests/launch; here it is replaced by a
mock so only the command's wiring is exercised.
"""

import io
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from deck.cli import styles
from deck.cli.start_cmd import start
from deck.models import LaunchResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_orchestrator():
    with patch("deck.cli.start_cmd.LaunchOrchestrator") as orchestrator_cls:
        instance = MagicMock()
        orchestrator_cls.return_value = instance
        yield orchestrator_cls, instance


class TestStartCommand:
    def test_success_exits_zero(self, runner, tmp_path, mock_orchestrator):
        orchestrator_cls, instance = mock_orchestrator
        instance.start = AsyncMock(
            return_value=LaunchResult(
                success=True,
                message="Container app-20261017-1200-dev created and started",
                image_name="app-20261017-1200-dev",
                container_name="app-20261017-1200-dev",
            )
        )

        result = runner.invoke(start, ["--project", str(tmp_path)])

        assert result.exit_code == 0
        assert "created and started" in result.output
        assert "deck shell app-20261017-1200-dev" in result.output
        assert orchestrator_cls.call_args[0][0] == tmp_path.resolve()
        instance.start.assert_awaited_once_with(None)

    def test_env_type_is_passed_through(self, runner, tmp_path, mock_orchestrator):
        _cls, instance = mock_orchestrator
        instance.start = AsyncMock(return_value=LaunchResult(success=False, message="Cancelled by user"))

        runner.invoke(start, ["tauri", "--project", str(tmp_path)])

        instance.start.assert_awaited_once_with("tauri")

    def test_failure_exits_one_with_suggestions(self, runner, tmp_path, mock_orchestrator):
        _cls, instance = mock_orchestrator
        instance.start = AsyncMock(
            return_value=LaunchResult(
                success=False,
                message="Port conflicts left unresolved",
                image_name="app-20261017-1200-dev",
                suggestions=["Use port 8081 instead of 8080"],
            )
        )

        result = runner.invoke(start, ["--project", str(tmp_path)])

        assert result.exit_code == 1
        assert "Port conflicts left unresolved" in result.output
        assert "Use port 8081 instead of 8080" in result.output

    def test_keyboard_interrupt_exits_130(self, runner, tmp_path, mock_orchestrator):
        _cls, instance = mock_orchestrator
        instance.start = MagicMock()

        with patch("deck.cli.start_cmd.asyncio.run", side_effect=KeyboardInterrupt):
            result = runner.invoke(start, ["--project", str(tmp_path)])

        assert result.exit_code == 130
        assert "Cancelled" in result.output

    def test_project_from_environment(self, runner, tmp_path, monkeypatch, mock_orchestrator):
        orchestrator_cls, instance = mock_orchestrator
        instance.start = AsyncMock(return_value=LaunchResult(success=False, message="Cancelled by user"))
        monkeypatch.setenv("DECK_PROJECT", str(tmp_path))

        runner.invoke(start, [])

        assert orchestrator_cls.call_args[0][0] == tmp_path.resolve()

    def test_missing_project_directory_rejected(self, runner, tmp_path):
        result = runner.invoke(start, ["--project", str(tmp_path / "missing")])

        assert result.exit_code == 2

    def test_output_follows_theme_console(self, runner, tmp_path, monkeypatch, mock_orchestrator):
        """A console installed after import (theme switch) receives the output."""
        _cls, instance = mock_orchestrator
        instance.start = AsyncMock(return_value=LaunchResult(success=True, message="Container web-dev is already running"))
        themed = Console(file=io.StringIO(), theme=styles._build_rich_theme(styles.DAYLIGHT_THEME))
        monkeypatch.setattr(styles, "console", themed)

        result = runner.invoke(start, ["--project", str(tmp_path)])

        assert result.exit_code == 0
        assert "already running" in themed.file.getvalue()
        assert "already running" not in result.output
