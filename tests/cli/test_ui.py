"""Tests for the questionary-backed interactive UI."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from rich.console import Console

from deck.cli import styles
from deck.cli.ui import QuestionaryUI, escape_cancels
from deck.launch.collaborators import MenuOption
from deck.models import (
    ConflictSeverity,
    PortConflictInfo,
    ProcessInfo,
    ResolutionSuggestion,
    ResolutionType,
    RiskLevel,
    SuggestionPriority,
)
from deck.ports.env_file import PortChange, PortPlan


def prompt_answering(answer):
    question = MagicMock()
    question.ask_async = AsyncMock(return_value=answer)
    return MagicMock(return_value=question)


class TestEscapeCancels:
    def test_escape_binding_is_merged(self):
        original = KeyBindings()
        original.add(Keys.ControlC)(lambda event: None)
        question = MagicMock()
        question.application.key_bindings = original

        assert escape_cancels(question) is question

        keys = [binding.keys for binding in question.application.key_bindings.bindings]
        assert keys == [(Keys.ControlC,), (Keys.Escape,)]

    def test_style_bindings_map_escape(self):
        bindings = styles.get_key_bindings()
        assert [binding.keys for binding in bindings.bindings] == [(Keys.Escape,)]


class TestSelect:
    @pytest.mark.asyncio
    async def test_maps_options_to_choices(self):
        options = [MenuOption("first", 1), MenuOption("second", 2, disabled="missing files")]
        prompt = prompt_answering(1)

        with patch("deck.cli.ui.questionary.select", prompt):
            assert await QuestionaryUI().select("Pick", options) == 1

        choices = prompt.call_args.kwargs["choices"]
        assert [c.title for c in choices] == ["first", "second"]
        assert choices[0].disabled is None
        assert choices[1].disabled == "missing files"

    @pytest.mark.asyncio
    async def test_cancel_returns_none(self):
        with patch("deck.cli.ui.questionary.select", prompt_answering(None)):
            assert await QuestionaryUI().select("Pick", [MenuOption("a", "a")]) is None


class TestConfirm:
    @pytest.mark.asyncio
    async def test_yes(self):
        with patch("deck.cli.ui.questionary.confirm", prompt_answering(True)):
            assert await QuestionaryUI().confirm("Proceed?") is True

    @pytest.mark.asyncio
    async def test_interrupted_prompt_is_no(self):
        with patch("deck.cli.ui.questionary.confirm", prompt_answering(None)):
            assert await QuestionaryUI().confirm("Proceed?", default=True) is False


class TestShowPortPlan:
    def test_renders_conflicts_and_suggestions(self, monkeypatch):
        recording = Console(record=True, width=200, theme=styles._build_rich_theme(styles.get_active_theme()))
        monkeypatch.setattr(styles, "console", recording)

        plan = PortPlan(
            env_path=Path("/tmp/app/.env"),
            ports={"WEB_PORT": 8080},
            conflicts=[
                PortConflictInfo(
                    port=8080,
                    has_conflict=True,
                    occupying_process=ProcessInfo(process_id=321, process_name="nginx"),
                    severity=ConflictSeverity.MEDIUM,
                    service_type_guess="http",
                )
            ],
            suggestions={
                8080: [
                    ResolutionSuggestion(
                        type=ResolutionType.USE_ALTERNATIVE_PORT,
                        description="Use port 8081 instead of 8080",
                        risk=RiskLevel.LOW,
                        priority=SuggestionPriority.HIGH,
                        alternative_port=8081,
                    )
                ]
            },
            changes=[PortChange("WEB_PORT", 8080, 8081)],
        )

        QuestionaryUI().show_port_plan(plan)

        text = recording.export_text()
        assert "WEB_PORT" in text
        assert "nginx (PID 321), likely http" in text
        assert "8081" in text
        assert "Use port 8081 instead of 8080" in text
