"""Interfaces the launch workflow depends on but does not implement.

The orchestrator never renders a menu or talks to a template repository
itself. It is handed objects satisfying these protocols: the CLI passes real
ones, tests pass fakes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from deck.models import SyncResult
from deck.ports.env_file import PortPlan
from deck.utils.logger import get_logger

logger = get_logger("launch")


@dataclass(frozen=True)
class MenuOption:
    """One selectable line; ``disabled`` holds the reason it cannot be chosen."""

    label: str
    value: Any
    disabled: str | None = None


class TemplateWorkflow(Enum):
    CREATE_CONFIG = "create_config"
    DIRECT_BUILD = "direct_build"


class InteractiveUI(Protocol):
    async def select(self, message: str, options: list[MenuOption]) -> Any | None:
        """Return the chosen option's value, or ``None`` if the user cancelled."""
        ...

    async def confirm(self, message: str, default: bool = False) -> bool: ...

    def show_port_plan(self, plan: PortPlan) -> None:
        """Display conflicts, their top suggestions and the proposed rewrites."""
        ...


class TemplateSyncProvider(Protocol):
    async def sync(self, force: bool = False) -> SyncResult: ...


class NoopTemplateSync:
    """Template sync used when no remote provider is wired in.

    Always reports failure, so the launch continues only with templates that
    already exist locally.
    """

    async def sync(self, force: bool = False) -> SyncResult:
        message = "Remote template sync is not configured; using local templates only"
        logger.debug(message)
        return SyncResult(success=False, synced_count=0, logs=[message])
