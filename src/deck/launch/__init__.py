"""Interactive launch workflow for ``deck start``."""

from deck.launch.collaborators import (
    InteractiveUI,
    MenuOption,
    NoopTemplateSync,
    TemplateSyncProvider,
    TemplateWorkflow,
)
from deck.launch.orchestrator import LaunchOrchestrator

__all__ = [
    "InteractiveUI",
    "LaunchOrchestrator",
    "MenuOption",
    "NoopTemplateSync",
    "TemplateSyncProvider",
    "TemplateWorkflow",
]
