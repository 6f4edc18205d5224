"""Container lifecycle state reconciliation."""

from deck.lifecycle.controller import LifecycleController, determine_start_mode

__all__ = ["LifecycleController", "determine_start_mode"]
