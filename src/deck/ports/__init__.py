"""Host port conflict detection, resolution and ``.env`` port rewriting."""

from deck.ports.conflict import PortConflictEngine, validate_port
from deck.ports.env_file import apply_port_changes, plan_port_changes, read_ports

__all__ = [
    "PortConflictEngine",
    "apply_port_changes",
    "plan_port_changes",
    "read_ports",
    "validate_port",
]
