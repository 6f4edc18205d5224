"""Port handling for a resource's ``.env`` file.

Values are read with python-dotenv. Rewrites work on the raw lines so that
every line Deck does not mean to change stays byte-for-byte identical
(comments, quoting, ordering and line endings included).

The port pipeline is split in two so nothing is written before the user agrees:
:func:`plan_port_changes` is read-only, :func:`apply_port_changes` performs
the backup and rewrite.
"""

import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from dotenv import dotenv_values

from deck.models import PortConflictInfo, PortMapping, ResolutionSuggestion, ResolutionType
from deck.ports.conflict import PortConflictEngine
from deck.utils.logger import get_logger

logger = get_logger("ports")

# Well-known port keys and the container-side port each one conventionally maps to
DEFAULT_PORTS: dict[str, int] = {
    "DEV_PORT": 5000,
    "DEBUG_PORT": 9229,
    "WEB_PORT": 8080,
    "HTTPS_PORT": 8443,
    "ANDROID_DEBUG_PORT": 5037,
}
PORT_KEYS = tuple(DEFAULT_PORTS)

PROJECT_NAME_KEY = "PROJECT_NAME"

ENV_LINE_RE = re.compile(r"^\s*([^=\s]+)\s*=\s*(.*)$")
BLANK_OR_COMMENT_RE = re.compile(r"^\s*(#.*)?$")
_FIRST_INT_RE = re.compile(r"\d+")

BACKUP_DIR_NAME = "backups"


@dataclass(frozen=True)
class PortChange:
    key: str
    old_port: int
    new_port: int


@dataclass
class PortPlan:
    """Read-only result of scanning a ``.env`` for port conflicts."""

    env_path: Path
    ports: dict[str, int]
    conflicts: list[PortConflictInfo] = field(default_factory=list)
    suggestions: dict[int, list[ResolutionSuggestion]] = field(default_factory=dict)
    changes: list[PortChange] = field(default_factory=list)
    unresolved: list[int] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def is_resolvable(self) -> bool:
        return not self.unresolved


def _split_line_ending(line: str) -> tuple[str, str]:
    stripped = line.rstrip("\r\n")
    return stripped, line[len(stripped) :]


def read_ports(env_path: Path) -> dict[str, int]:
    """Declared well-known ports in ``env_path``; non-numeric values are skipped."""
    values = dotenv_values(env_path)
    ports: dict[str, int] = {}
    for key in PORT_KEYS:
        raw = values.get(key)
        if raw is None:
            continue
        try:
            ports[key] = int(str(raw).strip())
        except ValueError:
            logger.warning(f"Ignoring non-numeric {key}={raw!r} in {env_path}")
    return ports


def port_mappings(ports: dict[str, int]) -> list[PortMapping]:
    return [PortMapping(container_port=DEFAULT_PORTS[key], host_port=port) for key, port in ports.items()]


async def plan_port_changes(env_path: Path, engine: PortConflictEngine) -> PortPlan:
    """Scan ``env_path`` for conflicted ports and propose replacements.

    Proposed ports never collide with another declared port or with each other.
    Nothing is written.
    """
    ports = read_ports(env_path)
    plan = PortPlan(env_path=env_path, ports=ports)
    if not ports:
        return plan

    plan.conflicts = await engine.detect_conflicts(ports.values())
    conflicts_by_port = {conflict.port: conflict for conflict in plan.conflicts}
    used = set(ports.values())

    for key, port in ports.items():
        conflict = conflicts_by_port.get(port)
        if conflict is None:
            continue
        suggestions = await engine.suggest_resolutions(conflict, exclude=used)
        plan.suggestions.setdefault(port, suggestions)
        alternative = next(
            (s.alternative_port for s in suggestions if s.type is ResolutionType.USE_ALTERNATIVE_PORT),
            None,
        )
        if alternative is None:
            plan.unresolved.append(port)
            continue
        plan.changes.append(PortChange(key, port, alternative))
        used.add(alternative)

    return plan


def backup_file(path: Path, now: datetime | None = None) -> Path:
    """Copy ``path`` to ``<dir>/backups/<name>.<yyyyMMdd_HHmmss_fff>.bak``.

    A numeric ``_NN`` suffix is added if a backup with that timestamp exists.
    """
    now = now or datetime.now()
    backup_dir = path.parent / BACKUP_DIR_NAME
    backup_dir.mkdir(parents=True, exist_ok=True)

    stamp = f"{now:%Y%m%d_%H%M%S}_{now.microsecond // 1000:03d}"
    target = backup_dir / f"{path.name}.{stamp}.bak"
    counter = 1
    while target.exists():
        target = backup_dir / f"{path.name}.{stamp}_{counter:02d}.bak"
        counter += 1

    shutil.copy2(path, target)
    logger.debug(f"Backed up {path.name} to {target}")
    return target


def apply_port_changes(
    env_path: Path,
    changes: list[PortChange],
    clock: Callable[[], datetime] | None = None,
) -> Path | None:
    """Back up ``env_path`` and rewrite the changed port lines.

    Returns:
        Path of the backup, or ``None`` when there was nothing to change
    """
    if not changes:
        return None

    backup = backup_file(env_path, clock() if clock else None)
    new_values = {change.key: change.new_port for change in changes}

    with open(env_path, encoding="utf-8", newline="") as f:
        lines = f.readlines()

    rewritten = []
    for line in lines:
        body, ending = _split_line_ending(line)
        match = ENV_LINE_RE.match(body)
        if match and not body.lstrip().startswith("#") and match.group(1) in new_values:
            value_start = match.start(2)
            new_value = _FIRST_INT_RE.sub(str(new_values[match.group(1)]), body[value_start:], count=1)
            body = body[:value_start] + new_value
        rewritten.append(body + ending)

    with open(env_path, "w", encoding="utf-8", newline="") as f:
        f.writelines(rewritten)

    for change in changes:
        logger.info(f"{change.key}: {change.old_port} → {change.new_port}")
    return backup


def update_project_name(env_path: Path, project_name: str) -> None:
    """Set ``PROJECT_NAME`` in ``env_path``, appending the key if it is missing.

    Raises:
        OSError: If the file cannot be read or written
    """
    with open(env_path, encoding="utf-8", newline="") as f:
        lines = f.readlines()

    replaced = False
    for index, line in enumerate(lines):
        body, ending = _split_line_ending(line)
        match = ENV_LINE_RE.match(body)
        if match and not body.lstrip().startswith("#") and match.group(1) == PROJECT_NAME_KEY:
            lines[index] = f"{PROJECT_NAME_KEY}={project_name}{ending}"
            replaced = True

    if not replaced:
        if lines and not lines[-1].endswith(("\n", "\r")):
            lines[-1] += "\n"
        lines.append(f"{PROJECT_NAME_KEY}={project_name}\n")

    with open(env_path, "w", encoding="utf-8", newline="") as f:
        f.writelines(lines)
    logger.debug(f"Set {PROJECT_NAME_KEY}={project_name} in {env_path}")
