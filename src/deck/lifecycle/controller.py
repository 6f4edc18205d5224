"""Bring a container to the running state.

The engine is the only source of truth for container state, so every decision
starts from a fresh ``inspect``. The start mode follows from that state:

=================================================  ======================
Current state                                       Start mode
=================================================  ======================
Running                                             attach (no engine call)
Exited, Created, Dead                               resume existing container
NotExists, Paused, Restarting, Removing,            create new via compose
Unknown, Error
=================================================  ======================

Before any engine start, host ports are probed again. The earlier port
pipeline check may be stale by then, and a conflict found here is reported as
a structured refusal rather than left to the engine's less helpful error.
"""

import time

from deck.engine.handles import ContainerEngine
from deck.exceptions import SubprocessFailureError
from deck.models import (
    ContainerStatus,
    PortMapping,
    ResolutionSuggestion,
    StartMode,
    StartOptions,
    StartResult,
)
from deck.ports.conflict import PortConflictEngine
from deck.utils.logger import get_logger

logger = get_logger("lifecycle")

MAX_SUGGESTIONS = 3

_RESUMABLE = frozenset({ContainerStatus.EXITED, ContainerStatus.CREATED, ContainerStatus.DEAD})


def determine_start_mode(status: ContainerStatus) -> StartMode:
    """Map every container state to the action that reaches Running."""
    if status is ContainerStatus.RUNNING:
        return StartMode.ATTACHED_TO_RUNNING
    if status in _RESUMABLE:
        return StartMode.RESUME
    return StartMode.NEW


class LifecycleController:
    """Starts, stops and inspects one named container through an engine handle."""

    def __init__(self, engine: ContainerEngine, ports: PortConflictEngine):
        self.engine = engine
        self.ports = ports

    async def _port_refusal(self, mappings: list[PortMapping]) -> tuple[list[int], list[ResolutionSuggestion]]:
        """Conflicted host ports and the top suggestions for them."""
        conflicted: list[int] = []
        suggestions: list[ResolutionSuggestion] = []
        for mapping in mappings:
            conflict = await self.ports.detect_conflict(mapping.host_port, mapping.protocol)
            if not conflict.has_conflict:
                continue
            conflicted.append(mapping.host_port)
            suggestions.extend(await self.ports.suggest_resolutions(conflict))
        suggestions.sort(key=ResolutionSuggestion.sort_key)
        return conflicted, suggestions[:MAX_SUGGESTIONS]

    async def start_container(self, name: str, options: StartOptions | None = None) -> StartResult:
        """Reconcile ``name`` to Running.

        Args:
            name: Container name
            options: Compose directory (needed to create a new container) and
                declared port mappings to re-check

        Returns:
            StartResult describing what was done; ``success`` is False when ports
            are still conflicted or the engine command failed
        """
        options = options or StartOptions()
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            container = await self.engine.inspect(name)
        except SubprocessFailureError as e:
            return StartResult(False, StartMode.NEW, message=e.get_user_message(), startup_time_ms=elapsed_ms())

        status = container.status if container is not None else ContainerStatus.NOT_EXISTS
        mode = determine_start_mode(status)
        logger.info(f"Container {name} is {status.value}; start mode {mode.value}")

        if mode is StartMode.ATTACHED_TO_RUNNING:
            return StartResult(
                True,
                mode,
                container=container,
                allocated_ports=list(container.port_mappings),
                startup_time_ms=elapsed_ms(),
                message=f"Container {name} is already running",
            )

        mappings = options.port_mappings or (container.port_mappings if container else [])
        conflicted, suggestions = await self._port_refusal(mappings)
        if conflicted:
            ports_text = ", ".join(str(port) for port in conflicted)
            return StartResult(
                False,
                mode,
                container=container,
                startup_time_ms=elapsed_ms(),
                message=f"Refusing to start {name}: port(s) {ports_text} are in use",
                suggestions=suggestions,
            )

        try:
            if mode is StartMode.RESUME:
                logger.resume(f"Resuming {name} ({status.value})")
                await self.engine.start(name)
            else:
                if options.compose_directory is None:
                    return StartResult(
                        False,
                        mode,
                        startup_time_ms=elapsed_ms(),
                        message=f"Container {name} does not exist and no compose directory was given",
                    )
                await self.engine.compose_up(
                    options.compose_directory, build=options.build, project_name=options.project_name
                )
            refreshed = await self.engine.inspect(name)
        except SubprocessFailureError as e:
            logger.error(f"Failed to start {name}: {e.message}")
            return StartResult(False, mode, container=container, message=e.get_user_message(), startup_time_ms=elapsed_ms())

        duration = elapsed_ms()
        logger.timing(f"{name} started in {duration / 1000:.1f}s")
        return StartResult(
            True,
            mode,
            container=refreshed,
            allocated_ports=list(refreshed.port_mappings) if refreshed else list(mappings),
            startup_time_ms=duration,
            message=f"Container {name} {'resumed' if mode is StartMode.RESUME else 'created and started'}",
        )

    async def stop_container(self, name: str, force: bool = False) -> bool:
        status = await self.engine.get_status(name)
        if status is not ContainerStatus.RUNNING:
            logger.info(f"Container {name} is not running ({status.value})")
            return False
        await self.engine.stop(name, force=force)
        return True

    async def restart_container(self, name: str) -> bool:
        status = await self.engine.get_status(name)
        if status is ContainerStatus.NOT_EXISTS:
            logger.warning(f"Container {name} does not exist")
            return False
        await self.engine.restart(name)
        return True

    async def container_logs(self, name: str, tail: int | None = None) -> str:
        return await self.engine.logs(name, tail=tail)

    async def follow_logs(self, name: str, tail: int | None = None) -> int:
        """Stream output until the user interrupts; returns the engine's exit code."""
        return await self.engine.follow_logs(name, tail=tail)

    async def shell(self, name: str, shell: str = "bash") -> int | None:
        """Interactive shell in ``name``; ``None`` if the container is not running."""
        status = await self.engine.get_status(name)
        if status is not ContainerStatus.RUNNING:
            logger.warning(f"Container {name} is {status.value}, not running")
            return None
        return await self.engine.shell(name, shell=shell)
