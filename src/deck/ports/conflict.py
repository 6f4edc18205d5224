"""Host port availability checks, conflict diagnosis and ranked resolutions.

The availability probe binds a socket and releases it immediately. That is a
best-effort check: another process can grab the port between the probe and the
container start, which is why the lifecycle controller probes again right
before starting.
"""

import asyncio
import socket
import sys
from collections.abc import Iterable
from dataclasses import dataclass

import psutil

from deck.models import (
    ConflictSeverity,
    PortConflictInfo,
    ProcessInfo,
    Protocol,
    ResolutionSuggestion,
    ResolutionType,
    RiskLevel,
    SuggestionPriority,
)
from deck.ports.process_lookup import TRANSIENT_STATES, describe_process, find_port_owner
from deck.utils.logger import get_logger

logger = get_logger("ports")

MIN_PORT = 1
MAX_PORT = 65535
PRIVILEGED_PORT_LIMIT = 1024
ALTERNATIVE_SEARCH_RANGE = 100

WELL_KNOWN_SERVICES = {
    80: "HTTP",
    443: "HTTPS",
    3000: "Node.js Dev Server",
    5000: ".NET Web API",
    8080: "HTTP Alternative",
    3306: "MySQL",
    5432: "PostgreSQL",
    6379: "Redis",
    27017: "MongoDB",
}

PROCESS_SERVICES = {
    "node": "Node.js Application",
    "dotnet": ".NET Application",
    "python": "Python Application",
    "nginx": "Nginx Web Server",
    "apache": "Apache Web Server",
}


@dataclass(frozen=True)
class PortValidation:
    port: int
    is_valid: bool
    is_privileged: bool = False
    message: str = ""


def validate_port(port: int) -> PortValidation:
    """Range-check a port number and flag privileged ports."""
    if not isinstance(port, int) or port < MIN_PORT or port > MAX_PORT:
        return PortValidation(port, False, message=f"Port must be between {MIN_PORT} and {MAX_PORT}")
    if port < PRIVILEGED_PORT_LIMIT:
        return PortValidation(
            port, True, True, f"Port {port} is privileged and may require elevated permissions"
        )
    return PortValidation(port, True)


def guess_service_type(port: int, process: ProcessInfo | None) -> str | None:
    """Best guess at what is listening, from the port number then the process name."""
    if port in WELL_KNOWN_SERVICES:
        return WELL_KNOWN_SERVICES[port]
    if process is not None:
        name = process.process_name.lower()
        for marker, service in PROCESS_SERVICES.items():
            if marker in name:
                return service
    return None


def severity_for(process: ProcessInfo | None) -> ConflictSeverity:
    if process is None:
        return ConflictSeverity.MEDIUM
    if process.is_system_process:
        return ConflictSeverity.CRITICAL
    if not process.can_be_stopped:
        return ConflictSeverity.HIGH
    return ConflictSeverity.MEDIUM


def stop_command_for(pid: int) -> str:
    if sys.platform == "win32":
        return f"taskkill /PID {pid} /F"
    return f"kill {pid}"


class PortConflictEngine:
    """Checks host ports and proposes ways around occupied ones.

    Args:
        host: Interface to probe; all interfaces by default, matching how
            compose publishes ports
    """

    def __init__(self, host: str = ""):
        self.host = host

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def _probe(self, port: int, protocol: Protocol) -> bool:
        kind = socket.SOCK_STREAM if protocol is Protocol.TCP else socket.SOCK_DGRAM
        with socket.socket(socket.AF_INET, kind) as sock:
            try:
                sock.bind((self.host, port))
            except OSError:
                return False
        return True

    async def check_port(self, port: int, protocol: Protocol = Protocol.TCP) -> bool:
        """Return True if ``port`` can be bound right now.

        Raises:
            ValueError: If ``port`` is outside 1-65535
        """
        validation = validate_port(port)
        if not validation.is_valid:
            raise ValueError(validation.message)
        return self._probe(port, protocol)

    async def check_ports(
        self, ports: Iterable[int], protocol: Protocol = Protocol.TCP
    ) -> dict[int, bool]:
        """Check several ports concurrently."""
        unique_ports = list(dict.fromkeys(ports))
        results = await asyncio.gather(*(self.check_port(port, protocol) for port in unique_ports))
        return dict(zip(unique_ports, results, strict=True))

    async def find_available_port(
        self,
        start: int,
        end: int,
        protocol: Protocol = Protocol.TCP,
        exclude: Iterable[int] = (),
    ) -> int | None:
        """First free port in ``[start, end]`` that is not in ``exclude``."""
        excluded = set(exclude)
        for candidate in range(max(start, MIN_PORT), min(end, MAX_PORT) + 1):
            if candidate in excluded:
                continue
            if await self.check_port(candidate, protocol):
                return candidate
        return None

    # ------------------------------------------------------------------
    # Diagnosis
    # ------------------------------------------------------------------

    async def detect_conflict(self, port: int, protocol: Protocol = Protocol.TCP) -> PortConflictInfo:
        """Describe who holds ``port`` and how serious the conflict is."""
        if await self.check_port(port, protocol):
            return PortConflictInfo(port=port, protocol=protocol)

        owner = await find_port_owner(port, protocol)
        process = describe_process(owner.pid) if owner.pid is not None else None
        conflict = PortConflictInfo(
            port=port,
            protocol=protocol,
            has_conflict=True,
            occupying_process=process,
            severity=severity_for(process),
            service_type_guess=guess_service_type(port, process),
            connection_state=owner.state,
        )
        holder = f"{process.process_name} (PID {process.process_id})" if process else "an unknown process"
        logger.warning(f"Port {port}/{protocol.value} is in use by {holder}")
        return conflict

    async def detect_conflicts(
        self, ports: Iterable[int], protocol: Protocol = Protocol.TCP
    ) -> list[PortConflictInfo]:
        """Diagnose several ports concurrently; only conflicted ports are returned."""
        infos = await asyncio.gather(*(self.detect_conflict(port, protocol) for port in ports))
        return [info for info in infos if info.has_conflict]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def suggest_resolutions(
        self, conflict: PortConflictInfo, exclude: Iterable[int] = ()
    ) -> list[ResolutionSuggestion]:
        """Ranked ways out of ``conflict``: risk ascending, then priority descending.

        Args:
            conflict: A conflict returned by :meth:`detect_conflict`
            exclude: Ports that must not be proposed as alternatives
        """
        suggestions: list[ResolutionSuggestion] = []
        port = conflict.port

        alternative = await self.find_available_port(
            port + 1, port + ALTERNATIVE_SEARCH_RANGE, conflict.protocol, exclude
        )
        if alternative is not None:
            suggestions.append(
                ResolutionSuggestion(
                    type=ResolutionType.USE_ALTERNATIVE_PORT,
                    description=f"Use port {alternative} instead of {port}",
                    risk=RiskLevel.NONE,
                    priority=SuggestionPriority.HIGH,
                    is_auto_executable=True,
                    alternative_port=alternative,
                )
            )

        process = conflict.occupying_process
        if process is not None:
            is_system = process.is_system_process
            suggestions.append(
                ResolutionSuggestion(
                    type=ResolutionType.STOP_PROCESS,
                    description=f"Stop {process.process_name} (PID {process.process_id})",
                    risk=RiskLevel.HIGH if is_system else RiskLevel.LOW,
                    priority=(
                        SuggestionPriority.LOW
                        if conflict.severity is ConflictSeverity.CRITICAL
                        else SuggestionPriority.MEDIUM
                    ),
                    is_auto_executable=not is_system,
                    command=stop_command_for(process.process_id),
                )
            )

        if conflict.connection_state in TRANSIENT_STATES:
            suggestions.append(
                ResolutionSuggestion(
                    type=ResolutionType.WAIT_FOR_RELEASE,
                    description=(
                        f"Wait for the {conflict.connection_state} connection on port {port} to be released"
                    ),
                    risk=RiskLevel.NONE,
                    priority=SuggestionPriority.MEDIUM,
                    is_auto_executable=False,
                )
            )

        suggestions.append(
            ResolutionSuggestion(
                type=ResolutionType.MODIFY_CONFIGURATION,
                description=f"Edit the .env file to use a different port than {port}",
                risk=RiskLevel.NONE,
                priority=SuggestionPriority.LOW,
                is_auto_executable=False,
            )
        )

        suggestions.sort(key=ResolutionSuggestion.sort_key)
        return suggestions

    def stop_process(self, pid: int, force: bool = False, timeout: float = 5.0) -> bool:
        """Terminate (or kill with ``force``) a non-system process.

        Returns:
            True if the process is gone afterwards
        """
        info = describe_process(pid)
        if info is None:
            return True
        if info.is_system_process:
            logger.warning(f"Refusing to stop system process {info.process_name} (PID {pid})")
            return False

        try:
            process = psutil.Process(pid)
            if force:
                process.kill()
            else:
                process.terminate()
            process.wait(timeout=timeout)
        except psutil.NoSuchProcess:
            return True
        except psutil.AccessDenied:
            logger.error(f"Access denied stopping {info.process_name} (PID {pid})")
            return False
        except psutil.TimeoutExpired:
            logger.warning(f"{info.process_name} (PID {pid}) did not exit within {timeout}s")
            return False

        logger.success(f"Stopped {info.process_name} (PID {pid})")
        return True
