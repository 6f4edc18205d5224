"""Container engine detection.

Detects which engine is usable on this host. Podman is tried first, Docker
second. An engine only counts as available when both its binary and its compose
companion are on PATH and the engine answers ``ps``.

On macOS and Windows Podman runs inside a VM ("machine"). If that machine is
missing or stopped, detection tries to bring it up (``podman machine init`` /
``podman machine start``) and detects again. It makes at most
``MAX_REMEDIATION_ATTEMPTS`` attempts, so detection always terminates.

Examples:
    Basic usage::

        from deck.engine.detection import detect_engine

        info = await detect_engine()
        if info.is_available:
            engine = get_compatible_engine(info.type)
"""

import json
import platform
import re
import shutil
import sys
from enum import Enum

from deck.exceptions import SubprocessFailureError
from deck.models import ContainerEngineInfo, EngineType
from deck.utils.commands import run_command
from deck.utils.logger import get_logger

logger = get_logger("engine")

DETECTION_ORDER = (EngineType.PODMAN, EngineType.DOCKER)
MAX_REMEDIATION_ATTEMPTS = 2

_PROBE_TIMEOUT = 15.0
_MACHINE_INIT_TIMEOUT = 900.0
_MACHINE_START_TIMEOUT = 300.0

_VERSION_RE = re.compile(r"version\s+v?([0-9][\w.\-+]*)", re.IGNORECASE)


class MachineState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    MISSING = "missing"
    UNKNOWN = "unknown"


def needs_podman_machine() -> bool:
    """Podman needs a backing VM on macOS and Windows."""
    return sys.platform in ("darwin", "win32")


def parse_version(output: str) -> str | None:
    """Extract ``4.9.3`` from ``podman version 4.9.3`` / ``Docker version 24.0.7, build x``."""
    match = _VERSION_RE.search(output)
    return match.group(1).rstrip(",") if match else None


def _not_running_message(engine_type: EngineType) -> str:
    system = platform.system()
    if engine_type is EngineType.PODMAN:
        if system in ("Darwin", "Windows"):
            return (
                "Podman machine is not running.\n"
                "Run 'podman machine init' (first time only) and 'podman machine start'."
            )
        return "Podman is installed but not responding. Check 'podman info' for details."
    if system in ("Darwin", "Windows"):
        return "Docker Desktop is not running. Start Docker Desktop and try again."
    return "Docker daemon is not running. Start it with 'sudo systemctl start docker'."


async def podman_machine_state() -> MachineState:
    """State of the default Podman machine, from ``podman machine list --format json``."""
    try:
        result = await run_command(
            ["podman", "machine", "list", "--format", "json"], timeout=_PROBE_TIMEOUT
        )
        machines = json.loads(result.stdout or "[]")
    except (SubprocessFailureError, json.JSONDecodeError) as e:
        logger.debug(f"Could not list podman machines: {e}")
        return MachineState.UNKNOWN

    if not machines:
        return MachineState.MISSING
    if any(machine.get("Running") for machine in machines):
        return MachineState.RUNNING
    return MachineState.STOPPED


async def remediate_podman_machine(state: MachineState) -> bool:
    """Init (if missing) and start the Podman machine.

    Returns:
        True if the machine commands succeeded
    """
    try:
        if state is MachineState.MISSING:
            logger.key_info("Initializing Podman machine (first run, this can take a few minutes)")
            await run_command(["podman", "machine", "init"], timeout=_MACHINE_INIT_TIMEOUT)
        logger.key_info("Starting Podman machine")
        await run_command(["podman", "machine", "start"], timeout=_MACHINE_START_TIMEOUT)
    except SubprocessFailureError as e:
        logger.error(f"Podman machine remediation failed: {e.get_user_message()}")
        return False
    logger.success("Podman machine is running")
    return True


async def _has_compose(engine_type: EngineType) -> bool:
    if shutil.which(engine_type.compose_binary):
        return True
    if engine_type is EngineType.DOCKER:
        try:
            result = await run_command(
                ["docker", "compose", "version"], timeout=_PROBE_TIMEOUT, check=False
            )
        except SubprocessFailureError:
            return False
        return result.ok
    return False


async def probe_engine(engine_type: EngineType) -> ContainerEngineInfo:
    """Check a single engine without attempting any remediation."""
    binary = engine_type.value
    install_path = shutil.which(binary)
    if install_path is None:
        return ContainerEngineInfo(engine_type, False, error_message=f"{binary} not found on PATH")

    version = None
    try:
        version_result = await run_command([binary, "--version"], timeout=_PROBE_TIMEOUT, check=False)
        version = parse_version(version_result.stdout)
    except SubprocessFailureError as e:
        logger.debug(f"{binary} --version failed: {e.message}")

    if not await _has_compose(engine_type):
        return ContainerEngineInfo(
            engine_type,
            False,
            version=version,
            install_path=install_path,
            error_message=f"{engine_type.compose_binary} not found on PATH",
        )

    try:
        ps_result = await run_command([binary, "ps"], timeout=_PROBE_TIMEOUT, check=False)
        responding = ps_result.ok
    except SubprocessFailureError:
        responding = False

    if not responding:
        return ContainerEngineInfo(
            engine_type,
            False,
            version=version,
            install_path=install_path,
            error_message=_not_running_message(engine_type),
        )

    return ContainerEngineInfo(engine_type, True, version=version, install_path=install_path)


async def detect_engine(remediate: bool = True) -> ContainerEngineInfo:
    """Detect the usable container engine, Podman first.

    Args:
        remediate: Allow starting/initializing a Podman machine on macOS/Windows

    Returns:
        ContainerEngineInfo; ``type`` is ``EngineType.NONE`` when nothing is installed
    """
    podman = await probe_engine(EngineType.PODMAN)
    attempts = 0
    while (
        not podman.is_available
        and podman.install_path is not None
        and remediate
        and needs_podman_machine()
        and attempts < MAX_REMEDIATION_ATTEMPTS
    ):
        state = await podman_machine_state()
        if state in (MachineState.RUNNING, MachineState.UNKNOWN):
            break
        attempts += 1
        logger.info(f"Podman machine {state.value}, remediation attempt {attempts}/{MAX_REMEDIATION_ATTEMPTS}")
        if not await remediate_podman_machine(state):
            continue
        podman = await probe_engine(EngineType.PODMAN)

    if podman.is_available:
        logger.debug(f"Using podman {podman.version or ''}".rstrip())
        return podman

    docker = await probe_engine(EngineType.DOCKER)
    if docker.is_available:
        logger.debug(f"Using docker {docker.version or ''}".rstrip())
        return docker

    # Prefer reporting the diagnosis of an engine that is at least installed
    for candidate in (podman, docker):
        if candidate.install_path is not None:
            return candidate
    return ContainerEngineInfo(
        EngineType.NONE,
        False,
        error_message="No container engine found. Install Podman (recommended) or Docker.",
    )
