"""Find and describe the process holding a host port.

The owning PID comes from the platform's connection table tool (``lsof`` on
macOS/Linux, ``netstat -ano`` on Windows). When that tool is not installed,
``psutil.net_connections`` is used instead. Process details (name, owner,
whether it is an OS-critical process) always come from psutil.
"""

import getpass
import sys
from dataclasses import dataclass

import psutil

from deck.exceptions import SubprocessFailureError
from deck.models import ProcessInfo, Protocol
from deck.utils.commands import run_command
from deck.utils.logger import get_logger

logger = get_logger("ports")

# Windows core services; compared case-insensitively without ".exe"
WINDOWS_SYSTEM_PROCESSES = frozenset({"system", "svchost", "winlogon", "csrss", "lsass", "services"})

# Root-owned daemons that must never be offered for termination
UNIX_SYSTEM_PROCESSES = frozenset(
    {"launchd", "systemd", "init", "kernel_task", "sshd", "cupsd", "mdnsresponder", "systemd-resolved"}
)

TRANSIENT_STATES = frozenset({"TIME_WAIT", "CLOSE_WAIT"})

_LOOKUP_TIMEOUT = 10.0


@dataclass
class PortOwner:
    pid: int | None
    state: str | None = None


def _is_windows() -> bool:
    return sys.platform == "win32"


def parse_lsof_output(output: str) -> PortOwner:
    """Parse default ``lsof -nP -i`` output, preferring a LISTEN entry.

    Example line::

        node    4242 dev   23u  IPv4 0x1234  0t0  TCP *:3000 (LISTEN)
    """
    fallback = PortOwner(pid=None)
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 2 or not parts[1].isdigit():
            continue
        state = None
        if line.rstrip().endswith(")") and "(" in line:
            state = line[line.rfind("(") + 1 : -1].strip()
        owner = PortOwner(pid=int(parts[1]), state=state)
        if state in (None, "LISTEN"):
            return owner
        if fallback.pid is None:
            fallback = owner
    return fallback


def parse_netstat_output(output: str, port: int, protocol: Protocol) -> PortOwner:
    """Parse Windows ``netstat -ano`` output for the local ``port``.

    Example lines::

        TCP    0.0.0.0:3000     0.0.0.0:0      LISTENING       4242
        UDP    0.0.0.0:5353     *:*                            1180
    """
    fallback = PortOwner(pid=None)
    wanted = protocol.value.upper()
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[0].upper() != wanted:
            continue
        if not parts[1].endswith(f":{port}") or not parts[-1].isdigit():
            continue
        state = parts[3].upper() if wanted == "TCP" and len(parts) >= 5 else None
        owner = PortOwner(pid=int(parts[-1]), state=state)
        if state in (None, "LISTENING"):
            return owner
        if fallback.pid is None:
            fallback = owner
    return fallback


def _owner_from_psutil(port: int, protocol: Protocol) -> PortOwner:
    kind = "tcp" if protocol is Protocol.TCP else "udp"
    try:
        connections = psutil.net_connections(kind=kind)
    except (psutil.AccessDenied, OSError) as e:
        logger.debug(f"psutil.net_connections unavailable: {e}")
        return PortOwner(pid=None)
    for conn in connections:
        if conn.laddr and conn.laddr.port == port:
            return PortOwner(pid=conn.pid, state=conn.status if conn.status != "NONE" else None)
    return PortOwner(pid=None)


async def find_port_owner(port: int, protocol: Protocol = Protocol.TCP) -> PortOwner:
    """Identify which process holds ``port``.

    Returns:
        PortOwner whose ``pid`` is ``None`` when the owner could not be found
    """
    if _is_windows():
        command = ["netstat", "-ano", "-p", protocol.value.upper()]
    else:
        command = ["lsof", "-nP", f"-i{protocol.value.upper()}:{port}"]

    try:
        # lsof exits 1 when nothing matches
        result = await run_command(command, timeout=_LOOKUP_TIMEOUT, check=False)
    except SubprocessFailureError as e:
        logger.debug(f"{command[0]} not usable ({e.message}), falling back to psutil")
        return _owner_from_psutil(port, protocol)

    if _is_windows():
        owner = parse_netstat_output(result.stdout, port, protocol)
    else:
        owner = parse_lsof_output(result.stdout)

    if owner.pid is None:
        return _owner_from_psutil(port, protocol)
    return owner


def _normalized_name(name: str) -> str:
    name = name.lower()
    return name[:-4] if name.endswith(".exe") else name


def is_system_process(pid: int, name: str, username: str | None) -> bool:
    normalized = _normalized_name(name)
    if pid <= 1 or normalized in WINDOWS_SYSTEM_PROCESSES:
        return True
    if username == "root" and normalized in UNIX_SYSTEM_PROCESSES:
        return True
    return False


def describe_process(pid: int) -> ProcessInfo | None:
    """Resolve name, system ownership and stoppability of ``pid`` with psutil.

    Returns:
        ProcessInfo, or ``None`` if the process no longer exists
    """
    try:
        process = psutil.Process(pid)
        name = process.name()
    except psutil.NoSuchProcess:
        return None
    except psutil.AccessDenied:
        return ProcessInfo(pid, "unknown", is_system_process=pid <= 1, can_be_stopped=False)

    try:
        username = process.username()
    except (psutil.AccessDenied, KeyError):
        username = None

    system = is_system_process(pid, name, username)
    try:
        current_user = getpass.getuser()
    except (OSError, KeyError):
        current_user = ""
    owner_matches = username is not None and (
        username == current_user or username.endswith(f"\\{current_user}")
    )
    can_stop = not system and (owner_matches or current_user in ("root", "Administrator"))
    return ProcessInfo(pid, name, is_system_process=system, can_be_stopped=can_stop)
