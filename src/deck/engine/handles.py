"""Container engine handles.

:class:`ContainerEngine` is the one lifecycle interface the rest of Deck talks
to. :class:`PodmanEngine` and :class:`DockerEngine` differ only in how they
spell compose invocations and how they print ``ps``/``inspect`` output.
Supporting a third engine means adding one subclass here.

All operations shell out to the engine CLI; the engine's API socket is never
used.
"""

import json
import re
import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from deck.exceptions import SubprocessFailureError
from deck.models import ContainerInfo, ContainerStatus, EngineType, PortMapping, Protocol
from deck.utils.commands import CommandResult, run_command, run_interactive
from deck.utils.logger import get_logger

logger = get_logger("engine")

# Long enough for an image build triggered by compose up --build
COMPOSE_TIMEOUT = 1800.0
ENGINE_TIMEOUT = 60.0

_NOT_FOUND_MARKERS = ("no such container", "no such object", "no container with name", "not found")

# "0.0.0.0:8080->80/tcp" or ":::8080->80/tcp"
_DOCKER_PORT_RE = re.compile(r"(?:[\d.]*|\[?[:\da-f]*\]?):(\d+)->(\d+)/(tcp|udp)", re.IGNORECASE)


def _parse_labels(raw: Any) -> dict[str, str]:
    """Labels arrive as a dict (podman, inspect) or a ``k=v,k=v`` string (docker ps)."""
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    labels: dict[str, str] = {}
    if isinstance(raw, str) and raw:
        for label in raw.split(","):
            if "=" in label:
                key, value = label.split("=", 1)
                labels[key.strip()] = value.strip()
    return labels


def _parse_timestamp(raw: Any) -> datetime | None:
    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw).astimezone()
    if not isinstance(raw, str) or not raw:
        return None
    # Trim nanoseconds and docker's trailing zone name ("+0000 UTC")
    text = re.sub(r"(\.\d{6})\d+", r"\1", raw.strip())
    text = re.sub(r"\s+[A-Z]{2,5}$", "", text).replace("Z", "+00:00")
    for parser in (datetime.fromisoformat, lambda t: datetime.strptime(t, "%Y-%m-%d %H:%M:%S %z")):
        try:
            return parser(text)
        except ValueError:
            continue
    return None


def _inspect_ports(network_ports: Any) -> list[PortMapping]:
    """Ports from inspect's ``NetworkSettings.Ports`` (``{"80/tcp": [{"HostPort": "8080"}]}``)."""
    mappings: list[PortMapping] = []
    if not isinstance(network_ports, dict):
        return mappings
    for spec, bindings in network_ports.items():
        port_text, _, proto = spec.partition("/")
        if not port_text.isdigit():
            continue
        protocol = Protocol.UDP if proto.lower() == "udp" else Protocol.TCP
        for binding in bindings or []:
            host_port = str(binding.get("HostPort", ""))
            if host_port.isdigit():
                mapping = PortMapping(int(port_text), int(host_port), protocol)
                if mapping not in mappings:
                    mappings.append(mapping)
    return mappings


def parse_inspect_output(output: str) -> ContainerInfo | None:
    """Build a ContainerInfo from ``<engine> inspect --format json`` output."""
    try:
        data = json.loads(output)
    except json.JSONDecodeError:
        logger.debug("Unparseable inspect output")
        return None
    if isinstance(data, list):
        if not data:
            return None
        data = data[0]
    if not isinstance(data, dict):
        return None

    config = data.get("Config") or {}
    state = data.get("State") or {}
    status_text = state.get("Status") if isinstance(state, dict) else state
    return ContainerInfo(
        id=str(data.get("Id") or data.get("ID") or ""),
        name=str(data.get("Name") or "").lstrip("/"),
        image=str(data.get("ImageName") or config.get("Image") or data.get("Image") or ""),
        status=ContainerStatus.from_engine_state(status_text),
        created_at=_parse_timestamp(data.get("Created")),
        port_mappings=_inspect_ports((data.get("NetworkSettings") or {}).get("Ports")),
        labels=_parse_labels(config.get("Labels")),
    )


class ContainerEngine(ABC):
    """Uniform lifecycle contract over one engine CLI."""

    engine_type: EngineType

    def __init__(self, binary: str | None = None):
        self.binary = binary or self.engine_type.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(binary={self.binary!r})"

    # ------------------------------------------------------------------
    # Engine-specific pieces
    # ------------------------------------------------------------------

    @abstractmethod
    def compose_command(self) -> list[str]:
        """argv prefix for the compose companion."""

    @abstractmethod
    def parse_ps_output(self, output: str) -> list[ContainerInfo]:
        """Parse ``ps -a --format json`` output."""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _run(self, *args: str, timeout: float | None = ENGINE_TIMEOUT, check: bool = True) -> CommandResult:
        return await run_command([self.binary, *args], timeout=timeout, check=check)

    async def start(self, name: str) -> None:
        await self._run("start", name)
        logger.info(f"Started container {name}")

    async def stop(self, name: str, force: bool = False) -> None:
        args = ["stop", "--time", "0", name] if force else ["stop", name]
        await self._run(*args)
        logger.info(f"Stopped container {name}")

    async def restart(self, name: str) -> None:
        await self._run("restart", name)
        logger.info(f"Restarted container {name}")

    async def inspect(self, name: str) -> ContainerInfo | None:
        """Current state of ``name``; ``None`` if no such container exists.

        Raises:
            SubprocessFailureError: For failures other than "not found"
        """
        result = await self._run("inspect", name, "--format", "json", check=False)
        if result.ok:
            return parse_inspect_output(result.stdout)
        stderr = result.stderr.lower()
        if any(marker in stderr for marker in _NOT_FOUND_MARKERS):
            return None
        raise SubprocessFailureError(
            f"Failed to inspect container {name}",
            command=result.command,
            returncode=result.returncode,
            stderr=result.stderr,
        )

    async def get_status(self, name: str) -> ContainerStatus:
        try:
            info = await self.inspect(name)
        except SubprocessFailureError as e:
            logger.warning(f"Could not determine status of {name}: {e.message}")
            return ContainerStatus.ERROR
        return info.status if info is not None else ContainerStatus.NOT_EXISTS

    async def logs(self, name: str, tail: int | None = None) -> str:
        args = ["logs"]
        if tail is not None:
            args += ["--tail", str(tail)]
        result = await self._run(*args, name)
        return result.stdout + result.stderr

    async def follow_logs(self, name: str, tail: int | None = None) -> int:
        args = [self.binary, "logs", "--follow"]
        if tail is not None:
            args += ["--tail", str(tail)]
        return await run_interactive([*args, name])

    async def exec(self, name: str, command: list[str]) -> CommandResult:
        return await self._run("exec", name, *command, timeout=None)

    async def shell(self, name: str, shell: str = "bash") -> int:
        """Open an interactive shell in ``name``; returns the shell's exit code."""
        return await run_interactive([self.binary, "exec", "-it", name, shell])

    async def list_containers(self) -> list[ContainerInfo]:
        result = await self._run("ps", "-a", "--format", "json")
        return self.parse_ps_output(result.stdout)

    # ------------------------------------------------------------------
    # Compose
    # ------------------------------------------------------------------

    def _compose_args(self, project_name: str | None) -> list[str]:
        args = self.compose_command()
        if project_name:
            args += ["-p", project_name]
        return args

    async def compose_up(
        self, directory: Path, build: bool = True, project_name: str | None = None
    ) -> CommandResult:
        """Run ``compose up -d [--build]`` in ``directory``."""
        args = [*self._compose_args(project_name), "up", "-d"]
        if build:
            args.append("--build")
        logger.key_info(f"Building and starting {directory.name}")
        return await run_command(args, cwd=directory, timeout=COMPOSE_TIMEOUT)

    async def compose_down(self, directory: Path, project_name: str | None = None) -> CommandResult:
        args = [*self._compose_args(project_name), "down"]
        return await run_command(args, cwd=directory, timeout=ENGINE_TIMEOUT)


class PodmanEngine(ContainerEngine):
    engine_type = EngineType.PODMAN

    def compose_command(self) -> list[str]:
        return ["podman-compose"]

    def parse_ps_output(self, output: str) -> list[ContainerInfo]:
        """Podman prints one JSON array."""
        if not output.strip():
            return []
        try:
            entries = json.loads(output)
        except json.JSONDecodeError:
            logger.warning("Could not parse podman ps output")
            return []
        containers = []
        for entry in entries or []:
            names = entry.get("Names") or []
            ports = [
                PortMapping(
                    int(port.get("container_port", 0)),
                    int(port.get("host_port", 0)),
                    Protocol.UDP if str(port.get("protocol", "tcp")).lower() == "udp" else Protocol.TCP,
                )
                for port in entry.get("Ports") or []
                if port.get("host_port")
            ]
            containers.append(
                ContainerInfo(
                    id=str(entry.get("Id", "")),
                    name=names[0] if isinstance(names, list) and names else str(names),
                    image=str(entry.get("Image", "")),
                    status=ContainerStatus.from_engine_state(entry.get("State")),
                    created_at=_parse_timestamp(entry.get("Created") or entry.get("CreatedAt")),
                    port_mappings=ports,
                    labels=_parse_labels(entry.get("Labels")),
                )
            )
        return containers


class DockerEngine(ContainerEngine):
    engine_type = EngineType.DOCKER

    def __init__(self, binary: str | None = None, use_compose_plugin: bool | None = None):
        super().__init__(binary)
        if use_compose_plugin is None:
            use_compose_plugin = shutil.which("docker-compose") is None
        self.use_compose_plugin = use_compose_plugin

    def compose_command(self) -> list[str]:
        if self.use_compose_plugin:
            return [self.binary, "compose"]
        return ["docker-compose"]

    def parse_ps_output(self, output: str) -> list[ContainerInfo]:
        """Docker prints one JSON object per line (some versions print an array)."""
        text = output.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
            entries = parsed if isinstance(parsed, list) else [parsed]
        except json.JSONDecodeError:
            entries = []
            for line in text.splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.debug(f"Skipping unparseable docker ps line: {line[:80]}")

        containers = []
        for entry in entries:
            names = entry.get("Names") or ""
            ports = [
                PortMapping(int(container), int(host), Protocol(proto.lower()))
                for host, container, proto in _DOCKER_PORT_RE.findall(str(entry.get("Ports") or ""))
            ]
            containers.append(
                ContainerInfo(
                    id=str(entry.get("ID", "")),
                    name=names.split(",")[0] if isinstance(names, str) else str(names[0]),
                    image=str(entry.get("Image", "")),
                    status=ContainerStatus.from_engine_state(entry.get("State") or entry.get("Status")),
                    created_at=_parse_timestamp(entry.get("CreatedAt")),
                    port_mappings=list(dict.fromkeys(ports)),
                    labels=_parse_labels(entry.get("Labels")),
                )
            )
        return containers


_ENGINE_CLASSES: dict[EngineType, type[ContainerEngine]] = {
    EngineType.PODMAN: PodmanEngine,
    EngineType.DOCKER: DockerEngine,
}


def get_compatible_engine(engine_type: EngineType) -> ContainerEngine:
    """Engine handle for ``engine_type``.

    Raises:
        ValueError: For ``EngineType.NONE``
    """
    engine_class = _ENGINE_CLASSES.get(engine_type)
    if engine_class is None:
        raise ValueError(f"No engine handle for {engine_type.value}")
    return engine_class()
