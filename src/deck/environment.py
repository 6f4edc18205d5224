"""Derive Test/Production variants of a Development configuration.

A project's base ``compose.yaml``/``.env`` pair describes the Development
environment (service names end in ``-dev``). Other environments rename services,
containers and hostnames with their own suffix and shift every well-known port by
a fixed offset so all variants can run at the same time.
"""

import re
from collections.abc import Mapping
from pathlib import Path

from deck.models import EnvironmentType
from deck.ports.env_file import BLANK_OR_COMMENT_RE, PORT_KEYS
from deck.utils.logger import get_logger

logger = get_logger("environment")

# Keys consumed by app tooling to know which environment it runs in
ENVIRONMENT_MARKER_KEYS = ("DOTNET_ENVIRONMENT", "ASPNETCORE_ENVIRONMENT", "APP_ENVIRONMENT")

_SERVICE_RE = re.compile(r"^\s*(\w+)-dev:", re.MULTILINE)
_CONTAINER_NAME_RE = re.compile(r"container_name:\s*\$\{PROJECT_NAME[^}]*\}-dev")
_HOSTNAME_RE = re.compile(r"hostname:\s*\$\{PROJECT_NAME[^}]*\}-dev")
_COMMAND_RE = re.compile(r"command:\s*\w+-dev\s+bash")
_PORT_LINE_RE = re.compile(rf"^({'|'.join(PORT_KEYS)})=([\"']?)(\d+)\2$")
_PORT_KEY_RE = re.compile(rf"^({'|'.join(PORT_KEYS)})\s*=")


def port_offset(env: EnvironmentType, offsets: Mapping[str, int] | None = None) -> int:
    """Offset for ``env``; ``offsets`` (keyed by value or suffix) override the defaults."""
    if offsets:
        for key in (env.value, env.suffix, env.value.lower()):
            if key in offsets:
                return int(offsets[key])
    return env.default_port_offset


def adjusted_port(base_port: int, env: EnvironmentType, offsets: Mapping[str, int] | None = None) -> int:
    """Host port for ``env`` derived from the Development ``base_port``."""
    return base_port + port_offset(env, offsets)


def container_name(base_name: str, env: EnvironmentType) -> str:
    """``base_name`` with the environment suffix, unless it already carries it."""
    suffix = f"-{env.suffix}"
    if base_name.endswith(suffix):
        return base_name
    return f"{base_name}{suffix}"


def environment_of(name: str) -> EnvironmentType:
    """Environment implied by a ``-test``/``-prod`` name suffix; Development otherwise."""
    for env in (EnvironmentType.TEST, EnvironmentType.PRODUCTION):
        if name.endswith(f"-{env.suffix}"):
            return env
    return EnvironmentType.DEVELOPMENT


def project_name_for(image_name: str, env: EnvironmentType) -> str:
    """``PROJECT_NAME`` for an image, such that compose's ``${PROJECT_NAME}-<suffix>``
    container name equals :func:`container_name` of the image."""
    suffix = f"-{env.suffix}"
    return image_name[: -len(suffix)] if image_name.endswith(suffix) else image_name


def rewrite_compose(content: str, env: EnvironmentType, project_name: str) -> str:
    """Rename ``-dev`` services, container names and hostnames for ``env``."""
    if env is EnvironmentType.DEVELOPMENT:
        return content
    suffix = env.suffix
    content = _SERVICE_RE.sub(lambda m: f"  {m.group(1)}-{suffix}:", content)
    content = _CONTAINER_NAME_RE.sub(
        lambda _m: f"container_name: ${{PROJECT_NAME:-{project_name}}}-{suffix}", content
    )
    content = _HOSTNAME_RE.sub(lambda _m: f"hostname: ${{PROJECT_NAME:-{project_name}}}-{suffix}", content)
    content = _COMMAND_RE.sub("command: bash", content)
    return content


def rewrite_env(content: str, env: EnvironmentType, offsets: Mapping[str, int] | None = None) -> str:
    """Set environment markers (re-enabling commented ones) and shift ports for ``env``."""
    offset = port_offset(env, offsets)
    lines = content.splitlines(keepends=True)
    for index, line in enumerate(lines):
        body = line.rstrip("\r\n")
        ending = line[len(body) :]
        if BLANK_OR_COMMENT_RE.match(body) and not any(
            body.lstrip("# ").startswith(f"{key}=") for key in ENVIRONMENT_MARKER_KEYS
        ):
            continue

        uncommented = body.lstrip().lstrip("#").lstrip()
        marker = next((key for key in ENVIRONMENT_MARKER_KEYS if uncommented.startswith(f"{key}=")), None)
        if marker is not None:
            lines[index] = f"{marker}={env.value}{ending}"
            continue

        if not offset:
            continue
        match = _PORT_LINE_RE.match(body.strip())
        if match:
            key, quote, value = match.groups()
            lines[index] = f"{key}={quote}{int(value) + offset}{quote}{ending}"
            continue
        declared = _PORT_KEY_RE.match(body.strip())
        if declared:
            logger.warning(f"{declared.group(1)} is not a plain port number; left unshifted for {env.value}")
    return "".join(lines)


def apply_environment(
    directory: Path,
    env: EnvironmentType,
    project_name: str,
    offsets: Mapping[str, int] | None = None,
) -> None:
    """Rewrite ``compose.yaml`` and ``.env`` inside ``directory`` for ``env``.

    Raises:
        FileNotFoundError: If either file is missing
    """
    compose_path = directory / "compose.yaml"
    env_path = directory / ".env"

    compose_text = compose_path.read_text(encoding="utf-8")
    compose_path.write_text(rewrite_compose(compose_text, env, project_name), encoding="utf-8")

    with open(env_path, encoding="utf-8", newline="") as f:
        env_text = f.read()
    with open(env_path, "w", encoding="utf-8", newline="") as f:
        f.write(rewrite_env(env_text, env, offsets))

    logger.info(f"Configured {directory.name} for {env.value} (port offset {port_offset(env, offsets)})")
