"""Read and write the ``.deck-metadata`` file of an Images-layer directory.

The file is plain ``KEY=VALUE`` lines, so it is parsed with python-dotenv just
like the ``.env`` next to it.
"""

from datetime import datetime, timezone
from pathlib import Path

from dotenv import dotenv_values

from deck.models import METADATA_FILE, BuildStatus, ImageMetadata
from deck.utils.logger import get_logger

logger = get_logger("resources")

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# .env keys an image may change at runtime; everything else is baked in at build time
RUNTIME_VARIABLES = frozenset(
    {
        "DEV_PORT",
        "DEBUG_PORT",
        "WEB_PORT",
        "HTTPS_PORT",
        "ANDROID_DEBUG_PORT",
        "PROJECT_NAME",
        "WORKSPACE_PATH",
        "CONTAINER_NAME",
        "NETWORK_NAME",
        "VOLUME_PREFIX",
    }
)


def _format_timestamp(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.debug(f"Ignoring unparseable metadata timestamp {value!r}")
            return None


def split_variables(env_values: dict[str, str | None]) -> tuple[dict[str, str], dict[str, str]]:
    """Split parsed ``.env`` values into (runtime, build-time) variables."""
    runtime, build_time = {}, {}
    for key, value in env_values.items():
        target = runtime if key.upper() in RUNTIME_VARIABLES else build_time
        target[key] = value or ""
    return runtime, build_time


def read_metadata(image_dir: Path) -> ImageMetadata | None:
    """Load ``.deck-metadata`` from ``image_dir``; ``None`` if absent."""
    metadata_file = image_dir / METADATA_FILE
    if not metadata_file.is_file():
        return None

    values = dotenv_values(metadata_file)
    status_value = values.get("BUILD_STATUS") or BuildStatus.BUILDING.value
    try:
        build_status = BuildStatus(status_value)
    except ValueError:
        logger.warning(f"Unknown build status {status_value!r} in {metadata_file}")
        build_status = BuildStatus.FAILED

    metadata = ImageMetadata(
        image_name=values.get("IMAGE_NAME") or image_dir.name,
        created_at=_parse_timestamp(values.get("CREATED_AT")),
        created_by=values.get("CREATED_BY") or "",
        source_config=values.get("SOURCE_CONFIG") or "",
        build_status=build_status,
        last_started=_parse_timestamp(values.get("LAST_STARTED")),
        container_name=values.get("CONTAINER_NAME") or None,
    )

    env_file = image_dir / ".env"
    if env_file.is_file():
        metadata.runtime_variables, metadata.build_time_variables = split_variables(
            dotenv_values(env_file)
        )
    return metadata


def write_metadata(image_dir: Path, metadata: ImageMetadata) -> Path:
    """Write ``metadata`` to ``image_dir/.deck-metadata``, replacing any previous file."""
    lines = [
        f"IMAGE_NAME={metadata.image_name}",
        f"CREATED_AT={_format_timestamp(metadata.created_at)}",
        f"CREATED_BY={metadata.created_by}",
        f"SOURCE_CONFIG={metadata.source_config}",
        f"BUILD_STATUS={metadata.build_status.value}",
        f"LAST_STARTED={_format_timestamp(metadata.last_started)}",
        f"CONTAINER_NAME={metadata.container_name or ''}",
    ]
    metadata_file = image_dir / METADATA_FILE
    metadata_file.write_text("\n".join(lines) + "\n", encoding="utf-8")
    logger.debug(f"Updated metadata for {image_dir.name}")
    return metadata_file


def update_build_status(
    image_dir: Path,
    status: BuildStatus,
    *,
    container_name: str | None = None,
    started_at: datetime | None = None,
) -> ImageMetadata:
    """Set the build status (and optionally last start) of an image, creating metadata if needed."""
    metadata = read_metadata(image_dir) or ImageMetadata(
        image_name=image_dir.name, created_at=datetime.now(timezone.utc)
    )
    metadata.build_status = status
    if container_name:
        metadata.container_name = container_name
    if started_at is not None:
        metadata.last_started = started_at
    write_metadata(image_dir, metadata)
    return metadata
