"""Resource resolution across the Templates → Custom → Images hierarchy."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from deck.models import REQUIRED_FILES, Layer, ResolvedResources, Resource
from deck.resources.layout import UNKNOWN_PROJECT_TYPE, DeckLayout
from deck.resources.metadata import read_metadata
from deck.utils.logger import get_logger

logger = get_logger("resources")


def missing_required_files(directory: Path) -> list[str]:
    """Names of required files absent from ``directory``."""
    return [name for name in REQUIRED_FILES if not (directory / name).is_file()]


def relative_age(created: datetime, now: datetime) -> str:
    """Human-friendly age: ``today``, ``3 days ago``, ``2 weeks ago``, ``5 months ago``."""
    days = (now - created).total_seconds() / 86400
    if days < 1:
        return "today"
    if days < 7:
        count, unit = int(days), "day"
    elif days < 30:
        count, unit = int(days / 7), "week"
    else:
        count, unit = int(days / 30), "month"
    return f"{count} {unit}{'s' if count != 1 else ''} ago"


def matches_env_type(name: str, env_type_filter: str | None) -> bool:
    """True when no filter applies or ``name`` starts with ``"{filter}-"``."""
    if not env_type_filter or env_type_filter.lower() == UNKNOWN_PROJECT_TYPE:
        return True
    return name.startswith(f"{env_type_filter}-")


class ResourceResolver:
    """Scans the three layer roots and annotates each entry with availability.

    Nothing is cached: every :meth:`resolve` call reflects the disk as it is now.
    """

    def __init__(self, layout: DeckLayout, clock: Callable[[], datetime] | None = None):
        self.layout = layout
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, env_type_filter: str | None = None) -> ResolvedResources:
        """Build availability-annotated option lists for all three layers.

        Args:
            env_type_filter: Project type prefix (``tauri``, ``flutter``...). Empty
                or ``unknown`` disables filtering.

        Returns:
            ResolvedResources with one list per layer. A layer that cannot be
            read yields an empty list.
        """
        now = self._clock()
        resolved = ResolvedResources(
            images=self._scan(Layer.IMAGES, env_type_filter, now),
            custom=self._scan(Layer.CUSTOM, env_type_filter, now),
            templates=self._scan(Layer.TEMPLATES, env_type_filter, now),
        )
        logger.debug(
            f"Resolved {len(resolved.images)} images, {len(resolved.custom)} custom, "
            f"{len(resolved.templates)} templates (filter={env_type_filter or 'none'})"
        )
        return resolved

    def find(self, layer: Layer, name: str) -> Resource | None:
        """Resolve a single named resource in ``layer``."""
        path = self.layout.layer_dir(layer) / name
        if not path.is_dir():
            return None
        return self._describe(layer, path, self._clock())

    def _scan(self, layer: Layer, env_type_filter: str | None, now: datetime) -> list[Resource]:
        root = self.layout.layer_dir(layer)
        try:
            if not root.is_dir():
                return []
            directories = [
                entry
                for entry in root.iterdir()
                if entry.is_dir() and matches_env_type(entry.name, env_type_filter)
            ]
            resources = [self._describe(layer, entry, now) for entry in directories]
        except OSError as e:
            logger.warning(f"Could not read {layer.label} directory {root}: {e}")
            return []

        if layer is Layer.IMAGES:
            created = {res.name: self._created_at(res.path) for res in resources}
            resources.sort(key=lambda res: created[res.name], reverse=True)
        else:
            resources.sort(key=lambda res: res.name)
        return resources

    def _describe(self, layer: Layer, path: Path, now: datetime) -> Resource:
        missing = missing_required_files(path)
        return Resource(
            name=path.name,
            layer=layer,
            path=path,
            is_available=not missing,
            unavailable_reason=f"missing {', '.join(missing)}" if missing else "",
            relative_age=relative_age(self._created_at(path), now),
        )

    @staticmethod
    def _created_at(path: Path) -> datetime:
        """Creation time from metadata, else the directory mtime, else the epoch."""
        try:
            metadata = read_metadata(path)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable metadata in {path.name}: {e}")
            metadata = None
        if metadata is not None and metadata.created_at is not None:
            created = metadata.created_at
            return created if created.tzinfo else created.replace(tzinfo=timezone.utc)
        try:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        except OSError:
            return datetime.fromtimestamp(0, tz=timezone.utc)
