"""On-disk layout of the ``.deck`` directory and helpers that create entries in it."""

import re
import shutil
from pathlib import Path

from deck.models import Layer
from deck.utils.logger import get_logger

logger = get_logger("resources")

DECK_DIR = ".deck"

# Marker files checked in order; first match wins
_PROJECT_TYPE_MARKERS: tuple[tuple[str, str], ...] = (
    ("Cargo.toml", "tauri"),
    ("pubspec.yaml", "flutter"),
    ("*.csproj", "avalonia"),
    ("package.json", "node"),
    ("pyproject.toml", "python"),
    ("requirements.txt", "python"),
)

UNKNOWN_PROJECT_TYPE = "unknown"


class DeckLayout:
    """Paths of the three-layer hierarchy for one project root."""

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.deck_dir = self.project_root / DECK_DIR

    @property
    def templates_dir(self) -> Path:
        return self.layer_dir(Layer.TEMPLATES)

    @property
    def custom_dir(self) -> Path:
        return self.layer_dir(Layer.CUSTOM)

    @property
    def images_dir(self) -> Path:
        return self.layer_dir(Layer.IMAGES)

    @property
    def logs_dir(self) -> Path:
        return self.deck_dir / "logs"

    def layer_dir(self, layer: Layer) -> Path:
        return self.deck_dir / layer.value

    def layer_of(self, path: Path) -> Layer | None:
        """Return the layer whose root directly contains ``path``."""
        parent = Path(path).resolve().parent
        for layer in Layer:
            if parent == self.layer_dir(layer).resolve():
                return layer
        return None

    def ensure_skeleton(self) -> None:
        """Create the layer directories if missing. Safe to call repeatedly."""
        for directory in (self.templates_dir, self.custom_dir, self.images_dir, self.logs_dir):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.debug(f"Created {directory}")

    def has_templates(self) -> bool:
        if not self.templates_dir.is_dir():
            return False
        return any(child.is_dir() for child in self.templates_dir.iterdir())


def detect_project_type(project_root: str | Path) -> str:
    """Guess the project type from marker files in the project root.

    Returns:
        ``tauri``, ``flutter``, ``avalonia``, ``node``, ``python`` or ``unknown``
    """
    root = Path(project_root)
    for pattern, project_type in _PROJECT_TYPE_MARKERS:
        if any(root.glob(pattern)):
            logger.debug(f"Detected project type '{project_type}' from {pattern}")
            return project_type
    return UNKNOWN_PROJECT_TYPE


def unique_name(layer_root: Path, base_name: str) -> str:
    """Return ``base_name`` or the next free ``base_name-N`` under ``layer_root``.

    N is one more than the largest numeric suffix already in use, so deleting
    ``name-1`` does not cause ``name-2`` to be reused as ``name-1``.
    """
    if not (layer_root / base_name).exists():
        return base_name

    pattern = re.compile(rf"^{re.escape(base_name)}-(\d+)$")
    highest = 0
    if layer_root.is_dir():
        for child in layer_root.iterdir():
            match = pattern.match(child.name)
            if match:
                highest = max(highest, int(match.group(1)))
    return f"{base_name}-{highest + 1}"


def copy_resource(source: Path, destination: Path) -> Path:
    """Recursively copy a resource directory.

    Raises:
        FileNotFoundError: If ``source`` does not exist
        FileExistsError: If ``destination`` already exists
    """
    if not source.is_dir():
        raise FileNotFoundError(f"Source directory does not exist: {source}")
    if destination.exists():
        raise FileExistsError(f"Refusing to overwrite existing directory: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, destination, symlinks=True)
    logger.info(f"Copied {source.name} → {destination.parent.name}/{destination.name}")
    return destination
