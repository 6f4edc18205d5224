"""Directory provenance policy for the Images layer.

Image directories are named after the container image built from them. Renaming
or deleting one silently breaks that mapping, so those operations are refused.
The policy is advisory: it is checked by Deck's own code paths, it does not lock
anything on the filesystem.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from deck.exceptions import DirectoryIntegrityViolationError
from deck.models import Layer
from deck.resources.layout import DeckLayout
from deck.utils.logger import get_logger

logger = get_logger("resources")

PROVENANCE_EXPLANATION = (
    "Deck keeps configurations in three layers: templates/ (upstream, read-only), "
    "custom/ (your editable copies) and images/ (snapshots that were built into a "
    "container image). An images/ directory name is the image's identity."
)


class DirectoryOperation(Enum):
    READ = "read"
    CREATE = "create"
    RENAME = "rename"
    DELETE = "delete"


class PermissionLevel(Enum):
    ALLOWED = "allowed"
    WARNING = "warning"
    DENIED = "denied"


@dataclass
class PermissionResult:
    operation: DirectoryOperation
    permission: PermissionLevel
    reason: str
    alternatives: list[str] = field(default_factory=list)

    @property
    def is_allowed(self) -> bool:
        return self.permission is not PermissionLevel.DENIED


def check_directory_operation(
    layout: DeckLayout, path: Path, operation: DirectoryOperation
) -> PermissionResult:
    """Evaluate ``operation`` on ``path`` against the provenance policy.

    Only directories directly under ``.deck/images`` are policed; everything
    else is allowed.
    """
    if layout.layer_of(path) is not Layer.IMAGES:
        return PermissionResult(operation, PermissionLevel.ALLOWED, "Not an image directory")

    if operation is DirectoryOperation.READ:
        return PermissionResult(operation, PermissionLevel.ALLOWED, "Reading is unrestricted")

    if operation is DirectoryOperation.CREATE:
        return PermissionResult(
            operation,
            PermissionLevel.WARNING,
            "Creating files inside an image directory is allowed but bypasses the "
            "Templates → Custom → Images workflow",
        )

    verb = "Deleting" if operation is DirectoryOperation.DELETE else "Renaming"
    return PermissionResult(
        operation,
        PermissionLevel.DENIED,
        f"{verb} '{Path(path).name}' would break the mapping between the directory "
        f"and the image built from it. {PROVENANCE_EXPLANATION}",
        alternatives=[
            "Create a new variant under .deck/custom/ and start it to produce a new image",
            "Use 'deck start' and pick the custom configuration instead",
        ],
    )


def enforce_directory_operation(layout: DeckLayout, path: Path, operation: DirectoryOperation) -> None:
    """Raise if the policy denies ``operation``; log a warning if it only discourages it.

    Raises:
        DirectoryIntegrityViolationError: For rename/delete of an image directory
    """
    result = check_directory_operation(layout, path, operation)
    if result.permission is PermissionLevel.DENIED:
        raise DirectoryIntegrityViolationError(
            result.reason, path=Path(path), operation=operation.value, suggestions=result.alternatives
        )
    if result.permission is PermissionLevel.WARNING:
        logger.warning(result.reason)
