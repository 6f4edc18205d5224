"""Categorized Exception Hierarchy for Deck.

Every failure the launch workflow can run into maps onto one category, and the
category decides how the failure is reported to the user:

**Configuration Errors**: No usable resource exists in any layer, or a selected
resource is missing required files.

**Port Errors**: A host port needed by the container is occupied and the user
declined every suggestion, or no safe alternative exists.

**Engine Errors**: No container engine is usable, the compose companion is
missing, or the backing VM could not be brought up.

**Install Errors**: The engine installer collaborator reported failure.

**Integrity Errors**: An attempted rename or delete of an Images-layer
directory. These are policy refusals, not crashes.

**Subprocess Errors**: An engine or diagnostic command exited non-zero. The
captured stderr is attached.

All of these are caught at the orchestrator boundary and turned into a
structured :class:`deck.models.LaunchResult`; none of them escapes a top-level
command.

.. seealso::
   :class:`deck.launch.orchestrator.LaunchOrchestrator` : Recovers these errors

Examples:
    Reporting a failure with its remediation hints::

        >>> try:
        ...     await orchestrator.start(env_type)
        ... except DeckError as e:
        ...     console.print(e.message)
        ...     for hint in e.suggestions:
        ...         console.print(f"  • {hint}")
"""

from enum import Enum
from pathlib import Path
from typing import Any


class ErrorCategory(Enum):
    """High-level error categories used for reporting and exit handling.

    :cvar CONFIGURATION: Missing resources or configuration
    :cvar PORT: Unresolved host port conflicts
    :cvar ENGINE: Container engine unavailable
    :cvar INSTALL: Engine installation failed
    :cvar INTEGRITY: Directory provenance policy violations
    :cvar SUBPROCESS: Non-zero exit from an external command
    """

    CONFIGURATION = "configuration"
    PORT = "port"
    ENGINE = "engine"
    INSTALL = "install"
    INTEGRITY = "integrity"
    SUBPROCESS = "subprocess"


class DeckError(Exception):
    """Base exception class for all Deck operations.

    :param message: Human-readable error description
    :type message: str
    :param category: Error category
    :type category: ErrorCategory
    :param technical_details: Additional technical information for debugging
    :type technical_details: Dict[str, Any], optional
    :param suggestions: Bounded list of remediation hints shown to the user
    :type suggestions: List[str], optional

    .. note::
       This base class should not be raised directly. Use specific exception
       subclasses that provide more detailed error information.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        technical_details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.technical_details = technical_details or {}
        self.suggestions = list(suggestions or [])

    def get_user_message(self) -> str:
        """Message suitable for console output, including remediation hints."""
        if not self.suggestions:
            return self.message
        hints = "\n".join(f"  • {hint}" for hint in self.suggestions)
        return f"{self.message}\n{hints}"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigurationMissingError(DeckError):
    """No usable resource in any layer, or a resource lacks required files."""

    def __init__(self, message: str, missing_files: list[str] | None = None, **kwargs):
        super().__init__(message, ErrorCategory.CONFIGURATION, **kwargs)
        self.missing_files = list(missing_files or [])


# =============================================================================
# PORT ERRORS
# =============================================================================


class PortConflictUnresolvedError(DeckError):
    """Host ports stayed conflicted: the user declined, or no alternative exists."""

    def __init__(self, message: str, ports: list[int] | None = None, **kwargs):
        super().__init__(message, ErrorCategory.PORT, **kwargs)
        self.ports = list(ports or [])


# =============================================================================
# ENGINE ERRORS
# =============================================================================


class EngineUnavailableError(DeckError):
    """No container engine (with its compose companion) is usable on this host."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.ENGINE, **kwargs)


class EngineInstallFailedError(DeckError):
    """The engine installer collaborator could not make an engine available."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.INSTALL, **kwargs)


# =============================================================================
# INTEGRITY ERRORS
# =============================================================================


class DirectoryIntegrityViolationError(DeckError):
    """Refused rename/delete of an Images-layer directory.

    Image directories are tied by name to already-built container images, so
    their identity must never change underneath the engine.
    """

    def __init__(self, message: str, path: Path | None = None, operation: str = "", **kwargs):
        super().__init__(message, ErrorCategory.INTEGRITY, **kwargs)
        self.path = path
        self.operation = operation


# =============================================================================
# SUBPROCESS ERRORS
# =============================================================================


class SubprocessFailureError(DeckError):
    """An external command exited with a non-zero status.

    :param command: The argv that was executed
    :param returncode: Process exit code (``None`` when killed on timeout)
    :param stderr: Captured standard error output
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
        **kwargs,
    ):
        super().__init__(message, ErrorCategory.SUBPROCESS, **kwargs)
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr

    def get_user_message(self) -> str:
        base = super().get_user_message()
        if self.stderr.strip():
            return f"{base}\n{self.stderr.strip()}"
        return base
