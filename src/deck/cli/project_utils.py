"""Project directory resolution shared by all commands."""

import os
from pathlib import Path


def resolve_project_path(project_arg: str | None = None) -> Path:
    """Resolve the project directory.

    Resolution priority:
    1. --project CLI argument (if provided)
    2. DECK_PROJECT environment variable (if set)
    3. Current working directory (default)

    Args:
        project_arg: Project directory from --project flag (optional)

    Returns:
        Resolved project directory as Path object

    Examples:
        >>> resolve_project_path("~/projects/my-app")
        Path('/Users/user/projects/my-app')

        >>> os.environ['DECK_PROJECT'] = '/tmp/my-app'
        >>> resolve_project_path()
        Path('/tmp/my-app')
    """
    if project_arg:
        return Path(project_arg).expanduser().resolve()

    env_project = os.environ.get("DECK_PROJECT")
    if env_project:
        return Path(env_project).expanduser().resolve()

    return Path.cwd()


def resolve_config_path(project_arg: str | None = None) -> str:
    """Path of ``.deck/config.yml`` inside the resolved project."""
    from deck.utils.config import CONFIG_DIR, CONFIG_FILE_NAME

    return str(resolve_project_path(project_arg) / CONFIG_DIR / CONFIG_FILE_NAME)
