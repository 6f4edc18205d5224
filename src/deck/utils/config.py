"""
Configuration System

Project configuration lives in ``.deck/config.yml``. Features:
- Single-file YAML loading with environment variable resolution
- ``.env`` loading from the project root via python-dotenv
- Typed access through the :class:`DeckConfig` pydantic model
- Dot-path access (``get_config_value("templates.branch")``) for ad-hoc lookups
- ``ConfigProvider.ensure()`` writes a default file on first run
"""

import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

# Use standard logging (not get_logger) to avoid circular imports with logger.py
logger = logging.getLogger("CONFIG")

CONFIG_DIR = ".deck"
CONFIG_FILE_NAME = "config.yml"

DEFAULT_TEMPLATE_REPOSITORY = "https://github.com/chatterzhao/deck-templates.git"
DEFAULT_FALLBACK_REPOSITORY = "https://gitee.com/zhaoquan/deck-templates.git"


# =============================================================================
# CONFIGURATION MODEL
# =============================================================================


class TemplatesSettings(BaseModel):
    repository: str = DEFAULT_TEMPLATE_REPOSITORY
    fallback_repository: str | None = DEFAULT_FALLBACK_REPOSITORY
    branch: str = "main"
    cache_ttl: str = "24h"
    auto_update: bool = True

    @field_validator("cache_ttl")
    @classmethod
    def _valid_ttl(cls, value: str) -> str:
        parse_duration(value)
        return value


class ContainerSettings(BaseModel):
    engine: str = "podman"
    auto_install: bool = True


class EnvironmentSettings(BaseModel):
    port_offsets: dict[str, int] = Field(
        default_factory=lambda: {"Development": 0, "Test": 1000, "Production": 2000}
    )


class LoggingSettings(BaseModel):
    level: str = "INFO"
    rich_tracebacks: bool = True
    show_traceback_locals: bool = False
    show_full_paths: bool = False
    logging_colors: dict[str, str] = Field(default_factory=dict)


class CliSettings(BaseModel):
    theme: str = "default"


class DeckConfig(BaseModel):
    """Validated view of ``.deck/config.yml``."""

    templates: TemplatesSettings = Field(default_factory=TemplatesSettings)
    container: ContainerSettings = Field(default_factory=ContainerSettings)
    environments: EnvironmentSettings = Field(default_factory=EnvironmentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CliSettings = Field(default_factory=CliSettings)

    @property
    def cache_ttl(self) -> timedelta:
        return parse_duration(self.templates.cache_ttl)


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd])\s*$", re.IGNORECASE)
_DURATION_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str) -> timedelta:
    """Parse a ``24h``/``30m``/``7d`` style duration.

    Raises:
        ValueError: If the value is not a number followed by s, m, h or d
    """
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid duration '{value}': expected e.g. '30m', '24h' or '7d'")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit.lower()]: int(amount)})


# =============================================================================
# YAML LOADER
# =============================================================================


class ConfigBuilder:
    """
    Loads one YAML configuration file and exposes dot-path access.

    Features:
    - YAML loading with validation and error handling
    - ``${VAR}``/``${VAR:-default}``/``$VAR`` environment variable resolution
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize configuration builder.

        Args:
            config_path: Path to the config.yml file

        Raises:
            FileNotFoundError: If the file does not exist
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"No configuration file at {self.config_path}")

        # .env in the project root makes ${VAR} placeholders resolvable
        dotenv_path = self.config_path.parent.parent / ".env"
        if dotenv_path.exists():
            load_dotenv(dotenv_path, override=False)
            logger.debug(f"Loaded .env file from {dotenv_path}")

        self.raw_config = self._load_config()

    def _load_yaml_file(self, file_path: Path) -> dict[str, Any]:
        """Load and validate a YAML configuration file."""
        try:
            with open(file_path) as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.warning(f"Configuration file is empty: {file_path}")
                return {}

            if not isinstance(config, dict):
                error_msg = f"Configuration file must contain a mapping: {file_path}"
                logger.error(error_msg)
                raise ValueError(error_msg)

            return config
        except yaml.YAMLError as e:
            error_msg = f"Error parsing YAML configuration: {e}"
            logger.error(error_msg)
            raise yaml.YAMLError(error_msg) from e

    def _resolve_env_vars(self, data: Any) -> Any:
        """Recursively resolve environment variables in configuration data.

        Supports both simple and bash-style default value syntax:
        - ${VAR_NAME} - simple substitution
        - ${VAR_NAME:-default_value} - with default value
        - $VAR_NAME - simple substitution without braces
        """
        if isinstance(data, dict):
            return {key: self._resolve_env_vars(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [self._resolve_env_vars(item) for item in data]
        elif isinstance(data, str):

            def replace_env_var(match):
                if match.group(1):
                    var_name = match.group(1)
                    default_value = match.group(2)
                else:
                    var_name = match.group(3)
                    default_value = None

                env_value = os.environ.get(var_name)
                if env_value is None:
                    if default_value is not None:
                        return default_value
                    logger.debug(f"Environment variable '{var_name}' not found, keeping original value")
                    return match.group(0)
                return env_value

            pattern = r"\$\{([^}:]+)(?::-(.*?))?\}|\$([A-Za-z_][A-Za-z0-9_]*)"
            return re.sub(pattern, replace_env_var, data)
        else:
            return data

    def _load_config(self) -> dict[str, Any]:
        config = self._resolve_env_vars(self._load_yaml_file(self.config_path))
        logger.debug(f"Loaded configuration from {self.config_path}")
        return config

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation path."""
        keys = path.split(".")
        value = self.raw_config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default


# =============================================================================
# CONFIGURATION PROVIDER
# =============================================================================


class ConfigProvider:
    """Configuration collaborator for one project root.

    ``ensure()`` creates ``.deck/config.yml`` with defaults when missing;
    ``get_config()`` returns the validated model.
    """

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.config_path = self.project_root / CONFIG_DIR / CONFIG_FILE_NAME

    def exists(self) -> bool:
        return self.config_path.exists()

    def ensure(self) -> Path:
        """Write the default configuration file if none exists (idempotent)."""
        if self.config_path.exists():
            return self.config_path

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        defaults = DeckConfig().model_dump(exclude_none=True)
        with open(self.config_path, "w") as f:
            f.write("# Deck project configuration\n")
            yaml.safe_dump(defaults, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Created default configuration at {self.config_path}")
        _config_cache.pop(str(self.config_path.resolve()), None)
        return self.config_path

    def builder(self) -> ConfigBuilder:
        return _get_config(self.config_path)

    def get_config(self) -> DeckConfig:
        """Load and validate the configuration, falling back to defaults if absent.

        Raises:
            ValueError: If the file exists but does not validate
        """
        if not self.config_path.exists():
            return DeckConfig()
        try:
            return DeckConfig.model_validate(self.builder().raw_config)
        except ValidationError as e:
            raise ValueError(f"Invalid configuration in {self.config_path}:\n{e}") from e

    def get(self, path: str, default: Any = None) -> Any:
        if not self.config_path.exists():
            return default
        return self.builder().get(path, default)


# =============================================================================
# GLOBAL CONFIGURATION
# =============================================================================

# Per-path config cache
_config_cache: dict[str, ConfigBuilder] = {}


def _default_config_path() -> Path:
    """``DECK_CONFIG`` if set, else ``.deck/config.yml`` under ``DECK_PROJECT`` or cwd."""
    explicit = os.environ.get("DECK_CONFIG")
    if explicit:
        return Path(explicit).expanduser()
    root = os.environ.get("DECK_PROJECT")
    base = Path(root).expanduser() if root else Path.cwd()
    return base / CONFIG_DIR / CONFIG_FILE_NAME


def _get_config(config_path: str | Path | None = None) -> ConfigBuilder:
    """Get a cached :class:`ConfigBuilder` for the given (or default) path."""
    path = Path(config_path) if config_path is not None else _default_config_path()
    resolved = str(path.resolve())
    if resolved not in _config_cache:
        _config_cache[resolved] = ConfigBuilder(path)
    return _config_cache[resolved]


def reset_config_cache() -> None:
    """Forget all loaded configuration files."""
    _config_cache.clear()


def get_config_value(path: str, default: Any = None, config_path: str | None = None) -> Any:
    """
    Get a specific configuration value by dot-separated path.

    Returns ``default`` when no configuration file exists yet, so callers work
    before ``deck start`` has created one.

    Args:
        path: Dot-separated configuration path (e.g., "templates.branch")
        default: Default value to return if path is not found
        config_path: Optional explicit path to configuration file

    Raises:
        ValueError: If path is empty or None

    Examples:
        >>> branch = get_config_value("templates.branch", "main")
        >>> level = get_config_value("logging.level", "INFO")
    """
    if not path:
        raise ValueError("Configuration path cannot be empty or None")

    try:
        config = _get_config(config_path)
    except FileNotFoundError:
        return default
    return config.get(path, default)
