"""Color and style management for the deck CLI.

Semantic style names (success, error, path, command) are defined once in a
rich Theme and a matching questionary Style, both built from the active
:class:`ColorTheme`. Commands print through the shared :data:`console`.
"""

import sys
from dataclasses import dataclass

import yaml
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from questionary import Style as QuestionaryStyle
from rich.console import Console
from rich.theme import Theme

from deck.utils.logger import get_logger

logger = get_logger("cli")


@dataclass
class ColorTheme:
    """A complete CLI color theme.

    ``error`` and ``warning`` follow UI conventions and rarely change; the
    remaining colors give the CLI its identity.
    """

    error: str = "#ff5555"
    warning: str = "#ffaa00"

    primary: str = "#4f9dde"
    success: str = "#5fb878"
    accent: str = "#7fd1c7"
    command: str = "#d7a65f"
    path: str = "#a2ae9d"
    info: str = "#8fa8c8"

    text_primary: str = "#ffffff"
    text_secondary: str = "#888888"
    text_dim: str = "#666666"
    text_disabled: str = "#444444"
    border_default: str = "#555555"
    border_dim: str = "#444444"

    def __post_init__(self):
        self.primary_dark = self._adjust_brightness(self.primary, 0.85)
        self.header = self.primary
        self.subheader = self.primary_dark
        self.border_accent = self.info

    @staticmethod
    def _adjust_brightness(hex_color: str, factor: float) -> str:
        """Scale a ``#rrggbb`` color; factors below 1.0 darken."""
        hex_color = hex_color.lstrip("#")
        r, g, b = int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)
        r = max(0, min(255, int(r * factor)))
        g = max(0, min(255, int(g * factor)))
        b = max(0, min(255, int(b * factor)))
        return f"#{r:02x}{g:02x}{b:02x}"


DEFAULT_THEME = ColorTheme()

# High-contrast variant for light terminals
DAYLIGHT_THEME = ColorTheme(
    primary="#1f5f99",
    success="#2e7d32",
    accent="#00796b",
    command="#8d5a00",
    path="#555555",
    info="#37474f",
    text_primary="#000000",
    text_secondary="#444444",
    text_dim="#777777",
)

THEME_REGISTRY = {
    "default": DEFAULT_THEME,
    "daylight": DAYLIGHT_THEME,
}

_active_theme = DEFAULT_THEME


def get_active_theme() -> ColorTheme:
    return _active_theme


def _build_console(rich_theme: Theme) -> Console:
    # Windows consoles need UTF-8 forced for the status glyphs
    if sys.platform == "win32":
        return Console(theme=rich_theme, force_terminal=True, legacy_windows=False)
    return Console(theme=rich_theme)


def set_theme(theme: ColorTheme):
    """Activate ``theme`` and rebuild the console and prompt style."""
    global _active_theme, console, custom_style
    _active_theme = theme
    console = _build_console(_build_rich_theme(theme))
    custom_style = _build_questionary_style(theme)


def load_theme_from_config(config_path: str | None = None) -> ColorTheme:
    """Theme named by ``cli.theme`` in the project configuration."""
    from deck.utils.config import get_config_value

    theme_name = get_config_value("cli.theme", "default", config_path)
    theme = THEME_REGISTRY.get(theme_name)
    if theme is None:
        logger.warning(f"Unknown theme '{theme_name}', using default")
        theme = DEFAULT_THEME
    return theme


def initialize_theme_from_config(config_path: str | None = None):
    """Apply the configured theme, falling back to the default on any config error."""
    try:
        set_theme(load_theme_from_config(config_path))
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.debug(f"Failed to load theme from config: {e}, using default")
        set_theme(DEFAULT_THEME)


def _build_rich_theme(theme: ColorTheme) -> Theme:
    return Theme(
        {
            "success": f"bold {theme.success}",
            "error": f"bold {theme.error}",
            "warning": f"bold {theme.warning}",
            "info": f"bold {theme.info}",
            "primary": f"bold {theme.primary}",
            "secondary": theme.text_secondary,
            "dim": theme.text_dim,
            "disabled": theme.text_disabled,
            "bold_primary": f"bold {theme.primary}",
            "header": f"bold {theme.header}",
            "subheader": f"bold {theme.subheader}",
            "label": "bold",
            "value": theme.success,
            "path": theme.path,
            "command": theme.command,
            "accent": theme.accent,
            "border": theme.border_default,
            "border_accent": theme.border_accent,
            "border_dim": theme.border_dim,
        }
    )


def _build_questionary_style(theme: ColorTheme) -> QuestionaryStyle:
    return QuestionaryStyle(
        [
            ("qmark", f"fg:{theme.accent} bold"),
            ("question", "bold"),
            ("answer", f"fg:{theme.primary} bold"),
            ("pointer", f"fg:{theme.primary} bold"),
            ("highlighted", f"fg:{theme.primary} bold"),
            ("selected", f"fg:{theme.accent}"),
            ("separator", f"fg:{theme.text_dim}"),
            ("instruction", f"fg:{theme.text_dim} italic"),
            ("text", f"fg:{theme.text_secondary}"),
            ("disabled", f"fg:{theme.text_disabled} italic"),
        ]
    )


deck_theme = _build_rich_theme(_active_theme)
custom_style = _build_questionary_style(_active_theme)
console = _build_console(deck_theme)


def get_key_bindings() -> KeyBindings:
    """Key bindings for prompts: ESC aborts like Ctrl+C."""
    bindings = KeyBindings()

    @bindings.add(Keys.Escape)
    def _(event):
        event.app.exit(exception=KeyboardInterrupt)

    return bindings


class Styles:
    """Style names defined in the rich theme."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    BOLD = "bold"
    DIM = "dim"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    BOLD_PRIMARY = "bold_primary"

    HEADER = "header"
    SUBHEADER = "subheader"
    LABEL = "label"
    VALUE = "value"
    PATH = "path"
    COMMAND = "command"
    ACCENT = "accent"

    BORDER = "border"
    BORDER_ACCENT = "border_accent"
    BORDER_DIM = "border_dim"


class Messages:
    """Pre-formatted markup for common message shapes."""

    @staticmethod
    def success(text: str) -> str:
        return f"[success]✓ {text}[/success]"

    @staticmethod
    def error(text: str) -> str:
        return f"[error]✗ {text}[/error]"

    @staticmethod
    def warning(text: str) -> str:
        return f"[warning]⚠️  {text}[/warning]"

    @staticmethod
    def info(text: str) -> str:
        return f"[info]ℹ️  {text}[/info]"

    @staticmethod
    def header(text: str) -> str:
        return f"[header]{text}[/header]"

    @staticmethod
    def label_value(label: str, value: str) -> str:
        return f"[label]{label}:[/label] [value]{value}[/value]"

    @staticmethod
    def command(text: str) -> str:
        return f"[command]{text}[/command]"

    @staticmethod
    def path(text: str) -> str:
        return f"[path]{text}[/path]"


__all__ = [
    "ColorTheme",
    "DEFAULT_THEME",
    "DAYLIGHT_THEME",
    "THEME_REGISTRY",
    "get_active_theme",
    "set_theme",
    "load_theme_from_config",
    "initialize_theme_from_config",
    "console",
    "custom_style",
    "get_key_bindings",
    "Styles",
    "Messages",
]
