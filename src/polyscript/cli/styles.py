"""Centralized color and style management for the Polyscript CLI.

Semantic style names (success, error, warning) are mapped to colors in one
Rich theme so every command renders consistently.
"""

import sys
from dataclasses import dataclass

from rich.console import Console
from rich.theme import Theme


@dataclass
class ColorTheme:
    """Color theme for the CLI."""

    # Fixed standard colors
    error: str = "#ff0000"
    warning: str = "#ffaa00"

    # Theme colors
    primary: str = "#5FA8D3"
    success: str = "#62B6A4"
    accent: str = "#CAE9FF"
    command: str = "#9988A1"
    path: str = "#A2AE9D"
    info: str = "#5FA8D3"

    # Neutral colors
    text_secondary: str = "#888888"
    text_dim: str = "#666666"
    border_default: str = "#555555"
    border_dim: str = "#444444"


def _build_rich_theme(theme: ColorTheme) -> Theme:
    """Build a Rich Theme from a ColorTheme."""
    return Theme(
        {
            "success": f"bold {theme.success}",
            "error": f"bold {theme.error}",
            "warning": f"bold {theme.warning}",
            "info": f"bold {theme.info}",
            "primary": f"bold {theme.primary}",
            "secondary": theme.text_secondary,
            "dim": theme.text_dim,
            "header": f"bold {theme.primary}",
            "label": "bold",
            "value": theme.success,
            "path": theme.path,
            "command": theme.command,
            "accent": theme.accent,
            "border": theme.border_default,
            "border_dim": theme.border_dim,
        }
    )


class Styles:
    """Style names defined in the Rich theme."""

    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DIM = "dim"
    PRIMARY = "primary"
    HEADER = "header"
    LABEL = "label"
    VALUE = "value"
    PATH = "path"
    COMMAND = "command"
    ACCENT = "accent"
    BORDER = "border"
    BORDER_DIM = "border_dim"


class Messages:
    """Pre-formatted message helpers for common patterns."""

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
    def path(text: str) -> str:
        return f"[path]{text}[/path]"


polyscript_theme = _build_rich_theme(ColorTheme())

# On Windows, force UTF-8 capable output for the status symbols
if sys.platform == "win32":
    console = Console(theme=polyscript_theme, force_terminal=True, legacy_windows=False)
else:
    console = Console(theme=polyscript_theme)


__all__ = [
    "ColorTheme",
    "Messages",
    "Styles",
    "console",
    "polyscript_theme",
]
