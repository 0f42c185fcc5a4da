"""
Component Logger Framework

Provides colored logging for polyscript components with:
- Unified API for all components (registry, sandbox, coordinator, notifier)
- Rich terminal output with component-specific colors
- Graceful fallbacks when configuration is unavailable

Usage:
    logger = get_logger("coordinator")
    logger.key_info("Dispatching invocation")

    logger = get_logger("sandbox")
    logger.info("Creating sandbox")
    logger.debug("Detailed trace")
    logger.success("Invocation completed")
    logger.warning("Something to note")
    logger.error("Something went wrong")
    logger.timing("Execution took 2.5 seconds")

    # Custom loggers with explicit parameters
    logger = get_logger(name="custom_component", color="blue")
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

from polyscript.utils.config import get_config_value


class ComponentLogger:
    """
    Rich-formatted logger for polyscript components with color coding and message hierarchy.

    Message Types:
    - status: High-level lifecycle updates
    - key_info: Important operational information
    - info: Normal operational messages
    - debug: Detailed tracing information
    - warning: Warning messages
    - error: Error messages
    - success: Success messages
    - timing: Timing information
    """

    def __init__(self, base_logger: logging.Logger, component_name: str, color: str = "white"):
        """
        Initialize component logger.

        Args:
            base_logger: Underlying Python logger
            component_name: Name of the component (e.g., 'sandbox', 'coordinator')
            color: Rich color name for this component
        """
        self.base_logger = base_logger
        self.component_name = component_name
        self.color = color

    def _format_message(self, message: str, style: str, emoji: str = "") -> str:
        """Format message with Rich markup and emoji prefix."""
        prefix = f"{emoji}{self.component_name.title()}: "
        if style:
            return f"[{style}]{prefix}{message}[/{style}]"
        return f"{prefix}{message}"

    def status(self, message: str) -> None:
        """Lifecycle status update, logged with key_info formatting."""
        self.key_info(message)

    def key_info(self, message: str) -> None:
        style = f"bold {self.color}" if self.color != "white" else "bold white"
        self.base_logger.info(self._format_message(message, style))

    def info(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, self.color))

    def debug(self, message: str) -> None:
        style = f"dim {self.color}" if self.color != "white" else "dim white"
        self.base_logger.debug(self._format_message(message, style, "🔍 "))

    def warning(self, message: str) -> None:
        self.base_logger.warning(self._format_message(message, "bold yellow", "⚠️  "))

    def error(self, message: str, exc_info: bool = False) -> None:
        self.base_logger.error(self._format_message(message, "bold red", "❌ "), exc_info=exc_info)

    def success(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, "bold green", "✅ "))

    def timing(self, message: str) -> None:
        self.base_logger.info(self._format_message(message, "bold white", "🕒 "))

    @property
    def name(self) -> str:
        return self.base_logger.name


def _setup_rich_logging(level: int = logging.INFO) -> None:
    """Attach a RichHandler to the root logger unless logging is already configured.

    An embedding application that installed its own root handlers keeps them.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    root_logger.setLevel(level)

    try:
        # Hide locals by default: script payloads may carry user data
        rich_tracebacks = get_config_value("logging.rich_tracebacks", True)
        show_traceback_locals = get_config_value("logging.show_traceback_locals", False)
        show_full_paths = get_config_value("logging.show_full_paths", False)
    except Exception:
        rich_tracebacks = True
        show_traceback_locals = False
        show_full_paths = False

    console = Console(
        force_terminal=True,
        width=120,
        color_system="truecolor",
    )

    handler = RichHandler(
        console=console,
        rich_tracebacks=rich_tracebacks,
        markup=True,
        show_path=show_full_paths,
        show_time=True,
        show_level=True,
        tracebacks_show_locals=show_traceback_locals,
    )

    root_logger.addHandler(handler)

    for lib in ["asyncio", "urllib3"]:
        logging.getLogger(lib).setLevel(logging.WARNING)


def get_logger(
    component_name: str | None = None,
    level: int = logging.INFO,
    *,
    name: str | None = None,
    color: str | None = None,
) -> ComponentLogger:
    """
    Get a component logger.

    Primary API:
        component_name: Component name (e.g., 'coordinator', 'sandbox')
        level: Logging level

    Explicit API (for custom loggers or tests):
        name: Direct logger name (keyword-only)
        color: Direct color name (keyword-only)

    Returns:
        ComponentLogger instance

    Examples:
        logger = get_logger("coordinator")
        logger.info("Dispatch started")

        logger = get_logger(name="test_logger", color="blue")
    """
    _setup_rich_logging(level)

    if name is not None:
        return ComponentLogger(logging.getLogger(name), name, color or "white")

    if component_name is None:
        raise ValueError(
            "Component name is required. Usage: get_logger('component_name') or "
            "get_logger(name='custom_name', color='blue')"
        )

    base_logger = logging.getLogger(component_name)

    try:
        color = get_config_value(f"logging.logging_colors.{component_name}") or "white"
    except Exception as e:
        color = "white"
        if os.getenv("DEBUG_LOGGING"):
            print(f"⚠️  WARNING: Failed to load color config for {component_name}: {e}.")

    return ComponentLogger(base_logger, component_name, color)
