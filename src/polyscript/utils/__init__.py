"""Shared utilities: configuration access and component logging."""

from .config import get_config_builder, get_config_value, get_full_configuration
from .logger import ComponentLogger, get_logger

__all__ = [
    "ComponentLogger",
    "get_config_builder",
    "get_config_value",
    "get_full_configuration",
    "get_logger",
]
