"""
Configuration System

Single-file YAML configuration with environment resolution. Features:
- config.yml discovery (explicit path, CONFIG_FILE env var, current directory)
- ${VAR}, ${VAR:-default} and $VAR substitution
- Pre-computed sections with defaults for the executor, notifications and store
- Dot-path access through get_config_value()

The runtime tolerates a missing config.yml: every section has defaults, so the
engine can be embedded in a host application that configures it in code.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

# Use standard logging (not get_logger) to avoid circular imports with logger.py
# The short name 'CONFIG' enables easy filtering: quiet_logger(['CONFIG'])
logger = logging.getLogger("CONFIG")


DEFAULT_SCRIPT_EXECUTOR_CONFIG: dict[str, Any] = {
    "scripts_home": "./storage/scripts",
    "backend": "auto",
    "timeout_seconds": 60,
    "max_concurrent_sandboxes": 4,
    "container_user": "65534:65534",
    "limits": {
        "memory": "256m",
        "cpus": 1.0,
        "pids": 64,
        "network": False,
    },
    "languages": {},
}

DEFAULT_NOTIFICATIONS_CONFIG: dict[str, Any] = {
    "channels": ["broadcast", "database"],
    "database_path": "./storage/notifications",
}


class ConfigBuilder:
    """
    Configuration builder.

    Features:
    - Single-file YAML loading with validation and error handling
    - Environment variable resolution
    - Pre-computed section dictionaries merged over defaults
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize configuration builder.

        Args:
            config_path: Path to the config.yml file. If None, looks in current directory.

        Raises:
            FileNotFoundError: If no path is given and config.yml is not in the current directory.
        """
        try:
            from dotenv import load_dotenv

            dotenv_path = Path.cwd() / ".env"
            if dotenv_path.exists():
                load_dotenv(dotenv_path, override=False)
                logger.debug(f"Loaded .env file from {dotenv_path}")
        except ImportError:
            logger.warning("python-dotenv not available, skipping .env file loading")

        if config_path is None:
            cwd_config = Path.cwd() / "config.yml"
            if not cwd_config.exists():
                raise FileNotFoundError(
                    f"No config.yml found in current directory: {Path.cwd()}\n"
                    f"Set CONFIG_FILE to point to your config file."
                )
            config_path = cwd_config

        self.config_path = Path(config_path)
        self.raw_config = self._load_config()
        self.configurable = self._build_configurable()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConfigBuilder":
        """Build a configuration from an in-memory mapping (no file involved)."""
        builder = cls.__new__(cls)
        builder.config_path = None
        builder.raw_config = builder._resolve_env_vars(copy.deepcopy(data))
        builder.configurable = builder._build_configurable()
        return builder

    def _load_yaml_file(self, file_path: Path) -> dict[str, Any]:
        """Load and validate a YAML configuration file."""
        try:
            with open(file_path) as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.warning(f"Configuration file is empty: {file_path}")
                return {}

            if not isinstance(config, dict):
                error_msg = f"Configuration file must contain a dictionary/mapping: {file_path}"
                logger.error(error_msg)
                raise ValueError(error_msg)

            return config
        except yaml.YAMLError as e:
            error_msg = f"Error parsing YAML configuration: {e}"
            logger.error(error_msg)
            raise yaml.YAMLError(error_msg) from e

    def _resolve_env_vars(self, data: Any) -> Any:
        """Recursively resolve environment variables in configuration data.

        Supports:
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
                    logger.info(f"Environment variable '{var_name}' not found, keeping original value")
                    return match.group(0)
                return env_value

            pattern = r"\$\{([^}:]+)(?::-(.*?))?\}|\$([A-Za-z_][A-Za-z0-9_]*)"
            return re.sub(pattern, replace_env_var, data)
        else:
            return data

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from single file with environment variables expanded."""
        config = self._resolve_env_vars(self._load_yaml_file(self.config_path))

        logger.info(f"Loaded configuration from {self.config_path}")
        return config

    def _merge_section(self, path: str, defaults: dict[str, Any]) -> dict[str, Any]:
        """Overlay a config section on top of its defaults (one level of nesting deep)."""
        section = self.get(path, None) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Configuration section '{path}' must be a mapping")

        merged = copy.deepcopy(defaults)
        for key, value in section.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return merged

    def _build_configurable(self) -> dict[str, Any]:
        """Build the configurable dictionary with pre-computed sections."""
        return {
            "script_executor": self._merge_section(
                "script_executor", DEFAULT_SCRIPT_EXECUTOR_CONFIG
            ),
            "notifications": self._merge_section("notifications", DEFAULT_NOTIFICATIONS_CONFIG),
            "script_store": self.get("script_store", {}) or {},
            "logging": self.get("logging", {}) or {},
            "project_root": self.get("project_root"),
        }

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
# GLOBAL CONFIGURATION
# =============================================================================

_default_config: ConfigBuilder | None = None

# Per-path config cache for explicit config paths
_config_cache: dict[str, ConfigBuilder] = {}


def _get_config(config_path: str | None = None, set_as_default: bool = False) -> ConfigBuilder:
    """Get configuration instance (singleton with optional explicit path).

    Args:
        config_path: Optional explicit path to configuration file
        set_as_default: If True and config_path is provided, also make it the default

    Returns:
        ConfigBuilder for the specified or default configuration

    Raises:
        FileNotFoundError: If no configuration file can be located
    """
    global _default_config

    if config_path is None:
        if _default_config is None:
            config_file = os.environ.get("CONFIG_FILE")
            _default_config = ConfigBuilder(config_file) if config_file else ConfigBuilder()
            logger.info("Initialized default configuration system")
        return _default_config

    resolved_path = str(Path(config_path).resolve())

    if resolved_path not in _config_cache:
        logger.info(f"Loading configuration from explicit path: {resolved_path}")
        _config_cache[resolved_path] = ConfigBuilder(resolved_path)

    if set_as_default:
        _default_config = _config_cache[resolved_path]

    return _config_cache[resolved_path]


def _get_configurable(config_path: str | None = None) -> dict[str, Any]:
    """Get the configurable dict, falling back to defaults when no config file exists."""
    try:
        return _get_config(config_path).configurable
    except FileNotFoundError:
        if config_path is not None:
            raise
        return ConfigBuilder.from_dict({}).configurable


def set_default_config(builder: ConfigBuilder | None) -> None:
    """Install (or clear, with None) the default configuration singleton.

    Host applications that configure the engine in code use this together with
    ConfigBuilder.from_dict(); tests use it to reset global state.
    """
    global _default_config
    _default_config = builder
    if builder is None:
        _config_cache.clear()


# =============================================================================
# PUBLIC CONFIGURATION ACCESS
# =============================================================================


def get_config_builder(
    config_path: str | None = None, set_as_default: bool = False
) -> ConfigBuilder:
    """Get configuration builder instance for full config access.

    Args:
        config_path: Optional explicit path to configuration file
        set_as_default: If True and config_path is provided, set as default config

    Returns:
        ConfigBuilder instance with .raw_config, .configurable and .get()
    """
    return _get_config(config_path, set_as_default)


def get_config_value(path: str, default: Any = None, config_path: str | None = None) -> Any:
    """
    Get a specific configuration value by dot-separated path.

    Pre-computed sections (with defaults applied) are consulted first, then the
    raw YAML content.

    Args:
        path: Dot-separated configuration path (e.g., "script_executor.timeout_seconds")
        default: Default value to return if path is not found
        config_path: Optional explicit path to configuration file

    Returns:
        The configuration value at the specified path, or default if not found

    Raises:
        ValueError: If path is empty or None

    Examples:
        >>> timeout = get_config_value("script_executor.timeout_seconds", 60)
        >>> channels = get_config_value("notifications.channels", ["broadcast"])
    """
    if not path:
        raise ValueError("Configuration path cannot be empty or None")

    configurable = _get_configurable(config_path)

    keys = path.split(".")
    value: Any = configurable

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            try:
                return _get_config(config_path).get(path, default)
            except FileNotFoundError:
                return default

    return value


def get_full_configuration(config_path: str | None = None) -> dict[str, Any]:
    """
    Get the complete configurable dictionary.

    When an explicit config_path is provided, it is also set as the default
    configuration for subsequent calls without a path.

    Args:
        config_path: Optional explicit path to configuration file

    Returns:
        Complete configuration dictionary with all sections and defaults applied
    """
    if config_path is not None:
        return _get_config(config_path, set_as_default=True).configurable
    return _get_configurable()
