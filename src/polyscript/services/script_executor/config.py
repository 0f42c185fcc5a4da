"""
Script Executor Configuration Module

This module contains the configuration class for the script executor service.
Separated from the coordinator to avoid circular import issues.
"""

import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ScriptExecutorConfig:
    """Configuration for the Script Executor Service.

    Reads the ``script_executor`` section of the configurable dictionary
    (see :func:`polyscript.utils.config.get_full_configuration`) and exposes
    typed settings for the sandbox runner and the execution coordinator.
    """

    def __init__(self, configurable: dict[str, Any] = None):
        config = configurable or {}
        executor_config = config.get("script_executor", {}) or {}

        # Scripts home - must exist on the host before any sandbox is started
        self.scripts_home = Path(executor_config.get("scripts_home", "./storage/scripts"))

        # Backend selection: auto | docker | podman | local
        self.backend = str(executor_config.get("backend", "auto")).lower()

        # Timeout configuration - wall clock per invocation
        self.timeout_seconds = float(executor_config.get("timeout_seconds", 60))

        # Worker pool size
        self.max_concurrent_sandboxes = int(executor_config.get("max_concurrent_sandboxes", 4))

        # Unprivileged uid:gid for container sandboxes
        self.container_user = str(executor_config.get("container_user", "65534:65534"))

        # Per-language overrides (image, interpreter)
        self.languages: dict[str, dict[str, Any]] = executor_config.get("languages") or {}

        self._limits_config = executor_config.get("limits") or {}
        self._limits = None

        if self.timeout_seconds <= 0:
            raise ValueError(
                f"script_executor.timeout_seconds must be positive, got {self.timeout_seconds}"
            )
        if self.max_concurrent_sandboxes < 1:
            raise ValueError(
                "script_executor.max_concurrent_sandboxes must be at least 1, "
                f"got {self.max_concurrent_sandboxes}"
            )
        if self.backend not in ("auto", "docker", "podman", "local"):
            raise ValueError(
                f"script_executor.backend must be one of auto, docker, podman, local; "
                f"got '{self.backend}'"
            )

    @classmethod
    def from_global_config(cls) -> "ScriptExecutorConfig":
        """Build settings from the process-wide configuration (config.yml or defaults)."""
        from polyscript.utils.config import get_full_configuration

        return cls(get_full_configuration())

    @property
    def limits(self):
        """Resource ceilings applied to every sandbox (lazy-loaded and validated).

        :return: Validated resource limits
        :rtype: ResourceLimits
        :raises ValueError: If a limit value is malformed
        """
        if self._limits is None:
            from polyscript.services.script_executor.execution.limits import ResourceLimits

            self._limits = ResourceLimits.from_config(self._limits_config)
            logger.debug(f"Sandbox resource limits: {self._limits}")

        return self._limits

    def language_settings(self, language: str) -> dict[str, Any]:
        """Per-language overrides from ``script_executor.languages.<language>``."""
        return dict(self.languages.get(language) or {})
