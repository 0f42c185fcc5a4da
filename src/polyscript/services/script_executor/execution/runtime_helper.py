"""Container runtime detection for Docker and Podman.

Detects which container engine is available to host sandboxes. Selection order:
``CONTAINER_RUNTIME`` environment variable, then ``script_executor.backend``,
then auto-detection (Docker first, then Podman). The result is cached after the
first successful detection.

Examples:
    Basic usage::

        from polyscript.services.script_executor.execution.runtime_helper import (
            detect_container_runtime,
        )

        runtime = detect_container_runtime("auto")
        # Returns: 'docker' or 'podman'
"""

import os
import platform
import shutil
import subprocess

from ..exceptions import EnvironmentUnavailableError

CONTAINER_RUNTIMES = ("docker", "podman")

# Module-level cache for the detected runtime
_cached_runtime: str | None = None


def reset_runtime_cache() -> None:
    """Forget the cached runtime (used by tests and after configuration changes)."""
    global _cached_runtime
    _cached_runtime = None


def detect_container_runtime(preferred: str | None = None) -> str:
    """Get the container runtime binary name.

    Args:
        preferred: ``docker``, ``podman`` or ``auto``/None for auto-detection.
            Overridden by the CONTAINER_RUNTIME environment variable.

    Returns:
        ``'docker'`` or ``'podman'``

    Raises:
        EnvironmentUnavailableError: If no container runtime is installed and running
    """
    global _cached_runtime

    if _cached_runtime is not None:
        return _cached_runtime

    # Determine which runtime to try (priority: env var > config > auto)
    requested = preferred
    env_runtime = os.getenv("CONTAINER_RUNTIME")
    if env_runtime:
        requested = env_runtime

    if requested and requested.lower() in CONTAINER_RUNTIMES:
        runtimes_to_try = [requested.lower()]
    else:
        runtimes_to_try = list(CONTAINER_RUNTIMES)

    for runtime in runtimes_to_try:
        if not shutil.which(runtime):
            continue

        try:
            # Verify the daemon is reachable, not just that the CLI is installed
            result = subprocess.run([runtime, "ps"], capture_output=True, timeout=5)
            if result.returncode == 0:
                _cached_runtime = runtime
                return runtime
        except (subprocess.TimeoutExpired, FileNotFoundError):
            continue

    installed = [runtime for runtime in runtimes_to_try if shutil.which(runtime)]
    if installed:
        messages = [_get_not_running_message(runtime) for runtime in installed]
        raise EnvironmentUnavailableError(
            "Container runtime installed but not running:\n\n" + "\n\n".join(messages),
            component=installed[0],
        )

    raise EnvironmentUnavailableError(
        f"No container runtime found (tried: {', '.join(runtimes_to_try)}). "
        "Install Docker 20.10+ or Podman 4.0+, or set script_executor.backend to 'local' "
        "for development.",
        component=runtimes_to_try[0] if len(runtimes_to_try) == 1 else "container_runtime",
    )


def verify_runtime_is_running(preferred: str | None = None) -> tuple[bool, str]:
    """Check that a container runtime is usable.

    Returns:
        Tuple of (is_running, runtime name or error message)
    """
    try:
        return True, detect_container_runtime(preferred)
    except EnvironmentUnavailableError as e:
        return False, e.message


def find_interpreter(name: str) -> str | None:
    """Absolute path of an interpreter binary, or None if it is not on PATH."""
    if os.path.isabs(name):
        return name if os.access(name, os.X_OK) else None
    return shutil.which(name)


def _get_not_running_message(runtime: str) -> str:
    """Get a platform-specific hint for a runtime whose daemon is not reachable."""
    system = platform.system()

    if runtime == "docker":
        if system in ("Darwin", "Windows"):
            return "Docker Desktop is not running. Start Docker Desktop and try again."
        return (
            "Docker daemon is not running.\n"
            "Start it with: sudo systemctl start docker\n"
            "If this is a permission issue, add the service user to the docker group."
        )

    if system in ("Darwin", "Windows"):
        return "Podman machine is not running. Start it with: podman machine start"
    return (
        "Podman service is not responding.\n"
        "Check status with: systemctl --user status podman.socket"
    )
