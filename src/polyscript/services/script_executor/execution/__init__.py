"""Sandbox execution: backends, resource limits and the sandbox runner."""

from .backends import (
    ContainerBackend,
    LocalProcessBackend,
    SandboxBackend,
    SandboxHandle,
    create_backend,
)
from .limits import ResourceLimits
from .sandbox import SandboxRunner

__all__ = [
    "ContainerBackend",
    "LocalProcessBackend",
    "ResourceLimits",
    "SandboxBackend",
    "SandboxHandle",
    "SandboxRunner",
    "create_backend",
]
