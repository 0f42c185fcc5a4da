"""Resource ceilings for sandboxes.

Limits are attached when a sandbox is created and never changed afterwards.
Container backends translate them into engine flags; the local process backend
translates them into POSIX rlimits applied in the child before exec.

Configuration::

    script_executor:
      limits:
        memory: 256m      # <number>[b|k|m|g]
        cpus: 1.0
        pids: 64
        network: false
"""

import math
import re
from dataclasses import asdict, dataclass
from typing import Any

_MEMORY_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)([bkmg]?)$", re.IGNORECASE)
_MEMORY_UNITS = {"": 1, "b": 1, "k": 1024, "m": 1024**2, "g": 1024**3}


@dataclass(frozen=True)
class ResourceLimits:
    """Validated resource ceilings for one sandbox.

    :param memory: Memory ceiling in docker notation (``256m``, ``1g``)
    :param cpus: Fractional CPU quota
    :param pids: Maximum number of processes inside the sandbox
    :param network: Whether the sandbox may use the network
    """

    memory: str = "256m"
    cpus: float = 1.0
    pids: int = 64
    network: bool = False

    @classmethod
    def from_config(cls, config: dict[str, Any] | None) -> "ResourceLimits":
        """Create limits from a ``script_executor.limits`` mapping.

        Raises:
            ValueError: If any value is malformed
        """
        config = config or {}
        defaults = cls()
        try:
            limits = cls(
                memory=str(config.get("memory", defaults.memory)).strip(),
                cpus=float(config.get("cpus", defaults.cpus)),
                pids=int(config.get("pids", defaults.pids)),
                network=bool(config.get("network", defaults.network)),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid sandbox limits configuration: {e}") from e

        limits.validate()
        return limits

    def validate(self) -> None:
        """Raise ValueError if any ceiling is out of range."""
        if not _MEMORY_PATTERN.match(self.memory):
            raise ValueError(
                f"Invalid memory limit '{self.memory}': expected <number>[b|k|m|g], e.g. '256m'"
            )
        if self.memory_bytes < 4 * 1024**2:
            raise ValueError(f"Memory limit '{self.memory}' is below the 4m minimum")
        if self.cpus <= 0:
            raise ValueError(f"CPU limit must be positive, got {self.cpus}")
        if self.pids < 1:
            raise ValueError(f"Process limit must be at least 1, got {self.pids}")

    @property
    def memory_bytes(self) -> int:
        match = _MEMORY_PATTERN.match(self.memory)
        if not match:
            raise ValueError(f"Invalid memory limit '{self.memory}'")
        number, unit = match.groups()
        return int(float(number) * _MEMORY_UNITS[unit.lower()])

    def container_args(self) -> list[str]:
        """Flags for ``docker create`` / ``podman create``."""
        args = [
            "--memory", self.memory,
            "--memory-swap", self.memory,  # no swap beyond the memory ceiling
            "--cpus", f"{self.cpus:g}",
            "--pids-limit", str(self.pids),
        ]
        if not self.network:
            args += ["--network", "none"]
        return args

    def rlimits(
        self, timeout_seconds: float, cap_address_space: bool = True
    ) -> list[tuple[int, tuple[int, int]]]:
        """POSIX rlimits for a local sandbox process.

        CPU time is capped just above the wall-clock timeout, so a busy loop
        receives SIGXCPU if the timer somehow fails to fire. The memory ceiling
        becomes an address-space limit unless ``cap_address_space`` is False,
        for runtimes that reserve far more address space than they use and
        bound their own heap instead.
        """
        import resource

        cpu_seconds = math.ceil(timeout_seconds) + 1
        limits = [
            (resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds + 1)),
            (resource.RLIMIT_CORE, (0, 0)),
        ]
        if cap_address_space:
            limits.insert(0, (resource.RLIMIT_AS, (self.memory_bytes, self.memory_bytes)))
        return limits

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
