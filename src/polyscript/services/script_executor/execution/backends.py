"""Sandbox backends.

A backend owns the mechanics of one disposable execution environment. The
sandbox runner drives every backend through the same narrow interface:

1. ``check_available(adapter)``: fail fast with EnvironmentUnavailableError
2. ``create(adapter, request)``: allocate the environment, ceilings attached
3. ``run(handle, stdin)``: feed the serialized inputs, collect the raw result
4. ``kill(handle)``: hard stop (timeout path)
5. ``cleanup(handle)``: release everything; never raises

**ContainerBackend** runs each invocation in a fresh Docker or Podman container
created with memory/CPU/pids ceilings, no network, a read-only root filesystem
and all capabilities dropped. **LocalProcessBackend** runs the interpreter
directly on the host in a new session with rlimits, a private temporary working
directory and a scrubbed environment. It is intended for development and CI.
Runtimes that reserve large address ranges up front (V8) are bounded by their
own heap flag instead of an address-space rlimit.

.. warning::
   The local backend does not isolate the filesystem or the network. Use a
   container backend for untrusted code in production.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from polyscript.utils.logger import get_logger

from ..exceptions import EnvironmentUnavailableError
from ..models import SandboxResult
from .runtime_helper import detect_container_runtime, find_interpreter

if TYPE_CHECKING:
    from ..config import ScriptExecutorConfig
    from ..languages.adapters import LanguageAdapter
    from ..models import ExecutionRequest

logger = get_logger("sandbox")

RUN_AS_USER_ENV = "POLYSCRIPT_RUN_AS_USER"

# Exit codes reported by the container CLI itself rather than by the script
_ENGINE_EXIT_CODES = {
    125: "container engine failed to run the sandbox",
    126: "interpreter in the sandbox image cannot be invoked",
    127: "interpreter not found in the sandbox image",
}


@dataclass
class SandboxHandle:
    """One allocated sandbox environment."""

    invocation_id: str
    adapter: LanguageAdapter
    request: ExecutionRequest
    name: str | None = None
    workdir: Path | None = None
    process: asyncio.subprocess.Process | None = None
    killed: bool = False


class SandboxBackend(ABC):
    """Interface implemented by every sandbox backend."""

    name: str = "abstract"

    def __init__(self, config: ScriptExecutorConfig):
        self.config = config

    @abstractmethod
    async def check_available(self, adapter: LanguageAdapter) -> None:
        """Raise EnvironmentUnavailableError if this backend cannot run ``adapter``."""

    @abstractmethod
    async def create(self, adapter: LanguageAdapter, request: ExecutionRequest) -> SandboxHandle:
        """Allocate a fresh environment with resource ceilings attached."""

    @abstractmethod
    async def run(self, handle: SandboxHandle, stdin: bytes) -> SandboxResult:
        """Start the runner, feed ``stdin`` and wait for it to exit."""

    @abstractmethod
    async def kill(self, handle: SandboxHandle) -> None:
        """Stop the sandbox immediately."""

    @abstractmethod
    async def cleanup(self, handle: SandboxHandle) -> None:
        """Release all resources held by the sandbox. Must not raise."""

    def describe(self) -> dict[str, Any]:
        return {"backend": self.name}


# =============================================================================
# CONTAINER BACKEND
# =============================================================================


class ContainerBackend(SandboxBackend):
    """Fresh Docker/Podman container per invocation, driven through the engine CLI.

    :param config: Executor settings (limits, container user)
    :param runtime: ``docker`` or ``podman``; detected on first use when omitted
    """

    name = "container"

    def __init__(self, config: ScriptExecutorConfig, runtime: str | None = None):
        super().__init__(config)
        self._runtime = runtime

    @property
    def runtime(self) -> str:
        if self._runtime is None:
            preferred = self.config.backend if self.config.backend != "auto" else None
            self._runtime = detect_container_runtime(preferred)
        return self._runtime

    async def check_available(self, adapter: LanguageAdapter) -> None:
        if self._runtime is None:
            await asyncio.to_thread(lambda: self.runtime)

    async def _engine(
        self, *args: str, stdin: bytes | None = None
    ) -> tuple[int, str, str]:
        """Run one engine CLI command to completion."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.runtime,
                *args,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise EnvironmentUnavailableError(
                f"Container runtime '{self.runtime}' is not installed", component=self.runtime
            ) from e

        stdout, stderr = await process.communicate(stdin)
        return (
            process.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    def create_args(self, adapter: LanguageAdapter, request: ExecutionRequest, name: str) -> list[str]:
        """Arguments for ``<runtime> create``."""
        return [
            "create",
            "-i",
            "--name", name,
            "--label", f"polyscript.invocation={request.invocation_id}",
            *self.config.limits.container_args(),
            "--read-only",
            "--tmpfs", "/tmp:rw,size=16m",
            "--workdir", "/tmp",
            "--cap-drop", "ALL",
            "--security-opt", "no-new-privileges",
            "--user", self.config.container_user,
            "-e", f"{RUN_AS_USER_ENV}={request.run_as_user_id or ''}",
            adapter.image,
            *adapter.command(memory_bytes=self.config.limits.memory_bytes),
        ]

    async def create(self, adapter: LanguageAdapter, request: ExecutionRequest) -> SandboxHandle:
        name = f"polyscript-{request.invocation_id[:12]}"
        returncode, _, stderr = await self._engine(*self.create_args(adapter, request, name))
        if returncode != 0:
            raise EnvironmentUnavailableError(
                f"Failed to create sandbox container from image '{adapter.image}': {stderr.strip()}",
                component=self.runtime,
                language=adapter.language,
                technical_details={"image": adapter.image, "exit_code": returncode},
            )

        logger.debug(f"Created container {name} ({adapter.image})")
        return SandboxHandle(request.invocation_id, adapter, request, name=name)

    async def run(self, handle: SandboxHandle, stdin: bytes) -> SandboxResult:
        start_time = time.monotonic()
        process = await asyncio.create_subprocess_exec(
            self.runtime,
            "start", "-a", "-i", handle.name,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        handle.process = process

        stdout_bytes, stderr_bytes = await process.communicate(stdin)
        duration = time.monotonic() - start_time
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        exit_code = process.returncode

        oom_killed = False
        if exit_code != 0:
            oom_killed = await self._oom_killed(handle.name)
            if not oom_killed and exit_code in _ENGINE_EXIT_CODES:
                raise EnvironmentUnavailableError(
                    f"{_ENGINE_EXIT_CODES[exit_code]}: {stderr.strip()}",
                    component=self.runtime,
                    language=handle.adapter.language,
                    technical_details={"exit_code": exit_code, "image": handle.adapter.image},
                )

        return SandboxResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
            oom_killed=oom_killed,
        )

    async def _oom_killed(self, name: str) -> bool:
        returncode, stdout, _ = await self._engine(
            "inspect", "--format", "{{.State.OOMKilled}}", name
        )
        return returncode == 0 and stdout.strip().lower() == "true"

    async def kill(self, handle: SandboxHandle) -> None:
        handle.killed = True
        if handle.name:
            await self._engine("kill", handle.name)
        if handle.process is not None and handle.process.returncode is None:
            handle.process.kill()
            await handle.process.wait()

    async def cleanup(self, handle: SandboxHandle) -> None:
        if not handle.name:
            return
        try:
            returncode, _, stderr = await self._engine("rm", "-f", handle.name)
            if returncode != 0:
                logger.warning(f"Failed to remove container {handle.name}: {stderr.strip()}")
            else:
                logger.debug(f"Removed container {handle.name}")
        except Exception as e:
            logger.warning(f"Failed to remove container {handle.name}: {e}")

    def describe(self) -> dict[str, Any]:
        return {"backend": self.name, "runtime": self._runtime}


# =============================================================================
# LOCAL PROCESS BACKEND
# =============================================================================


class LocalProcessBackend(SandboxBackend):
    """Host interpreter in its own session, bounded by rlimits (development use)."""

    name = "local"

    def _interpreter_path(self, adapter: LanguageAdapter) -> str:
        path = find_interpreter(adapter.interpreter)
        if path is None:
            raise EnvironmentUnavailableError(
                f"Interpreter '{adapter.interpreter}' for {adapter.display_name} is not on PATH",
                component=adapter.interpreter,
                language=adapter.language,
            )
        return path

    async def check_available(self, adapter: LanguageAdapter) -> None:
        self._interpreter_path(adapter)

    def _environment(self, handle: SandboxHandle) -> dict[str, str]:
        """Scrubbed environment: nothing from the host leaks except PATH."""
        return {
            "PATH": os.environ.get("PATH", os.defpath),
            "HOME": str(handle.workdir),
            "TMPDIR": str(handle.workdir),
            "LANG": "C.UTF-8",
            RUN_AS_USER_ENV: handle.request.run_as_user_id or "",
        }

    def _preexec(self, adapter: LanguageAdapter, timeout_seconds: float):
        rlimits = self.config.limits.rlimits(
            timeout_seconds, cap_address_space=adapter.caps_address_space
        )

        def apply_limits() -> None:
            import resource

            for limit, values in rlimits:
                resource.setrlimit(limit, values)

        return apply_limits

    async def create(self, adapter: LanguageAdapter, request: ExecutionRequest) -> SandboxHandle:
        workdir = await asyncio.to_thread(
            tempfile.mkdtemp, prefix=f"polyscript-{request.invocation_id[:12]}-", dir=self.config.scripts_home
        )
        logger.debug(f"Created sandbox workdir {workdir}")
        return SandboxHandle(request.invocation_id, adapter, request, workdir=Path(workdir))

    async def run(self, handle: SandboxHandle, stdin: bytes) -> SandboxResult:
        interpreter = self._interpreter_path(handle.adapter)
        timeout = handle.request.timeout_seconds or self.config.timeout_seconds

        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *handle.adapter.command(interpreter, self.config.limits.memory_bytes),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(handle.workdir),
                env=self._environment(handle),
                start_new_session=True,
                preexec_fn=self._preexec(handle.adapter, timeout),
            )
        except FileNotFoundError as e:
            raise EnvironmentUnavailableError(
                f"Interpreter '{interpreter}' could not be started",
                component=handle.adapter.interpreter,
                language=handle.adapter.language,
            ) from e
        handle.process = process

        stdout_bytes, stderr_bytes = await process.communicate(stdin)
        duration = time.monotonic() - start_time

        returncode = process.returncode
        received_signal = -returncode if returncode < 0 else None
        exit_code = 128 + received_signal if received_signal else returncode

        return SandboxResult(
            exit_code=exit_code,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            duration_seconds=duration,
            signal=received_signal,
        )

    async def kill(self, handle: SandboxHandle) -> None:
        handle.killed = True
        process = handle.process
        if process is None or process.returncode is not None:
            return
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await process.wait()

    async def cleanup(self, handle: SandboxHandle) -> None:
        try:
            if handle.process is not None and handle.process.returncode is None:
                await self.kill(handle)
        except Exception as e:
            logger.warning(f"Failed to stop sandbox process for {handle.invocation_id}: {e}")
        if handle.workdir is not None:
            await asyncio.to_thread(shutil.rmtree, handle.workdir, ignore_errors=True)
            logger.debug(f"Removed sandbox workdir {handle.workdir}")


def create_backend(config: ScriptExecutorConfig) -> SandboxBackend:
    """Backend selected by ``script_executor.backend``."""
    if config.backend == "local":
        return LocalProcessBackend(config)
    return ContainerBackend(config)
