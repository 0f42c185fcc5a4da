"""Sandbox runner: one isolated, bounded execution per invocation.

The runner is exception-based. It returns an :class:`ExecutionSuccess` when the
script produced a well-formed result and raises a categorized
:class:`ScriptExecutorException` otherwise:

- :class:`EnvironmentUnavailableError`: scripts home or backend missing
- :class:`ExecutionTimeoutError`: wall-clock timeout, sandbox killed
- :class:`ResourceExceededError`: OOM kill, SIGKILL or SIGXCPU without a timeout,
  or the interpreter reporting a failed allocation
- :class:`ScriptRuntimeError`: non-zero exit, with captured stderr
- :class:`MalformedOutputError`: exit 0 but no valid result envelope

Whatever happens, the sandbox is cleaned up before ``execute`` returns or
raises, so the caller's worker slot is never released while an environment is
still alive.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from polyscript.utils.logger import get_logger

from ..exceptions import (
    EnvironmentUnavailableError,
    ExecutionTimeoutError,
    ResourceExceededError,
    ScriptRuntimeError,
)
from ..models import ExecutionSuccess, SandboxResult
from .backends import SandboxBackend, create_backend

if TYPE_CHECKING:
    from ..config import ScriptExecutorConfig
    from ..languages.adapters import LanguageAdapter
    from ..models import ExecutionRequest

logger = get_logger("sandbox")

_KILLED_EXIT_CODE = 128 + signal.SIGKILL


class SandboxRunner:
    """Runs a resolved adapter against a request inside a fresh sandbox.

    :param config: Executor settings
    :param backend: Sandbox backend; selected from configuration when omitted
    """

    def __init__(self, config: ScriptExecutorConfig, backend: SandboxBackend | None = None):
        self.config = config
        self.backend = backend or create_backend(config)

    def check_scripts_home(self) -> None:
        scripts_home = self.config.scripts_home
        if not scripts_home.is_dir():
            raise EnvironmentUnavailableError(
                f"Scripts home directory does not exist: {scripts_home}",
                component="scripts_home",
                technical_details={"scripts_home": str(scripts_home)},
            )

    async def execute(self, adapter: LanguageAdapter, request: ExecutionRequest) -> ExecutionSuccess:
        """Execute one invocation.

        Raises:
            ScriptExecutorException: Categorized failure (see module docstring)
        """
        timeout = request.timeout_seconds or self.config.timeout_seconds
        language = adapter.language.value

        self.check_scripts_home()
        await self.backend.check_available(adapter)

        handle = await self.backend.create(adapter, request)
        try:
            try:
                result = await asyncio.wait_for(
                    self.backend.run(handle, adapter.encode_input(request)),
                    timeout=timeout,
                )
            except TimeoutError as err:
                logger.warning(
                    f"Invocation {request.invocation_id} exceeded {timeout:g}s, killing sandbox"
                )
                await self.backend.kill(handle)
                raise ExecutionTimeoutError(
                    timeout, language=language, technical_details={"backend": self.backend.name}
                ) from err
        finally:
            await self.backend.cleanup(handle)

        logger.timing(f"Sandbox for {request.invocation_id} finished in {result.duration_seconds:.2f}s")
        return self.classify(adapter, request, result)

    def classify(
        self, adapter: LanguageAdapter, request: ExecutionRequest, result: SandboxResult
    ) -> ExecutionSuccess:
        """Translate a raw sandbox result into a success, or raise the matching failure."""
        language = adapter.language.value
        details = {"exit_code": result.exit_code, "backend": self.backend.name}

        if result.oom_killed:
            raise ResourceExceededError(
                f"Script exceeded the memory limit ({self.config.limits.memory})",
                resource="memory",
                language=language,
                technical_details=details,
            )
        if result.signal == signal.SIGXCPU:
            raise ResourceExceededError(
                "Script exceeded the CPU time limit", resource="cpu", language=language,
                technical_details=details,
            )
        if result.exit_code == _KILLED_EXIT_CODE:
            raise ResourceExceededError(
                "Script was killed after crossing a resource ceiling",
                resource="memory",
                language=language,
                technical_details=details,
            )
        if result.exit_code != 0 and adapter.exhausted_memory(result.stderr, result.stdout):
            raise ResourceExceededError(
                f"Script ran out of memory (limit {self.config.limits.memory})",
                resource="memory",
                language=language,
                technical_details=details,
            )

        if result.exit_code != 0:
            stderr = result.stderr.strip()
            last_line = stderr.splitlines()[-1] if stderr else ""
            raise ScriptRuntimeError(
                last_line or f"Script exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
                language=language,
                technical_details={"backend": self.backend.name},
            )

        response, stdout = adapter.parse_output(result.stdout)
        return ExecutionSuccess(
            response=response,
            language=language,
            execution_time_seconds=result.duration_seconds,
            stdout=stdout,
            invocation_id=request.invocation_id,
        )
