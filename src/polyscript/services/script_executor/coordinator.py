"""Execution Coordinator: per-invocation lifecycle.

Every invocation follows the same strictly sequential path::

    PENDING -> RESOLVING -> RUNNING -> {SUCCEEDED | FAILED} -> NOTIFIED

1. **Validate** the request. A :class:`ValidationError` is raised to the caller
   before any sandbox exists and is never notified.
2. **Resolve** the language. Unknown languages go straight from RESOLVING to
   FAILED without the sandbox runner being invoked.
3. **Run** the sandbox and translate the result (or the categorized exception)
   into an :data:`ExecutionOutcome`.
4. **Notify** the outcome exactly once and return it.

There is no automatic retry; ``NOTIFIED`` is terminal.

.. seealso::
   :class:`polyscript.services.script_executor.execution.SandboxRunner` : Sandbox execution
   :class:`polyscript.services.notifications.QueueNotifier` : Outcome delivery
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from polyscript.utils.logger import get_logger

from .config import ScriptExecutorConfig
from .exceptions import EnvironmentUnavailableError, ScriptExecutorException, ValidationError
from .execution.sandbox import SandboxRunner
from .languages.registry import LanguageRegistry, build_default_registry
from .models import (
    ExecutionFailure,
    ExecutionOutcome,
    ExecutionRequest,
    InvocationLifecycle,
    InvocationState,
)

if TYPE_CHECKING:
    from polyscript.services.notifications.notifier import ResultNotifier
    from polyscript.services.script_store.models import ScriptDefinition
    from polyscript.services.script_store.store import ScriptStore

logger = get_logger("coordinator")

LifecycleListener = Callable[[str, InvocationState], None]


class ExecutionCoordinator:
    """Drives invocations from request to notified outcome.

    :param registry: Frozen language registry
    :param runner: Sandbox runner
    :param notifier: Receives every outcome exactly once
    :param store: Script store, required for ``run_script`` and script operations
    :param config: Executor settings (worker pool size)
    :param lifecycle_listener: Called with ``(invocation_id, state)`` on every transition
    """

    def __init__(
        self,
        registry: LanguageRegistry,
        runner: SandboxRunner,
        notifier: ResultNotifier,
        store: ScriptStore | None = None,
        config: ScriptExecutorConfig | None = None,
        lifecycle_listener: LifecycleListener | None = None,
    ):
        self.registry = registry
        self.runner = runner
        self.notifier = notifier
        self.store = store
        self.config = config or runner.config
        self.lifecycle_listener = lifecycle_listener
        self._semaphore: asyncio.Semaphore | None = None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        notifier: ResultNotifier,
        store: ScriptStore | None = None,
        configurable: dict[str, Any] | None = None,
    ) -> ExecutionCoordinator:
        """Coordinator wired from configuration: default registry and configured backend."""
        config = (
            ScriptExecutorConfig(configurable)
            if configurable is not None
            else ScriptExecutorConfig.from_global_config()
        )
        return cls(
            registry=build_default_registry(config),
            runner=SandboxRunner(config),
            notifier=notifier,
            store=store,
            config=config,
        )

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def _advance(self, lifecycle: InvocationLifecycle, state: InvocationState) -> None:
        lifecycle.advance(state)
        logger.debug(f"Invocation {lifecycle.invocation_id}: {state.value}")
        if self.lifecycle_listener is not None:
            self.lifecycle_listener(lifecycle.invocation_id, state)

    @staticmethod
    def _validate_acting_user(acting_user: Any) -> str:
        if acting_user is None or not str(acting_user).strip():
            raise ValidationError("The acting user field is required.", field="acting_user")
        return str(acting_user)

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.config.max_concurrent_sandboxes)
        return self._semaphore

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self, request: ExecutionRequest, acting_user: str) -> ExecutionOutcome:
        """Execute one request and notify ``acting_user`` of the outcome.

        Raises:
            ValidationError: Request is invalid or ``acting_user`` is empty; nothing was
                executed or notified
        """
        request.validate_for_dispatch()
        acting_user = self._validate_acting_user(acting_user)

        lifecycle = InvocationLifecycle(request.invocation_id)
        self._advance(lifecycle, InvocationState.RESOLVING)
        outcome = await self._execute(request, lifecycle)
        await self.notifier.notify(acting_user, outcome, script_id=request.script_id)
        self._advance(lifecycle, InvocationState.NOTIFIED)
        return outcome

    async def _execute(
        self, request: ExecutionRequest, lifecycle: InvocationLifecycle
    ) -> ExecutionOutcome:
        try:
            adapter = self.registry.resolve(request.language)
        except ScriptExecutorException as e:
            logger.warning(f"Invocation {request.invocation_id}: {e.message}")
            self._advance(lifecycle, InvocationState.FAILED)
            return ExecutionFailure.from_exception(e, request.language, request.invocation_id)

        self._advance(lifecycle, InvocationState.RUNNING)
        logger.info(
            f"Running {adapter.display_name} invocation {request.invocation_id}"
            + (f" for script {request.script_id}" if request.script_id else " (preview)")
        )

        try:
            async with self.semaphore:
                outcome: ExecutionOutcome = await self.runner.execute(adapter, request)
        except ScriptExecutorException as e:
            logger.warning(f"Invocation {request.invocation_id} failed ({e.kind.value}): {e.message}")
            outcome = ExecutionFailure.from_exception(
                e, adapter.language.value, request.invocation_id
            )
        except Exception as e:
            logger.error(
                f"Unexpected error in invocation {request.invocation_id}: {e}", exc_info=True
            )
            error = EnvironmentUnavailableError(
                f"Unexpected execution error: {e}",
                component="host",
                language=adapter.language.value,
                technical_details={"error_type": type(e).__name__},
            )
            outcome = ExecutionFailure.from_exception(
                error, adapter.language.value, request.invocation_id
            )

        if outcome.ok:
            self._advance(lifecycle, InvocationState.SUCCEEDED)
            logger.success(f"Invocation {request.invocation_id} succeeded")
        else:
            self._advance(lifecycle, InvocationState.FAILED)
        return outcome

    async def preview(
        self,
        language: str,
        code: str,
        data: Any = None,
        config: Any = None,
        *,
        acting_user: str,
        timeout_seconds: float | None = None,
    ) -> ExecutionOutcome:
        """Ad-hoc run of code not bound to a persisted definition.

        Raises:
            ValidationError: Missing acting user
        """
        request = ExecutionRequest(
            language=language,
            code=code,
            data=data,
            config=config,
            timeout_seconds=timeout_seconds,
            preview=True,
        )
        return await self.run(request, acting_user)

    def _require_store(self) -> ScriptStore:
        if self.store is None:
            raise RuntimeError("ExecutionCoordinator was created without a script store")
        return self.store

    async def run_script(
        self,
        script_id: str,
        data: Any = None,
        *,
        acting_user: str,
        timeout_seconds: float | None = None,
    ) -> ExecutionOutcome:
        """Run a persisted definition as it is at dispatch time.

        The definition is marked as referenced for the duration of the run,
        so it cannot be deleted while its sandbox is alive.

        Raises:
            ScriptNotFoundError: Unknown script
            ValidationError: Definition has no run-as-user, or missing acting user
        """
        store = self._require_store()
        script = store.acquire(script_id)
        try:
            request = self.request_for(script, data, timeout_seconds)
            return await self.run(request, acting_user)
        finally:
            store.release(script_id)

    @staticmethod
    def request_for(
        script: ScriptDefinition, data: Any = None, timeout_seconds: float | None = None
    ) -> ExecutionRequest:
        """Build the request for a definition snapshot."""
        if script.run_as_user_id is None:
            raise ValidationError("The run as user field is required.", field="run_as_user_id")
        return ExecutionRequest(
            language=script.language,
            code=script.code,
            data=data,
            config=script.configuration,
            run_as_user_id=script.run_as_user_id,
            timeout_seconds=timeout_seconds,
            script_id=script.id,
        )

    def submit(self, request: ExecutionRequest, acting_user: str) -> asyncio.Task:
        """Schedule ``run`` on the worker pool and return immediately.

        Validation happens here, synchronously, so an invalid request raises
        instead of producing a task.
        """
        request.validate_for_dispatch()
        self._validate_acting_user(acting_user)
        task = asyncio.create_task(
            self.run(request, acting_user), name=f"polyscript-{request.invocation_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every submitted invocation to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Script operations
    # ------------------------------------------------------------------

    def update_script(self, script_id: str, changes: dict[str, Any]) -> ScriptDefinition:
        """Update a definition; the prior state is saved as a version."""
        return self._require_store().update(script_id, changes)

    def duplicate_script(self, script_id: str, changes: dict[str, Any]) -> ScriptDefinition:
        """Duplicate a definition; ``changes`` must carry ``run_as_user_id``."""
        return self._require_store().duplicate(script_id, changes)
