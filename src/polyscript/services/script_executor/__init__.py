"""Script Executor Service: polyglot script execution in disposable sandboxes.

This package runs user-authored, untrusted scripts (PHP, Lua, Python,
JavaScript) inside isolated, resource-bounded environments and reports every
outcome to the requesting user exactly once.

Core Components:
    - :class:`LanguageRegistry`: Resolves language identifiers to adapters
    - :class:`SandboxRunner`: Executes one invocation in a fresh sandbox
    - :class:`ExecutionCoordinator`: Per-invocation lifecycle and notification
    - :class:`ScriptExecutorConfig`: Typed settings from ``script_executor``

Exception Hierarchy:
    - **Validation Errors** (raised synchronously, never notified)
        - :exc:`ValidationError`, :exc:`ScriptNotFoundError`, :exc:`ScriptInUseError`
    - **Configuration Errors**
        - :exc:`LanguageNotSupportedError`
    - **Code-Related Errors**
        - :exc:`ScriptRuntimeError`, :exc:`MalformedOutputError`
    - **Workflow Errors**
        - :exc:`ExecutionTimeoutError`, :exc:`ResourceExceededError`
    - **Infrastructure Errors**
        - :exc:`EnvironmentUnavailableError`

Examples:
    Preview a Lua script::

        >>> notifier = RecordingNotifier()
        >>> coordinator = ExecutionCoordinator.from_config(notifier)
        >>> outcome = await coordinator.preview("lua", "return {response=1}", acting_user="42")
        >>> outcome.response
        {'response': 1}
"""

from .config import ScriptExecutorConfig
from .coordinator import ExecutionCoordinator
from .exceptions import (
    EnvironmentUnavailableError,
    ErrorCategory,
    ExecutionTimeoutError,
    FailureKind,
    LanguageNotSupportedError,
    MalformedOutputError,
    ResourceExceededError,
    ScriptExecutorException,
    ScriptInUseError,
    ScriptNotFoundError,
    ScriptRuntimeError,
    ValidationError,
)
from .execution import ResourceLimits, SandboxRunner
from .languages import LanguageAdapter, LanguageId, LanguageRegistry, build_default_registry
from .models import (
    ExecutionFailure,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionSuccess,
    InvalidStateTransitionError,
    InvocationState,
)

__all__ = [
    "EnvironmentUnavailableError",
    "ErrorCategory",
    "ExecutionCoordinator",
    "ExecutionFailure",
    "ExecutionOutcome",
    "ExecutionRequest",
    "ExecutionSuccess",
    "ExecutionTimeoutError",
    "FailureKind",
    "InvalidStateTransitionError",
    "InvocationState",
    "LanguageAdapter",
    "LanguageId",
    "LanguageNotSupportedError",
    "LanguageRegistry",
    "MalformedOutputError",
    "ResourceExceededError",
    "ResourceLimits",
    "SandboxRunner",
    "ScriptExecutorConfig",
    "ScriptExecutorException",
    "ScriptInUseError",
    "ScriptNotFoundError",
    "ScriptRuntimeError",
    "ValidationError",
    "build_default_registry",
]
