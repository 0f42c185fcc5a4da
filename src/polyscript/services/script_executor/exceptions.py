"""Exception Hierarchy for the Script Executor Service.

This module defines the categorized exception hierarchy used by every stage of a
script invocation: language resolution, request validation, sandbox execution and
output parsing. Each exception carries a :class:`FailureKind` that the execution
coordinator copies into the ``Failure`` outcome, and an :class:`ErrorCategory`
that tells callers how the failure should be handled.

**Validation Errors**: Problems with the request itself (missing run-as-user,
duplicate title or key). Reported synchronously to the caller, never notified.

**Configuration Errors**: The requested language has no registered adapter.
Detected before any sandbox exists.

**Code-Related Errors**: The user's script raised, exited non-zero, or emitted a
result the adapter cannot parse.

**Workflow Errors**: The invocation crossed its timeout or a resource ceiling and
its sandbox was torn down.

**Infrastructure Errors**: The sandbox backend or the scripts home directory is
unavailable on this host.

.. note::
   Script failures are normal outcomes, not transient faults. None of these
   exceptions triggers an automatic retry; callers resubmit a new request.

.. seealso::
   :class:`polyscript.services.script_executor.coordinator.ExecutionCoordinator` : Converts these into outcomes
   :class:`polyscript.services.script_executor.models.ExecutionFailure` : Failure outcome structure

Examples:
    Handling sandbox failures directly::

        >>> try:
        ...     success = await runner.execute(adapter, request)
        ... except ExecutionTimeoutError as e:
        ...     logger.warning(f"Script timed out after {e.timeout_seconds}s")
        ... except ScriptRuntimeError as e:
        ...     logger.info(f"Script failed: {e.stderr}")
"""

from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """High-level error categories that determine how a failure is surfaced.

    :cvar VALIDATION: Invalid request or store operation, reported synchronously
    :cvar CONFIGURATION: Unsupported language or invalid executor settings
    :cvar CODE_RELATED: Failures caused by the user's script
    :cvar WORKFLOW: Timeout or resource ceiling enforcement
    :cvar INFRASTRUCTURE: Host tooling or sandbox backend unavailable
    """
    VALIDATION = "validation"          # Bad request / store constraint
    CONFIGURATION = "configuration"    # Unknown language, bad settings
    CODE_RELATED = "code_related"      # Script raised / bad output
    WORKFLOW = "workflow"              # Timeout, resource ceiling
    INFRASTRUCTURE = "infrastructure"  # Backend/tooling unavailable


class FailureKind(Enum):
    """Failure kinds carried by ``Failure`` outcomes and notifications."""
    LANGUAGE_NOT_SUPPORTED = "language_not_supported"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    RESOURCE_EXCEEDED = "resource_exceeded"
    MALFORMED_OUTPUT = "malformed_output"
    SCRIPT_RUNTIME_ERROR = "script_runtime_error"
    ENVIRONMENT_UNAVAILABLE = "environment_unavailable"


class ScriptExecutorException(Exception):
    """Base exception class for all script executor operations.

    Provides the failure kind, error category and technical context shared by
    every concrete exception. Subclasses set ``kind`` as a class attribute.

    :param message: Human-readable error description
    :type message: str
    :param category: Error category
    :type category: ErrorCategory
    :param technical_details: Additional technical information for debugging
    :type technical_details: Dict[str, Any], optional
    :param language: Language identifier of the invocation, when known
    :type language: str, optional

    .. note::
       This base class should not be raised directly.
    """

    kind: FailureKind = FailureKind.ENVIRONMENT_UNAVAILABLE

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        technical_details: dict[str, Any] | None = None,
        language: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.technical_details = technical_details or {}
        self.language = language

    @classmethod
    def fully_qualified_name(cls) -> str:
        """Return the dotted import path of this exception class.

        Notifications carry this value so the receiving side can tell an
        unsupported language from a script error or a timeout.

        Examples:
            >>> LanguageNotSupportedError.fully_qualified_name()
            'polyscript.services.script_executor.exceptions.LanguageNotSupportedError'
        """
        return f"{cls.__module__}.{cls.__qualname__}"


# =============================================================================
# VALIDATION ERRORS (Synchronous, never notified)
# =============================================================================

class ValidationError(ScriptExecutorException):
    """Request or store operation rejected before any execution.

    :param message: Description of the violated constraint
    :type message: str
    :param field: Name of the offending field, if any
    :type field: str, optional
    """

    kind = FailureKind.VALIDATION

    def __init__(
        self,
        message: str,
        field: str | None = None,
        technical_details: dict[str, Any] | None = None,
    ):
        super().__init__(message, ErrorCategory.VALIDATION, technical_details)
        self.field = field

    @property
    def errors(self) -> dict[str, list[str]]:
        """Field-keyed error mapping, in the shape API layers usually return."""
        return {self.field or "__all__": [self.message]}


class ScriptNotFoundError(ValidationError):
    """Referenced script definition does not exist."""

    def __init__(self, script_id: str):
        super().__init__(f"Script '{script_id}' does not exist", field="id")
        self.script_id = script_id


class ScriptInUseError(ValidationError):
    """Script definition is referenced by a running invocation and cannot be deleted."""

    def __init__(self, script_id: str, active_invocations: int):
        super().__init__(
            f"Script '{script_id}' is referenced by {active_invocations} running "
            f"invocation(s) and cannot be deleted",
            field="id",
        )
        self.script_id = script_id
        self.active_invocations = active_invocations


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class LanguageNotSupportedError(ScriptExecutorException):
    """No adapter is registered for the requested language.

    Raised by the language registry during resolution, before any sandbox is
    created.

    :param language: The unknown language identifier
    :type language: str
    :param supported: Identifiers that are registered
    :type supported: List[str]
    """

    kind = FailureKind.LANGUAGE_NOT_SUPPORTED

    def __init__(self, language: str, supported: list[str] | None = None):
        self.supported = sorted(supported or [])
        message = f"Language '{language}' is not supported"
        if self.supported:
            message += f" (supported: {', '.join(self.supported)})"
        super().__init__(
            message,
            ErrorCategory.CONFIGURATION,
            {"supported_languages": self.supported},
            language=language,
        )


# =============================================================================
# CODE-RELATED ERRORS
# =============================================================================

class ScriptRuntimeError(ScriptExecutorException):
    """Script crashed or exited non-zero inside its sandbox.

    :param message: Summary of the failure (usually the last stderr line)
    :type message: str
    :param exit_code: Sandbox process exit code
    :type exit_code: int
    :param stderr: Captured diagnostic output
    :type stderr: str
    """

    kind = FailureKind.SCRIPT_RUNTIME_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int,
        stderr: str = "",
        language: str | None = None,
        technical_details: dict[str, Any] | None = None,
    ):
        details = {"exit_code": exit_code, **(technical_details or {})}
        super().__init__(message, ErrorCategory.CODE_RELATED, details, language=language)
        self.exit_code = exit_code
        self.stderr = stderr


class MalformedOutputError(ScriptExecutorException):
    """Sandbox finished but its output does not match the adapter's result shape."""

    kind = FailureKind.MALFORMED_OUTPUT

    def __init__(
        self,
        message: str,
        stdout: str = "",
        language: str | None = None,
    ):
        super().__init__(
            message,
            ErrorCategory.CODE_RELATED,
            {"stdout_tail": stdout[-500:]},
            language=language,
        )
        self.stdout = stdout


# =============================================================================
# WORKFLOW ERRORS (Enforced ceilings)
# =============================================================================

class ExecutionTimeoutError(ScriptExecutorException):
    """Invocation exceeded its wall-clock timeout; the sandbox was killed."""

    kind = FailureKind.TIMEOUT

    def __init__(
        self,
        timeout_seconds: float,
        language: str | None = None,
        technical_details: dict[str, Any] | None = None,
    ):
        message = f"Script execution timeout after {timeout_seconds:g} seconds"
        super().__init__(message, ErrorCategory.WORKFLOW, technical_details, language=language)
        self.timeout_seconds = timeout_seconds


class ResourceExceededError(ScriptExecutorException):
    """Sandbox crossed a resource ceiling (memory, CPU, processes) and was terminated."""

    kind = FailureKind.RESOURCE_EXCEEDED

    def __init__(
        self,
        message: str,
        resource: str,
        language: str | None = None,
        technical_details: dict[str, Any] | None = None,
    ):
        details = {"resource": resource, **(technical_details or {})}
        super().__init__(message, ErrorCategory.WORKFLOW, details, language=language)
        self.resource = resource


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================

class EnvironmentUnavailableError(ScriptExecutorException):
    """Sandbox backend or host tooling is missing or misconfigured.

    :param message: Technical description of what is unavailable
    :type message: str
    :param component: Which piece is missing (``scripts_home``, ``docker``, ``lua``...)
    :type component: str
    """

    kind = FailureKind.ENVIRONMENT_UNAVAILABLE

    def __init__(
        self,
        message: str,
        component: str,
        language: str | None = None,
        technical_details: dict[str, Any] | None = None,
    ):
        super().__init__(message, ErrorCategory.INFRASTRUCTURE, technical_details, language=language)
        self.component = component
