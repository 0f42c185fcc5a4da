"""Core Models for the Script Executor Service.

This module provides the data structures that flow through one script
invocation: the request handed to the coordinator, the raw sandbox result
collected by a backend, and the tagged outcome that is delivered exactly once
to the notifier.

**Request Model**: :class:`ExecutionRequest` is a Pydantic model. Input data and
configuration may arrive as mappings or as JSON text (API layers frequently pass
``'{}'``); text that does not parse as JSON is kept verbatim as a string.

**Lifecycle**: :class:`InvocationState` and :class:`InvocationLifecycle` implement
the per-invocation state machine ``PENDING -> RESOLVING -> RUNNING ->
{SUCCEEDED | FAILED} -> NOTIFIED``. Illegal transitions raise
:class:`InvalidStateTransitionError`.

**Outcomes**: :class:`ExecutionSuccess` and :class:`ExecutionFailure` are frozen
dataclasses; ``ExecutionOutcome`` is their union.

.. seealso::
   :class:`polyscript.services.script_executor.coordinator.ExecutionCoordinator` : Produces outcomes
   :mod:`polyscript.services.script_executor.exceptions` : Failure kinds
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import FailureKind, ScriptExecutorException, ValidationError

RESULT_SENTINEL = "__POLYSCRIPT_RESULT__"


# =============================================================================
# REQUEST
# =============================================================================


def _decode_json_text(value: Any) -> Any:
    """Decode JSON text; anything else (including non-JSON text) is returned as is."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


class ExecutionRequest(BaseModel):
    """Transient request for one script invocation.

    :param language: Language identifier, resolved by the language registry
    :type language: str
    :param code: Source code of the script
    :type code: str
    :param data: Input data made available to the script as ``data``
    :type data: Any
    :param config: Script configuration made available as ``config``
    :type config: Any
    :param run_as_user_id: Identity the script runs as; required unless previewing
    :type run_as_user_id: str, optional
    :param timeout_seconds: Wall-clock ceiling; executor default when omitted
    :type timeout_seconds: float, optional
    :param script_id: Persisted definition this request was built from, if any
    :type script_id: str, optional
    :param preview: Ad-hoc run not bound to a persisted definition
    :type preview: bool

    Examples:
        Preview request with JSON text input::

            >>> request = ExecutionRequest(
            ...     language="lua",
            ...     code="return {response=1}",
            ...     data='{"name": "Taylor"}',
            ...     preview=True,
            ... )
            >>> request.data
            {'name': 'Taylor'}
    """

    model_config = ConfigDict(frozen=True)

    language: str = Field(..., description="Language identifier (php, lua, python, javascript)")
    code: str = Field(..., description="Script source code")
    data: Any = Field(default_factory=dict, description="Input data passed to the script")
    config: Any = Field(default_factory=dict, description="Script configuration")
    run_as_user_id: str | None = Field(None, description="Identity the script runs as")
    timeout_seconds: float | None = Field(None, gt=0, description="Wall-clock timeout override")
    script_id: str | None = Field(None, description="Source script definition id")
    preview: bool = Field(False, description="Ad-hoc run without a persisted definition")
    invocation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @field_validator("data", "config", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        if value is None:
            return {}
        return _decode_json_text(value)

    @field_validator("run_as_user_id", "script_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)

    def validate_for_dispatch(self) -> None:
        """Check invariants that must hold before any sandbox is created.

        Raises:
            ValidationError: If a non-preview request has no run-as-user
        """
        if not self.preview and self.run_as_user_id is None:
            raise ValidationError(
                "The run as user field is required.", field="run_as_user_id"
            )


# =============================================================================
# LIFECYCLE
# =============================================================================


class InvocationState(StrEnum):
    """States of one invocation."""

    PENDING = "pending"
    RESOLVING = "resolving"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOTIFIED = "notified"


ALLOWED_TRANSITIONS: dict[InvocationState, frozenset[InvocationState]] = {
    InvocationState.PENDING: frozenset({InvocationState.RESOLVING}),
    InvocationState.RESOLVING: frozenset({InvocationState.RUNNING, InvocationState.FAILED}),
    InvocationState.RUNNING: frozenset({InvocationState.SUCCEEDED, InvocationState.FAILED}),
    InvocationState.SUCCEEDED: frozenset({InvocationState.NOTIFIED}),
    InvocationState.FAILED: frozenset({InvocationState.NOTIFIED}),
    InvocationState.NOTIFIED: frozenset(),
}


class InvalidStateTransitionError(RuntimeError):
    """Raised when an invocation is moved along an edge the state machine does not have."""

    def __init__(self, invocation_id: str, current: InvocationState, target: InvocationState):
        super().__init__(
            f"Invocation {invocation_id}: illegal transition {current.value} -> {target.value}"
        )
        self.invocation_id = invocation_id
        self.current = current
        self.target = target


@dataclass
class InvocationLifecycle:
    """Tracks the state of one invocation and records every transition."""

    invocation_id: str
    state: InvocationState = InvocationState.PENDING
    history: list[InvocationState] = field(default_factory=lambda: [InvocationState.PENDING])

    def advance(self, target: InvocationState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(self.invocation_id, self.state, target)
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        return self.state == InvocationState.NOTIFIED


# =============================================================================
# SANDBOX RESULT
# =============================================================================


@dataclass
class SandboxResult:
    """Raw result collected by a sandbox backend (internal, not for external use)."""

    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float = 0.0
    oom_killed: bool = False
    signal: int | None = None


# =============================================================================
# OUTCOMES
# =============================================================================


@dataclass(frozen=True, slots=True)
class ExecutionSuccess:
    """Successful invocation: the script's structured response.

    :param response: Value the script returned (the ``output`` of the result envelope)
    :param language: Canonical language identifier
    :param execution_time_seconds: Wall-clock time spent in the sandbox
    :param stdout: Script output other than the result line
    """

    response: Any
    language: str
    execution_time_seconds: float = 0.0
    stdout: str = ""
    invocation_id: str | None = None

    ok = True

    def to_notification_response(self) -> dict[str, Any]:
        return {"status": "success", "output": self.response}

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "success",
            "language": self.language,
            "response": self.response,
            "execution_time_seconds": self.execution_time_seconds,
            "stdout": self.stdout,
            "invocation_id": self.invocation_id,
        }


@dataclass(frozen=True, slots=True)
class ExecutionFailure:
    """Failed invocation.

    :param kind: Failure kind
    :param message: Human-readable description
    :param language: Language identifier as requested (may be unsupported)
    :param exception: Fully qualified name of the exception class that caused the failure
    :param details: Technical details for debugging
    """

    kind: FailureKind
    message: str
    language: str
    exception: str
    details: dict[str, Any] = field(default_factory=dict)
    invocation_id: str | None = None

    ok = False

    @classmethod
    def from_exception(
        cls,
        error: ScriptExecutorException,
        language: str,
        invocation_id: str | None = None,
    ) -> ExecutionFailure:
        details = dict(error.technical_details)
        stderr = getattr(error, "stderr", "")
        if stderr:
            details["stderr"] = stderr
        return cls(
            kind=error.kind,
            message=error.message,
            language=error.language or language,
            exception=error.fully_qualified_name(),
            details=details,
            invocation_id=invocation_id,
        )

    def to_notification_response(self) -> dict[str, Any]:
        return {
            "status": "error",
            "exception": self.exception,
            "message": self.message,
            "kind": self.kind.value,
            "language": self.language,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.to_notification_response(),
            "details": self.details,
            "invocation_id": self.invocation_id,
        }


ExecutionOutcome = ExecutionSuccess | ExecutionFailure
