"""Typed notification payloads.

A :class:`ScriptResponseNotification` is published once per invocation and
serializes to a plain dict for transport to delivery channels.

Usage:
    from polyscript.services.notifications.types import ScriptResponseNotification

    notification = ScriptResponseNotification.from_outcome("42", outcome, ["broadcast"])
    notification.response["status"]   # "success" or "error"
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from polyscript.services.script_executor.models import ExecutionOutcome

BROADCAST = "broadcast"
DATABASE = "database"


@dataclass
class ScriptResponseNotification:
    """Outcome of one script invocation addressed to one user.

    Attributes:
        user_id: Target user
        response: ``{"status": "success", "output": ...}`` or
            ``{"status": "error", "exception": ..., "message": ..., "kind": ..., "language": ...}``
        channels: Delivery channels, e.g. ``["broadcast", "database"]``
        invocation_id: Invocation that produced the outcome
        script_id: Script definition, when the run was bound to one
    """

    user_id: str
    response: dict[str, Any]
    channels: list[str] = field(default_factory=lambda: [BROADCAST])
    invocation_id: str | None = None
    script_id: str | None = None
    notification_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_outcome(
        cls,
        user_id: str,
        outcome: ExecutionOutcome,
        channels: list[str],
        script_id: str | None = None,
    ) -> ScriptResponseNotification:
        return cls(
            user_id=str(user_id),
            response=outcome.to_notification_response(),
            channels=list(channels),
            invocation_id=outcome.invocation_id,
            script_id=script_id,
        )

    @property
    def status(self) -> str:
        return self.response.get("status", "")

    def via(self, channel: str) -> bool:
        return channel in self.channels

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result
