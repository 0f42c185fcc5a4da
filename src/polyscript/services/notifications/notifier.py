"""Result notifiers.

The execution coordinator hands every outcome to a :class:`ResultNotifier`
exactly once. :class:`QueueNotifier` is the production implementation: it only
publishes onto an ``asyncio.Queue`` and returns, and a
:class:`~polyscript.services.notifications.dispatcher.NotificationDispatcher`
drains the queue into the delivery channels. :class:`RecordingNotifier` keeps
notifications in memory for tests and the CLI.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from polyscript.utils.logger import get_logger

from .types import BROADCAST, DATABASE, ScriptResponseNotification

if TYPE_CHECKING:
    from polyscript.services.script_executor.models import ExecutionOutcome

logger = get_logger("notifier")

DEFAULT_CHANNELS = (BROADCAST, DATABASE)


class ResultNotifier(ABC):
    """Publishes invocation outcomes to their target user.

    :param channels: Channel names stamped on every notification
    """

    def __init__(self, channels: list[str] | tuple[str, ...] | None = None):
        self.channels = list(channels) if channels else list(DEFAULT_CHANNELS)

    def build(
        self, target_user: str, outcome: ExecutionOutcome, script_id: str | None = None
    ) -> ScriptResponseNotification:
        return ScriptResponseNotification.from_outcome(
            target_user, outcome, self.channels, script_id=script_id
        )

    @abstractmethod
    async def notify(
        self, target_user: str, outcome: ExecutionOutcome, script_id: str | None = None
    ) -> ScriptResponseNotification:
        """Publish ``outcome`` for ``target_user`` and return the notification."""


class QueueNotifier(ResultNotifier):
    """Publishes notifications onto a queue consumed by the dispatcher."""

    def __init__(
        self,
        queue: asyncio.Queue | None = None,
        channels: list[str] | tuple[str, ...] | None = None,
    ):
        super().__init__(channels)
        self.queue: asyncio.Queue[ScriptResponseNotification] = queue or asyncio.Queue()

    async def notify(
        self, target_user: str, outcome: ExecutionOutcome, script_id: str | None = None
    ) -> ScriptResponseNotification:
        notification = self.build(target_user, outcome, script_id)
        await self.queue.put(notification)
        logger.debug(
            f"Queued {notification.status} notification {notification.notification_id} "
            f"for user {notification.user_id} via {', '.join(notification.channels)}"
        )
        return notification


class RecordingNotifier(ResultNotifier):
    """Keeps every notification in memory."""

    def __init__(self, channels: list[str] | tuple[str, ...] | None = None):
        super().__init__(channels)
        self.notifications: list[ScriptResponseNotification] = []

    async def notify(
        self, target_user: str, outcome: ExecutionOutcome, script_id: str | None = None
    ) -> ScriptResponseNotification:
        notification = self.build(target_user, outcome, script_id)
        self.notifications.append(notification)
        return notification

    def for_user(self, user_id: str) -> list[ScriptResponseNotification]:
        return [n for n in self.notifications if n.user_id == str(user_id)]

    def clear(self) -> None:
        self.notifications.clear()
