"""Notification dispatcher.

Drains the notifier queue and hands each notification to the channels it
names. The dispatcher runs as a single background task, so deliveries for a
user are written in publication order.

Usage:
    notifier = QueueNotifier(channels=["broadcast", "database"])
    dispatcher = NotificationDispatcher(notifier.queue, build_channels(config))

    async with dispatcher:
        await coordinator.run(request, acting_user="42")
    # leaving the context waits until the queue is drained
"""

from __future__ import annotations

import asyncio

from polyscript.utils.logger import get_logger

from .channels import NotificationChannel
from .types import ScriptResponseNotification

logger = get_logger("notifier")


class NotificationDispatcher:
    """Consumes ``ScriptResponseNotification`` objects from a queue.

    :param queue: Queue filled by a :class:`QueueNotifier`
    :param channels: Channel instances keyed by name
    """

    def __init__(
        self,
        queue: asyncio.Queue[ScriptResponseNotification],
        channels: dict[str, NotificationChannel],
    ):
        self.queue = queue
        self.channels = channels
        self.delivered = 0
        self.failed = 0
        self._task: asyncio.Task | None = None

    async def dispatch(self, notification: ScriptResponseNotification) -> None:
        """Deliver one notification to each of its channels.

        A failing channel is logged and does not prevent delivery to the others.
        """
        for name in notification.channels:
            channel = self.channels.get(name)
            if channel is None:
                logger.warning(
                    f"Notification {notification.notification_id} names unconfigured channel '{name}'"
                )
                continue
            try:
                await channel.deliver(notification)
                self.delivered += 1
            except Exception as e:
                self.failed += 1
                logger.error(
                    f"Delivery of notification {notification.notification_id} via '{name}' failed: {e}",
                    exc_info=True,
                )

    async def drain(self) -> int:
        """Dispatch everything currently queued; returns how many notifications were handled."""
        handled = 0
        while not self.queue.empty():
            notification = self.queue.get_nowait()
            try:
                await self.dispatch(notification)
            finally:
                self.queue.task_done()
            handled += 1
        return handled

    async def _consume(self) -> None:
        while True:
            notification = await self.queue.get()
            try:
                await self.dispatch(notification)
            finally:
                self.queue.task_done()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._consume(), name="polyscript-notification-dispatcher")
            logger.debug("Notification dispatcher started")
        return self._task

    async def stop(self) -> None:
        """Wait for queued notifications to be delivered, then stop consuming."""
        if self._task is None:
            return
        await self.queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug(f"Notification dispatcher stopped ({self.delivered} delivered, {self.failed} failed)")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def __aenter__(self) -> NotificationDispatcher:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
