"""Notification delivery channels.

**BroadcastChannel**: real-time push to in-process subscribers (websocket
bridges, UIs, tests). Subscribers receive the serialized notification dict.

**DatabaseChannel**: durable per-user log, one JSON file per user in the
configured directory.

Usage:
    broadcast = BroadcastChannel()

    def push(notification_dict):
        websocket_queue.put_nowait(notification_dict)

    unsubscribe = broadcast.subscribe(push, user_id="42")
    # ... serve ...
    unsubscribe()
"""

from __future__ import annotations

import inspect
import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import aiofiles

from polyscript.utils.logger import get_logger

from .types import BROADCAST, DATABASE, ScriptResponseNotification

logger = get_logger("notifier")

Subscriber = Callable[[dict[str, Any]], None | Awaitable[None]]


class NotificationChannel(ABC):
    """One way of delivering a notification to its user."""

    name: str

    @abstractmethod
    async def deliver(self, notification: ScriptResponseNotification) -> None:
        """Deliver one notification. Errors propagate to the dispatcher."""


class BroadcastChannel(NotificationChannel):
    """Pushes notifications to in-process subscribers."""

    name = BROADCAST

    def __init__(self):
        self._subscribers: list[tuple[str | None, Subscriber]] = []

    def subscribe(self, handler: Subscriber, user_id: str | None = None) -> Callable[[], None]:
        """Register a subscriber, optionally for a single user.

        Args:
            handler: Callable (sync or async) that receives serialized notifications
            user_id: Only deliver notifications addressed to this user

        Returns:
            Unsubscribe function
        """
        entry = (str(user_id) if user_id is not None else None, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def deliver(self, notification: ScriptResponseNotification) -> None:
        payload = notification.to_dict()
        for user_id, handler in list(self._subscribers):
            if user_id is not None and user_id != notification.user_id:
                continue
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Broadcast subscriber {handler!r} failed: {e}")


class DatabaseChannel(NotificationChannel):
    """Appends notifications to a per-user JSON file.

    :param directory: Directory holding ``<user_id>.json`` files
    :raises OSError: If the directory cannot be created
    """

    name = DATABASE

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).resolve()
        self.directory.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Notification database initialized at {self.directory}")

    def _get_file_path(self, user_id: str) -> Path:
        if not user_id or not str(user_id).strip():
            raise ValueError("User ID cannot be empty")

        # Sanitize user_id for filename
        safe_user_id = "".join(c for c in str(user_id) if c.isalnum() or c in "-_")
        return self.directory / f"{safe_user_id}.json"

    async def _load(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()
        return json.loads(content) if content.strip() else {}

    async def deliver(self, notification: ScriptResponseNotification) -> None:
        path = self._get_file_path(notification.user_id)
        data = await self._load(path)
        entries = data.get("notifications", [])
        entries.append(notification.to_dict())

        data = {"user_id": notification.user_id, "notifications": entries}
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        tmp_path.replace(path)

    def get_notifications(self, user_id: str) -> list[dict[str, Any]]:
        """All stored notifications for a user, oldest first."""
        path = self._get_file_path(user_id)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return json.load(f).get("notifications", [])


def build_channels(notifications_config: dict[str, Any] | None = None) -> dict[str, NotificationChannel]:
    """Instantiate the channels named in ``notifications.channels``.

    Raises:
        ValueError: If an unknown channel name is configured
    """
    config = notifications_config or {}
    names = config.get("channels") or [BROADCAST, DATABASE]

    channels: dict[str, NotificationChannel] = {}
    for name in names:
        if name == BROADCAST:
            channels[name] = BroadcastChannel()
        elif name == DATABASE:
            channels[name] = DatabaseChannel(config.get("database_path", "./storage/notifications"))
        else:
            raise ValueError(f"Unknown notification channel '{name}' (available: broadcast, database)")
    return channels
