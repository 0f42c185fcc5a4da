"""Result Notifier: publishes invocation outcomes and delivers them to users."""

from .channels import BroadcastChannel, DatabaseChannel, NotificationChannel, build_channels
from .dispatcher import NotificationDispatcher
from .notifier import DEFAULT_CHANNELS, QueueNotifier, RecordingNotifier, ResultNotifier
from .types import BROADCAST, DATABASE, ScriptResponseNotification

__all__ = [
    "BROADCAST",
    "DATABASE",
    "DEFAULT_CHANNELS",
    "BroadcastChannel",
    "DatabaseChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "QueueNotifier",
    "RecordingNotifier",
    "ResultNotifier",
    "ScriptResponseNotification",
    "build_channels",
]
