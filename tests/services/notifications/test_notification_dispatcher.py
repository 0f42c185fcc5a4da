"""Tests for the notification dispatcher."""

import pytest

from polyscript.services.notifications import (
    BROADCAST,
    DATABASE,
    BroadcastChannel,
    DatabaseChannel,
    NotificationChannel,
    NotificationDispatcher,
    QueueNotifier,
)
from polyscript.services.script_executor import ExecutionSuccess


class FailingChannel(NotificationChannel):
    name = DATABASE

    async def deliver(self, notification):
        raise OSError("read-only file system")


@pytest.fixture
def success():
    return ExecutionSuccess(response={"response": 1}, language="lua")


class TestDispatch:
    @pytest.mark.asyncio
    async def test_drain_delivers_to_every_channel(self, tmp_path, success):
        broadcast = BroadcastChannel()
        received = []
        broadcast.subscribe(received.append)
        database = DatabaseChannel(tmp_path)
        notifier = QueueNotifier()
        dispatcher = NotificationDispatcher(notifier.queue, {BROADCAST: broadcast, DATABASE: database})

        await notifier.notify("1", success)
        await notifier.notify("2", success)
        handled = await dispatcher.drain()

        assert handled == 2
        assert dispatcher.delivered == 4
        assert [item["user_id"] for item in received] == ["1", "2"]
        assert len(database.get_notifications("1")) == 1

    @pytest.mark.asyncio
    async def test_unconfigured_channel_is_skipped(self, success):
        notifier = QueueNotifier(channels=[BROADCAST, DATABASE])
        dispatcher = NotificationDispatcher(notifier.queue, {BROADCAST: BroadcastChannel()})

        await notifier.notify("1", success)
        await dispatcher.drain()

        assert dispatcher.delivered == 1
        assert dispatcher.failed == 0

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_block_others(self, success):
        broadcast = BroadcastChannel()
        received = []
        broadcast.subscribe(received.append)
        notifier = QueueNotifier(channels=[DATABASE, BROADCAST])
        dispatcher = NotificationDispatcher(notifier.queue, {BROADCAST: broadcast, DATABASE: FailingChannel()})

        await notifier.notify("1", success)
        await dispatcher.drain()

        assert dispatcher.failed == 1
        assert dispatcher.delivered == 1
        assert len(received) == 1


class TestBackgroundConsumer:
    @pytest.mark.asyncio
    async def test_context_manager_drains_on_exit(self, success):
        broadcast = BroadcastChannel()
        received = []
        broadcast.subscribe(received.append)
        notifier = QueueNotifier(channels=[BROADCAST])
        dispatcher = NotificationDispatcher(notifier.queue, {BROADCAST: broadcast})

        async with dispatcher:
            assert dispatcher.running
            for user_id in ("1", "2", "3"):
                await notifier.notify(user_id, success)

        assert not dispatcher.running
        assert [item["user_id"] for item in received] == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        dispatcher = NotificationDispatcher(QueueNotifier().queue, {})
        await dispatcher.stop()
        assert not dispatcher.running
