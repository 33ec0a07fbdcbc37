"""
Tests for the Live Update Bridge over an in-memory Broadcaster.

- Scope filtering (INSERT for sender/receiver, UPDATE for sender only)
- Per-conversation subscriptions
- Resilience to malformed payloads and failing callbacks
- Resubscribe after a lost connection, and explicit close
"""

import asyncio
from datetime import datetime, timezone

import pytest

from conekt.schemas.messaging import MessageRead
from conekt.services.messaging.events import ChangeType, build_message_change_event
from conekt.services.messaging.publisher import publish_message_change, user_channel
from conekt.services.messaging.realtime import (
    RealtimeBridge,
    SubscriptionHandle,
    SubscriptionState,
)

FAST = {"reconnect_delay": 0.01, "max_reconnect_delay": 0.05}


def _message(message_id: str, sender_id: str, receiver_id: str, **overrides) -> MessageRead:
    low, high = sorted((sender_id, receiver_id))
    data = {
        "id": message_id,
        "conversation_id": f"conv_{low}_{high}",
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "body": "hello",
        "created_at": datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return MessageRead(**data)


async def _eventually(predicate, timeout: float = 1.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestRealtimeBridgeScope:
    @pytest.mark.asyncio
    async def test_insert_reaches_sender_and_receiver(self, broadcast):
        therapist_events, client_events = [], []
        therapist_bridge = RealtimeBridge("t1", **FAST)
        client_bridge = RealtimeBridge("c1", **FAST)
        t_handle = therapist_bridge.on_conversations_changed(therapist_events.append)
        c_handle = client_bridge.on_conversations_changed(client_events.append)
        try:
            assert await t_handle.wait_subscribed(1.0)
            assert await c_handle.wait_subscribed(1.0)
            assert t_handle.state is SubscriptionState.SUBSCRIBED

            delivered = await publish_message_change(ChangeType.INSERT, _message("m1", "c1", "t1"))

            assert delivered == 2
            assert await _eventually(lambda: therapist_events and client_events)
            assert therapist_events[0].message.id == "m1"
            assert client_events[0].type is ChangeType.INSERT
        finally:
            await therapist_bridge.close_all()
            await client_bridge.close_all()

    @pytest.mark.asyncio
    async def test_update_reaches_sender_only(self, broadcast):
        """A read receipt is only relevant to the message's author."""
        therapist_events, client_events = [], []
        therapist_bridge = RealtimeBridge("t1", **FAST)
        client_bridge = RealtimeBridge("c1", **FAST)
        t_handle = therapist_bridge.on_conversations_changed(therapist_events.append)
        c_handle = client_bridge.on_conversations_changed(client_events.append)
        try:
            assert await t_handle.wait_subscribed(1.0)
            assert await c_handle.wait_subscribed(1.0)

            await publish_message_change(
                ChangeType.UPDATE, _message("m1", "c1", "t1", read=True)
            )

            assert await _eventually(lambda: len(client_events) == 1)
            await asyncio.sleep(0.05)
            assert therapist_events == []
            assert client_events[0].message.read is True
        finally:
            await therapist_bridge.close_all()
            await client_bridge.close_all()

    @pytest.mark.asyncio
    async def test_messages_subscription_is_scoped_to_conversation(self, broadcast):
        events = []
        bridge = RealtimeBridge("t1", **FAST)
        handle = bridge.on_messages_changed("conv_c1_t1", events.append)
        try:
            assert await handle.wait_subscribed(1.0)

            await publish_message_change(ChangeType.INSERT, _message("m1", "c2", "t1"))
            await publish_message_change(ChangeType.INSERT, _message("m2", "c1", "t1"))

            assert await _eventually(lambda: len(events) == 1)
            await asyncio.sleep(0.05)
            assert [e.message.id for e in events] == ["m2"]
        finally:
            await bridge.close_all()


class TestSubscriptionResilience:
    @pytest.mark.asyncio
    async def test_malformed_payload_and_failing_callback_do_not_kill_subscription(
        self, broadcast
    ):
        received = []

        def callback(change):
            if change.message.id == "boom":
                raise RuntimeError("callback failure")
            received.append(change.message.id)

        bridge = RealtimeBridge("t1", **FAST)
        handle = bridge.on_conversations_changed(callback)
        try:
            assert await handle.wait_subscribed(1.0)

            await broadcast.publish(channel=user_channel("t1"), message="not json")
            await broadcast.publish(
                channel=user_channel("t1"),
                message='{"schema_version": 1, "type": "INSERT", "payload": "oops"}',
            )
            await publish_message_change(ChangeType.INSERT, _message("boom", "c1", "t1"))
            await publish_message_change(ChangeType.INSERT, _message("m2", "c1", "t1"))

            assert await _eventually(lambda: received == ["m2"])
            assert handle.state is SubscriptionState.SUBSCRIBED
            assert handle.events_delivered == 1
            assert handle.reconnect_count == 0
        finally:
            await bridge.close_all()

    def test_dispatch_rejects_malformed_events(self):
        handle = SubscriptionHandle(
            channel=user_channel("t1"),
            predicate=lambda change: True,
            callback=lambda change: None,
            **FAST,
        )
        assert handle.dispatch("garbage") is False
        assert handle.dispatch({"type": "INSERT"}) is False
        assert handle.dispatch('{"schema_version": 1, "type": "INSERT", "payload": "oops"}') is False
        assert handle.dispatch({"schema_version": 1, "type": "INSERT", "payload": [1, 2]}) is False
        assert handle.dispatch(b"\xff\xfe") is False
        event = build_message_change_event(ChangeType.INSERT, _message("m1", "c1", "t1"))
        assert handle.dispatch(event) is True

    @pytest.mark.asyncio
    async def test_resubscribes_after_connection_loss(self, broadcast):
        """A failed subscription attempt is retried with backoff."""
        attempts = []

        def flaky_provider():
            attempts.append(1)
            if len(attempts) == 1:
                raise ConnectionError("broadcast backend unavailable")
            return broadcast

        received = []
        handle = SubscriptionHandle(
            channel=user_channel("t1"),
            predicate=lambda change: True,
            callback=received.append,
            broadcast_provider=flaky_provider,
            name="flaky",
            **FAST,
        )
        handle.start()
        try:
            assert await handle.wait_subscribed(1.0)
            assert handle.reconnect_count == 1

            await publish_message_change(ChangeType.INSERT, _message("m1", "c1", "t1"))
            assert await _eventually(lambda: len(received) == 1)
        finally:
            await handle.close()

        assert handle.state is SubscriptionState.CLOSED

    @pytest.mark.asyncio
    async def test_close_stops_delivery(self, broadcast):
        received = []
        bridge = RealtimeBridge("t1", **FAST)
        handle = bridge.on_conversations_changed(received.append)
        assert await handle.wait_subscribed(1.0)

        await bridge.close_all()
        await handle.close()

        assert handle.state is SubscriptionState.CLOSED
        assert bridge.open_handles == set()
        await publish_message_change(ChangeType.INSERT, _message("m1", "c1", "t1"))
        await asyncio.sleep(0.05)
        assert received == []

    @pytest.mark.asyncio
    async def test_async_context_manager(self, broadcast):
        received = []
        handle = SubscriptionHandle(
            channel=user_channel("c1"),
            predicate=lambda change: True,
            callback=received.append,
            **FAST,
        )
        async with handle:
            assert await handle.wait_subscribed(1.0)
        assert handle.state is SubscriptionState.CLOSED


class TestPublisherWithoutBroadcast:
    @pytest.mark.asyncio
    async def test_publish_is_best_effort(self):
        """With no broadcaster connected, publishing logs and reports zero deliveries."""
        assert await publish_message_change(ChangeType.INSERT, _message("m1", "c1", "t1")) == 0
