# conekt/services/messaging/realtime.py
"""
Live Update Bridge.

Subscribes to a user's change channel and hands each relevant message change
to a caller-supplied callback. Every subscription is an explicit
SubscriptionHandle owned by the caller and released with close().

Per-handle state machine:

    CONNECTING -> SUBSCRIBED -> (events...) -> DISCONNECTED -> CONNECTING ...
                                                   any state -> CLOSED

Losing the subscription is never fatal. The handle keeps resubscribing with
capped exponential backoff; callers keep their last known state and rely on
a pull-based refresh for correctness. Delivery is best effort: events
published while disconnected are not replayed.
"""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from typing import Any, Callable, Optional, Set, Union

from broadcaster import Broadcast

from conekt.core.broadcast import get_broadcast
from conekt.core.config import settings

from .events import ChangeType, MessageChange
from .publisher import user_channel

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[MessageChange], Any]
ChangePredicate = Callable[[MessageChange], bool]


class SubscriptionState(str, Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    DISCONNECTED = "disconnected"
    CLOSED = "closed"


class SubscriptionHandle:
    """
    One live subscription to a user channel.

    Callbacks run synchronously on the event loop and must not block; schedule
    follow-up async work (e.g. a refresh) as a task instead.
    """

    def __init__(
        self,
        *,
        channel: str,
        predicate: ChangePredicate,
        callback: ChangeCallback,
        broadcast_provider: Callable[[], Broadcast] = get_broadcast,
        reconnect_delay: Optional[float] = None,
        max_reconnect_delay: Optional[float] = None,
        name: str = "",
    ) -> None:
        self.channel = channel
        self.name = name or channel
        self._predicate = predicate
        self._callback = callback
        self._broadcast_provider = broadcast_provider
        self._reconnect_delay = (
            reconnect_delay if reconnect_delay is not None else settings.realtime_reconnect_delay
        )
        self._max_reconnect_delay = (
            max_reconnect_delay
            if max_reconnect_delay is not None
            else settings.realtime_max_reconnect_delay
        )
        self._state = SubscriptionState.CONNECTING
        self._subscribed = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None
        self._closed = False
        self.events_delivered = 0
        self.reconnect_count = 0

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self) -> "SubscriptionHandle":
        """Start the subscription task. Must be called from a running event loop."""
        if self._task is None and not self._closed:
            self._task = asyncio.create_task(self._run(), name=f"realtime:{self.name}")
        return self

    async def wait_subscribed(self, timeout: float = 5.0) -> bool:
        """Wait until the handle is SUBSCRIBED; False on timeout."""
        try:
            await asyncio.wait_for(self._subscribed.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def _set_state(self, state: SubscriptionState) -> None:
        if state is not self._state:
            logger.debug(f"[REALTIME] {self.name}: {self._state.value} -> {state.value}")
            self._state = state

    async def _run(self) -> None:
        delay = self._reconnect_delay
        while not self._closed:
            self._set_state(SubscriptionState.CONNECTING)
            try:
                broadcast = self._broadcast_provider()
                async with broadcast.subscribe(channel=self.channel) as subscriber:
                    self._set_state(SubscriptionState.SUBSCRIBED)
                    self._subscribed.set()
                    delay = self._reconnect_delay
                    logger.info(
                        f"[REALTIME] Subscribed to {self.channel}",
                        extra={"subscription": self.name},
                    )
                    async for event in subscriber:
                        self.dispatch(event.message)
                logger.info(f"[REALTIME] Subscription to {self.channel} ended")
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(f"[REALTIME] Subscription to {self.channel} lost: {exc}")

            self._subscribed.clear()
            if self._closed:
                break
            self._set_state(SubscriptionState.DISCONNECTED)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_reconnect_delay)
            self.reconnect_count += 1

    def dispatch(self, raw: Union[str, bytes, dict]) -> bool:
        """
        Parse one raw event and hand it to the callback if it is in scope.

        Returns:
            True if the callback received the change
        """
        if self._closed:
            return False
        try:
            change = MessageChange.from_event(raw)
            if not self._predicate(change):
                return False
        except Exception as exc:
            logger.warning(f"[REALTIME] Dropping malformed event on {self.channel}: {exc}")
            return False

        try:
            self._callback(change)
        except Exception:
            logger.exception(f"[REALTIME] Callback failed for {self.name}")
            return False
        self.events_delivered += 1
        return True

    async def close(self) -> None:
        """Unsubscribe and stop resubscribing. Idempotent."""
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._subscribed.clear()
        self._set_state(SubscriptionState.CLOSED)

    async def __aenter__(self) -> "SubscriptionHandle":
        return self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class RealtimeBridge:
    """
    Registers live subscriptions scoped to one user.

    Scope: INSERTs where the user is sender or receiver, and UPDATEs of
    messages the user authored (read receipts).
    """

    def __init__(
        self,
        user_id: str,
        *,
        broadcast_provider: Callable[[], Broadcast] = get_broadcast,
        reconnect_delay: Optional[float] = None,
        max_reconnect_delay: Optional[float] = None,
    ) -> None:
        self.user_id = user_id
        self._broadcast_provider = broadcast_provider
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._handles: Set[SubscriptionHandle] = set()

    def in_scope(self, change: MessageChange) -> bool:
        message = change.message
        if change.type is ChangeType.INSERT:
            return self.user_id in (message.sender_id, message.receiver_id)
        return message.sender_id == self.user_id

    def on_conversations_changed(self, callback: ChangeCallback) -> SubscriptionHandle:
        """Subscribe to every in-scope change; used to refresh the conversation list."""
        return self._open(self.in_scope, callback, name=f"conversations:{self.user_id}")

    def on_messages_changed(
        self, conversation_id: str, callback: ChangeCallback
    ) -> SubscriptionHandle:
        """Subscribe to in-scope changes of one conversation."""

        def predicate(change: MessageChange) -> bool:
            return self.in_scope(change) and change.conversation_id == conversation_id

        return self._open(predicate, callback, name=f"messages:{conversation_id}")

    def _open(
        self, predicate: ChangePredicate, callback: ChangeCallback, name: str
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(
            channel=user_channel(self.user_id),
            predicate=predicate,
            callback=callback,
            broadcast_provider=self._broadcast_provider,
            reconnect_delay=self._reconnect_delay,
            max_reconnect_delay=self._max_reconnect_delay,
            name=name,
        )
        self._handles = {h for h in self._handles if not h.is_closed}
        self._handles.add(handle)
        return handle.start()

    @property
    def open_handles(self) -> Set[SubscriptionHandle]:
        return {h for h in self._handles if not h.is_closed}

    async def close_all(self) -> None:
        """Close every handle this bridge issued."""
        handles, self._handles = self._handles, set()
        for handle in handles:
            await handle.close()
