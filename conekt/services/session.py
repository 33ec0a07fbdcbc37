# conekt/services/session.py
"""
Conversation Session.

Holds one user's messaging state: the conversation list, the single open
conversation with its messages, and the compose draft. Every writer (local
sends, read-marking, live events, refreshes) goes through the reducers in
services.messaging.reducer, so replays and duplicates are harmless.
"""

import asyncio
import logging
from typing import Optional, Set, Tuple, Union

from ..core.exceptions import DomainException, ValidationException
from ..models.message import MessageKind
from ..principal import UserPrincipal
from ..schemas.messaging import ConversationSummary, MessageRead
from .conversation_service import ConversationService, total_unread
from .message_service import MessageService
from .messaging.events import ChangeType, MessageChange
from .messaging.realtime import RealtimeBridge, SubscriptionHandle
from .messaging.reducer import (
    OpenConversationState,
    apply_read_to_conversations,
    reconcile_conversations,
    reduce_open_conversation,
    upsert_conversation,
)
from .read_state_service import ReadStateService

logger = logging.getLogger(__name__)


class ConversationSession:
    """
    Messaging state for one authenticated user.

    Only one conversation is open at a time. A load superseded by a later
    open is discarded, even when both target the same conversation.
    """

    def __init__(
        self,
        principal: UserPrincipal,
        conversation_service: ConversationService,
        message_service: MessageService,
        read_state_service: ReadStateService,
        bridge: Optional[RealtimeBridge] = None,
    ):
        self.principal = principal
        self.conversation_service = conversation_service
        self.message_service = message_service
        self.read_state_service = read_state_service
        self.bridge = bridge

        self.conversations: Tuple[ConversationSummary, ...] = ()
        self.open_state = OpenConversationState()
        self.draft = ""
        self.sending = False
        self.last_error: Optional[DomainException] = None

        self._list_handle: Optional[SubscriptionHandle] = None
        self._active_handle: Optional[SubscriptionHandle] = None
        self._refresh_tasks: Set["asyncio.Task[None]"] = set()
        # Bumped on every open; only the newest load may land
        self._open_token = 0

    @property
    def active_id(self) -> Optional[str]:
        return self.open_state.conversation_id

    @property
    def active(self) -> Optional[ConversationSummary]:
        return self._find(self.active_id) if self.active_id else None

    @property
    def messages(self) -> Tuple[MessageRead, ...]:
        return self.open_state.messages

    @property
    def total_unread(self) -> int:
        return total_unread(self.conversations)

    def _find(self, conversation_id: Optional[str]) -> Optional[ConversationSummary]:
        return next((c for c in self.conversations if c.id == conversation_id), None)

    # Lifecycle

    async def start(self) -> None:
        """Subscribe to conversation changes and load the list."""
        if self.bridge is not None and self._list_handle is None:
            self._list_handle = self.bridge.on_conversations_changed(
                self.handle_conversations_changed
            )
        await self.refresh_conversations()

    async def shutdown(self) -> None:
        """Release every subscription and pending refresh."""
        await self.close()
        if self._list_handle is not None:
            await self._list_handle.close()
            self._list_handle = None

        tasks, self._refresh_tasks = self._refresh_tasks, set()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Conversation list

    async def refresh_conversations(self) -> Tuple[ConversationSummary, ...]:
        """
        Reload the conversation list.

        On failure the previous list is kept, the error is recorded in
        last_error and re-raised.
        """
        try:
            loaded = await self.conversation_service.load_conversations(self.principal)
        except DomainException as exc:
            self.last_error = exc
            raise
        self.conversations = reconcile_conversations(self.conversations, loaded)
        self.last_error = None
        return self.conversations

    async def create_conversation(self, other_user_id: str) -> str:
        """Resolve a conversation with another user and add it to the list."""
        summary = await self.conversation_service.create_conversation(
            self.principal, other_user_id
        )
        self.conversations = upsert_conversation(self.conversations, summary)
        return summary.id

    # Open conversation

    async def open(self, conversation: Union[ConversationSummary, str]) -> Tuple[MessageRead, ...]:
        """
        Make a conversation the open one and load its messages.

        Loading marks the caller's unread messages read, which lowers the
        conversation's unread count. On failure the conversation's previous
        message list is kept and the error re-raised.
        """
        conversation_id = conversation if isinstance(conversation, str) else conversation.id

        if self.active_id != conversation_id:
            await self._release_active()
            self.open_state = OpenConversationState(conversation_id=conversation_id)
            if self.bridge is not None:
                self._active_handle = self.bridge.on_messages_changed(
                    conversation_id, self.handle_message_change
                )

        self._open_token += 1
        token = self._open_token
        try:
            loaded = await self.message_service.load_messages(self.principal, conversation_id)
        except DomainException as exc:
            if token == self._open_token:
                self.last_error = exc
            raise

        if token != self._open_token or self.active_id != conversation_id:
            logger.debug(f"[MESSAGING] Discarding stale messages for {conversation_id}")
            return self.messages

        # Live inserts that arrived while loading survive the reload
        state = OpenConversationState(conversation_id=conversation_id, messages=tuple(loaded))
        for message in self.open_state.messages:
            state = reduce_open_conversation(state, MessageChange.local_insert(message))
        self.open_state = state

        summary = self._find(conversation_id)
        if summary is not None:
            remaining = sum(
                1 for m in loaded if m.receiver_id == self.principal.user_id and not m.read
            )
            self.conversations = apply_read_to_conversations(
                self.conversations, conversation_id, summary.unread_count - remaining
            )
        self.last_error = None
        return self.messages

    async def _release_active(self) -> None:
        handle, self._active_handle = self._active_handle, None
        if handle is not None:
            await handle.close()

    async def close(self) -> None:
        """Close the open conversation and drop its subscription."""
        await self._release_active()
        self.open_state = OpenConversationState()
        self.draft = ""

    async def send(
        self, body: Optional[str] = None, kind: MessageKind = MessageKind.TEXT
    ) -> MessageRead:
        """
        Send the draft (or body) to the open conversation.

        On failure the draft stays populated and the error is re-raised.
        """
        conversation_id = self.active_id
        if conversation_id is None:
            raise ValidationException("No conversation is open", code="NO_OPEN_CONVERSATION")

        text = self.draft if body is None else body
        self.sending = True
        try:
            message = await self.message_service.send_message(
                self.principal, conversation_id, text, kind
            )
        except DomainException as exc:
            self.draft = text
            self.last_error = exc
            raise
        finally:
            self.sending = False

        self.draft = ""
        self.handle_message_change(MessageChange.local_insert(message))
        self._record_activity(message)
        return message

    def _record_activity(self, message: MessageRead) -> None:
        summary = self._find(message.conversation_id)
        if summary is None:
            return
        if summary.last_message_at is not None and summary.last_message_at > message.created_at:
            return
        self.conversations = upsert_conversation(
            self.conversations,
            summary.model_copy(
                update={
                    "last_message": message,
                    "last_message_at": message.created_at,
                    "provisional": False,
                }
            ),
        )

    async def mark_read(self, message_id: str) -> MessageRead:
        """Mark one message read and fold the result into the open list."""
        before = next((m for m in self.messages if m.id == message_id), None)
        message = await self.read_state_service.mark_read(message_id, self.principal)
        self.handle_message_change(MessageChange.local_update(message))
        if before is not None and not before.read:
            self.conversations = apply_read_to_conversations(
                self.conversations, message.conversation_id, 1
            )
        return message

    # Live updates

    def handle_message_change(self, change: MessageChange) -> None:
        """Fold a change into the open conversation."""
        self.open_state = reduce_open_conversation(self.open_state, change)

    def handle_conversations_changed(self, change: MessageChange) -> None:
        """Schedule a list refresh for any in-scope change."""
        if change.type is ChangeType.INSERT:
            self.handle_message_change(change)
        task = asyncio.get_running_loop().create_task(self._refresh_quietly())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh_conversations()
        except DomainException as exc:
            logger.warning(f"[MESSAGING] Background conversation refresh failed: {exc}")
