# conekt/services/messaging/reducer.py
"""
Pure reducers for locally held messaging state.

Every writer (local sends, read-marking, live events, manual refresh) folds
its result through these functions. They never mutate their inputs and are
idempotent: replaying or duplicating a change leaves the state unchanged.

Merge rules:
- INSERT: append if absent (by message id), keeping chronological order
- UPDATE: last write wins on the read flag, only for messages already present
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence, Tuple

from conekt.schemas.messaging import ConversationSummary, MessageRead

from .events import ChangeType, MessageChange

# Provisional conversations have no activity yet and sort on top
_NEWEST = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class OpenConversationState:
    """The conversation currently open on screen and its message list."""

    conversation_id: Optional[str] = None
    messages: Tuple[MessageRead, ...] = ()


def _chronological_key(message: MessageRead) -> Tuple[datetime, str]:
    return message.created_at, message.id


def merge_message(
    messages: Tuple[MessageRead, ...], change: MessageChange
) -> Tuple[MessageRead, ...]:
    """
    Fold one change into a chronological message tuple.

    Returns the input tuple itself when the change has no effect.
    """
    incoming = change.message
    index = next((i for i, m in enumerate(messages) if m.id == incoming.id), None)

    if change.type is ChangeType.INSERT:
        if index is not None:
            return messages
        merged = messages + (incoming,)
        if messages and _chronological_key(incoming) < _chronological_key(messages[-1]):
            merged = tuple(sorted(merged, key=_chronological_key))
        return merged

    if index is None or messages[index].read == incoming.read:
        return messages
    patched = messages[index].model_copy(update={"read": incoming.read})
    return messages[:index] + (patched,) + messages[index + 1 :]


def reduce_open_conversation(
    state: OpenConversationState, change: MessageChange
) -> OpenConversationState:
    """Apply a change to the open conversation if it belongs to it."""
    if state.conversation_id is None or change.conversation_id != state.conversation_id:
        return state
    messages = merge_message(state.messages, change)
    if messages is state.messages:
        return state
    return replace(state, messages=messages)


def _activity_key(summary: ConversationSummary) -> datetime:
    return summary.last_message_at or _NEWEST


def sort_conversations(
    conversations: Iterable[ConversationSummary],
) -> Tuple[ConversationSummary, ...]:
    """Newest activity first; provisional (no activity yet) on top."""
    return tuple(sorted(conversations, key=_activity_key, reverse=True))


def upsert_conversation(
    conversations: Sequence[ConversationSummary], summary: ConversationSummary
) -> Tuple[ConversationSummary, ...]:
    """
    Insert or replace a conversation by id.

    A provisional summary never replaces a materialized one.
    """
    existing = next((c for c in conversations if c.id == summary.id), None)
    if existing is not None and summary.provisional and not existing.provisional:
        return tuple(conversations)
    others = [c for c in conversations if c.id != summary.id]
    return sort_conversations(others + [summary])


def reconcile_conversations(
    current: Sequence[ConversationSummary], loaded: Sequence[ConversationSummary]
) -> Tuple[ConversationSummary, ...]:
    """
    Replace the list with freshly loaded conversations.

    Provisional conversations that have no history yet are kept until a
    load includes them.
    """
    loaded_ids = {c.id for c in loaded}
    pending = [c for c in current if c.provisional and c.id not in loaded_ids]
    return sort_conversations(list(loaded) + pending)


def apply_read_to_conversations(
    conversations: Sequence[ConversationSummary], conversation_id: str, drained: int
) -> Tuple[ConversationSummary, ...]:
    """Lower a conversation's unread count after messages were marked read."""
    if drained <= 0:
        return tuple(conversations)
    return tuple(
        c.model_copy(update={"unread_count": max(0, c.unread_count - drained)})
        if c.id == conversation_id
        else c
        for c in conversations
    )
