"""
Live messaging package.

- events: message change envelopes (INSERT / UPDATE)
- publisher: fire-and-forget publishing through the shared Broadcaster
- realtime: caller-owned subscription handles (Live Update Bridge)
- reducer: pure, idempotent folding of changes into local state
"""

from conekt.services.messaging.events import (
    SCHEMA_VERSION,
    ChangeType,
    MessageChange,
    build_event,
    build_message_change_event,
)
from conekt.services.messaging.publisher import publish_message_change, publish_to_user
from conekt.services.messaging.realtime import (
    RealtimeBridge,
    SubscriptionHandle,
    SubscriptionState,
)
from conekt.services.messaging.reducer import (
    OpenConversationState,
    merge_message,
    reconcile_conversations,
    reduce_open_conversation,
    upsert_conversation,
)

__all__ = [
    # Events
    "ChangeType",
    "MessageChange",
    "SCHEMA_VERSION",
    "build_event",
    "build_message_change_event",
    # Publishers
    "publish_message_change",
    "publish_to_user",
    # Subscriptions
    "RealtimeBridge",
    "SubscriptionHandle",
    "SubscriptionState",
    # Reducers
    "OpenConversationState",
    "merge_message",
    "reduce_open_conversation",
    "upsert_conversation",
    "reconcile_conversations",
]
