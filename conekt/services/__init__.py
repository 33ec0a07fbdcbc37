"""
Service layer for the messaging core.

Services own transactions, translate data-access failures into domain
errors and publish live changes after successful writes.
"""

from .base import BaseService
from .conversation_service import ConversationService, aggregate_conversations, total_unread
from .message_service import MessageService
from .read_state_service import ReadDrainResult, ReadStateService
from .session import ConversationSession

__all__ = [
    "BaseService",
    "ConversationService",
    "ConversationSession",
    "MessageService",
    "ReadDrainResult",
    "ReadStateService",
    "aggregate_conversations",
    "total_unread",
]
