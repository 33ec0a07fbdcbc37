"""ORM models. Importing this package registers every table on Base.metadata."""

from .conversation import Conversation
from .message import Message, MessageAttachment, MessageKind
from .user import User

__all__ = [
    "User",
    "Conversation",
    "Message",
    "MessageAttachment",
    "MessageKind",
]
