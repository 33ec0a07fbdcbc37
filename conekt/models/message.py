# conekt/models/message.py
"""
Message model for the chat system.

Messages are exchanged between exactly two users. The read flag is the only
column mutated after creation; messages are never deleted in normal flow.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
import ulid

from ..database import Base


class MessageKind(str, Enum):
    """Kind of message content. Non-text kinds carry a URL reference, not binary."""

    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    APPOINTMENT_REQUEST = "appointment_request"


class Message(Base):
    """
    A message from sender to receiver within a conversation.
    """

    __tablename__ = "messages"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    conversation_id = Column(
        String(100), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    receiver_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    body = Column(Text, nullable=False)
    kind = Column(String(32), nullable=False, default=MessageKind.TEXT.value)
    is_system = Column(Boolean, nullable=False, default=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    edited_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    attachments = relationship(
        "MessageAttachment",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageAttachment.created_at",
    )

    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="ck_messages_distinct_participants"),
        Index("idx_messages_sender_created", "sender_id", "created_at"),
        Index("idx_messages_receiver_created", "receiver_id", "created_at"),
        Index("idx_messages_conversation", "conversation_id"),
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, sender={self.sender_id}, receiver={self.receiver_id})>"


class MessageAttachment(Base):
    """
    File reference attached to a message.
    """

    __tablename__ = "message_attachments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    message_id = Column(String(26), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(1024), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    message = relationship("Message", back_populates="attachments")
