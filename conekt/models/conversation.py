# conekt/models/conversation.py
"""
Conversation model for per-user-pair messaging.

Each therapist-client pair has exactly one conversation. The primary key is
the canonical conversation id derived from the two participant ids, so the
row and the id computed from message history can never disagree.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base


class Conversation(Base):
    """
    Server-maintained conversation row.

    Attributes:
        id: Canonical conversation id (conv_<a>_<b>)
        therapist_id: Foreign key to the therapist (User)
        client_id: Foreign key to the client (User)
        is_active: Whether the conversation is active
        created_at: When the conversation was created
        updated_at: When the conversation was last updated
        last_message_at: When the most recent message was sent
    """

    __tablename__ = "conversations"

    id = Column(String(100), primary_key=True)
    therapist_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    therapist = relationship("User", foreign_keys=[therapist_id])
    client = relationship("User", foreign_keys=[client_id])
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
    )

    __table_args__ = (
        UniqueConstraint("therapist_id", "client_id", name="uq_conversations_pair"),
        Index("idx_conversations_therapist", "therapist_id"),
        Index("idx_conversations_client", "client_id"),
        Index("idx_conversations_last_message", "last_message_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Conversation(id={self.id}, therapist={self.therapist_id}, client={self.client_id})>"
        )
