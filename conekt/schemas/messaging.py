# conekt/schemas/messaging.py
"""
Pydantic schemas for messages and conversations.

These are the immutable values held in memory by the session and folded by
the live-update reducers, as well as the request/response models of the API.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..domain.participants import Role
from ..models.message import MessageKind


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ParticipantSummary(BaseModel):
    """Denormalized user reference embedded in messages and conversations."""

    id: str
    name: str = ""
    avatar_url: Optional[str] = None
    role: Role

    model_config = ConfigDict(from_attributes=True, frozen=True)


class AttachmentRead(BaseModel):
    """File attached to a message."""

    id: str
    file_name: str
    file_url: str
    file_type: str
    file_size: int

    model_config = ConfigDict(from_attributes=True, frozen=True)


class AttachmentCreate(BaseModel):
    """Attachment reference supplied when sending a message."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=1024)
    file_type: str = Field(..., min_length=1, max_length=100)
    file_size: int = Field(..., ge=0)


class MessageRead(BaseModel):
    """A persisted message."""

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    body: str
    kind: MessageKind = MessageKind.TEXT
    is_system: bool = False
    read: bool = False
    created_at: datetime
    edited_at: Optional[datetime] = None
    attachments: List[AttachmentRead] = Field(default_factory=list)
    sender: Optional[ParticipantSummary] = None
    receiver: Optional[ParticipantSummary] = None

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at", "edited_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)

    def other_party_id(self, user_id: str) -> str:
        """Return whichever of sender/receiver is not user_id."""
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def other_party(self, user_id: str) -> Optional[ParticipantSummary]:
        return self.receiver if self.sender_id == user_id else self.sender

    def own_party(self, user_id: str) -> Optional[ParticipantSummary]:
        return self.sender if self.sender_id == user_id else self.receiver


class ConversationSummary(BaseModel):
    """Conversation as seen by one user."""

    id: str
    therapist_id: str
    client_id: str
    therapist: Optional[ParticipantSummary] = None
    client: Optional[ParticipantSummary] = None
    is_active: bool = True
    last_message_at: Optional[datetime] = None
    last_message: Optional[MessageRead] = None
    unread_count: int = 0
    provisional: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("last_message_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)


# Request / response models


class CreateConversationRequest(BaseModel):
    other_user_id: str = Field(..., min_length=1)


class CreateConversationResponse(BaseModel):
    id: str
    provisional: bool


class SendMessageRequest(BaseModel):
    body: str
    kind: MessageKind = MessageKind.TEXT
    attachments: List[AttachmentCreate] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]
    total_unread: int = 0


class MessagesResponse(BaseModel):
    conversation_id: str
    messages: List[MessageRead]
