from .messaging import (
    AttachmentCreate,
    AttachmentRead,
    ConversationListResponse,
    ConversationSummary,
    CreateConversationRequest,
    CreateConversationResponse,
    MessageRead,
    MessagesResponse,
    ParticipantSummary,
    SendMessageRequest,
)

__all__ = [
    "AttachmentCreate",
    "AttachmentRead",
    "ConversationListResponse",
    "ConversationSummary",
    "CreateConversationRequest",
    "CreateConversationResponse",
    "MessageRead",
    "MessagesResponse",
    "ParticipantSummary",
    "SendMessageRequest",
]
