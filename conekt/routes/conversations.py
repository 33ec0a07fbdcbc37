# conekt/routes/conversations.py
"""
Conversations routes - API v1

Conversation endpoints under /api/v1/conversations.
All business logic delegated to the services; routes have no direct DB access.

Endpoints:
    GET /                               -> List the caller's conversations
    POST /                              -> Resolve a conversation with another user
    GET /{conversation_id}/messages     -> Load messages (marks unread as read)
    POST /{conversation_id}/messages    -> Send a message
"""

import logging

from fastapi import APIRouter, Depends, status

from ..auth import get_current_user
from ..principal import UserPrincipal
from ..schemas.messaging import (
    ConversationListResponse,
    CreateConversationRequest,
    CreateConversationResponse,
    MessageRead,
    MessagesResponse,
    SendMessageRequest,
)
from ..services.conversation_service import ConversationService, total_unread
from ..services.message_service import MessageService
from .dependencies import get_conversation_service, get_message_service

logger = logging.getLogger(__name__)

# No prefix here, added when mounting in main.py
router = APIRouter(tags=["conversations-v1"])


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    current_user: UserPrincipal = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    """
    List all conversations for the current user.

    Returns one entry per conversation partner, sorted by most recent message.
    """
    conversations = await service.load_conversations(current_user)
    return ConversationListResponse(
        conversations=conversations, total_unread=total_unread(conversations)
    )


@router.post("", response_model=CreateConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    current_user: UserPrincipal = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
) -> CreateConversationResponse:
    """
    Resolve the conversation with another user.

    Nothing is persisted until the first message is sent; a conversation
    without history comes back as provisional.
    """
    summary = await service.create_conversation(current_user, request.other_user_id)
    return CreateConversationResponse(id=summary.id, provisional=summary.provisional)


@router.get("/{conversation_id}/messages", response_model=MessagesResponse)
async def get_messages(
    conversation_id: str,
    current_user: UserPrincipal = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
) -> MessagesResponse:
    """Messages of a conversation, oldest first. Unread messages are marked read."""
    messages = await service.load_messages(current_user, conversation_id)
    return MessagesResponse(conversation_id=conversation_id, messages=messages)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    current_user: UserPrincipal = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
) -> MessageRead:
    """Send a message to the other participant."""
    return await service.send_message(
        current_user,
        conversation_id,
        request.body,
        kind=request.kind,
        attachments=request.attachments,
    )
