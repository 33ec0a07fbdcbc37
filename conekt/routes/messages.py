# conekt/routes/messages.py
"""
Message routes - API v1

    POST /{message_id}/read -> Mark a message as read (receiver only, idempotent)
"""

from fastapi import APIRouter, Depends

from ..auth import get_current_user
from ..principal import UserPrincipal
from ..schemas.messaging import MessageRead
from ..services.read_state_service import ReadStateService
from .dependencies import get_read_state_service

router = APIRouter(tags=["messages-v1"])


@router.post("/{message_id}/read", response_model=MessageRead)
async def mark_message_read(
    message_id: str,
    current_user: UserPrincipal = Depends(get_current_user),
    service: ReadStateService = Depends(get_read_state_service),
) -> MessageRead:
    """Mark a message addressed to the caller as read."""
    return await service.mark_read(message_id, current_user)
