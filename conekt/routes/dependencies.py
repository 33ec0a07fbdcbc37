# conekt/routes/dependencies.py
"""Service dependencies shared by the messaging routes."""

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.conversation_service import ConversationService
from ..services.message_service import MessageService
from ..services.read_state_service import ReadStateService


def get_conversation_service(db: Session = Depends(get_db)) -> ConversationService:
    """Dependency for ConversationService."""
    return ConversationService(db)


def get_read_state_service(db: Session = Depends(get_db)) -> ReadStateService:
    """Dependency for ReadStateService."""
    return ReadStateService(db)


def get_message_service(
    db: Session = Depends(get_db),
    read_state_service: ReadStateService = Depends(get_read_state_service),
) -> MessageService:
    """Dependency for MessageService."""
    return MessageService(db, read_state_service=read_state_service)
