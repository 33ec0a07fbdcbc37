# conekt/repositories/conversation_repository.py
"""
Conversation Repository for per-user-pair messaging.

Provides data access methods for the server-maintained conversation rows.
Rows are keyed by the canonical conversation id, so lookups by pair and by id
are the same lookup.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.conversation import Conversation
from .base_repository import BaseRepository


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite returns naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConversationRepository(BaseRepository[Conversation]):
    """
    Repository for Conversation entity operations.

    Handles:
    - Finding or creating the conversation row for a therapist-client pair
    - Listing conversation rows for a user
    - Updating conversation metadata (last_message_at)
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        super().__init__(db, Conversation)

    def get_or_create(
        self, conversation_id: str, therapist_id: str, client_id: str
    ) -> tuple[Conversation, bool]:
        """
        Get an existing conversation row or create a new one.

        Idempotent - safe to call for every send.

        Returns:
            Tuple of (conversation, created) where created is True if new
        """
        existing = self.get_by_id(conversation_id, load_relationships=False)
        if existing:
            return existing, False

        conversation = self.create(
            id=conversation_id,
            therapist_id=therapist_id,
            client_id=client_id,
        )
        return conversation, True

    def find_by_ids(self, conversation_ids: Iterable[str]) -> Dict[str, Conversation]:
        """Load conversation rows by id, keyed by id."""
        ids = list(set(conversation_ids))
        if not ids:
            return {}
        rows = self._execute_query(self.db.query(Conversation).filter(Conversation.id.in_(ids)))
        return {row.id: row for row in rows}

    def update_last_message_at(
        self, conversation_id: str, timestamp: Optional[datetime] = None
    ) -> Optional[Conversation]:
        """
        Advance the last_message_at timestamp for a conversation.

        Never moves the timestamp backwards.
        """
        try:
            conversation = self.get_by_id(conversation_id, load_relationships=False)
            if conversation:
                new_value = _as_utc(timestamp or datetime.now(timezone.utc))
                current = _as_utc(conversation.last_message_at)
                if current is None or new_value > current:
                    conversation.last_message_at = new_value
                conversation.updated_at = datetime.now(timezone.utc)
                self.db.flush()
            return conversation
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating last_message_at for {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to update conversation: {str(e)}")
