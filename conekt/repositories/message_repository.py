# conekt/repositories/message_repository.py
"""
Message Repository for the chat system.

Implements all data access operations for messages. Queries mirror the
filter primitives of the remote store: equality, OR of equalities,
ordering and limit.
"""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session, joinedload, selectinload

from ..core.exceptions import RepositoryException
from ..models.message import Message, MessageAttachment, MessageKind
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class MessageRepository(BaseRepository[Message]):
    """
    Repository for message data access.
    """

    def __init__(self, db: Session):
        """Initialize with Message model."""
        super().__init__(db, Message)
        self.logger = logging.getLogger(__name__)

    def _apply_eager_loading(self, query: Query) -> Query:
        return query.options(
            joinedload(Message.sender),
            joinedload(Message.receiver),
            selectinload(Message.attachments),
        )

    def find_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Message]:
        """
        All messages the user sent or received, newest first.

        Sender and receiver are eager-loaded so participant summaries are
        available without further queries.
        """
        query = self._apply_eager_loading(
            self.db.query(Message).filter(
                or_(Message.sender_id == user_id, Message.receiver_id == user_id)
            )
        ).order_by(Message.created_at.desc(), Message.id.desc())
        if limit:
            query = query.limit(limit)
        return self._execute_query(query)

    def find_between(self, first_id: str, second_id: str) -> List[Message]:
        """
        All messages exchanged between two users, oldest first.
        """
        query = self._apply_eager_loading(
            self.db.query(Message).filter(
                or_(
                    and_(Message.sender_id == first_id, Message.receiver_id == second_id),
                    and_(Message.sender_id == second_id, Message.receiver_id == first_id),
                )
            )
        ).order_by(Message.created_at.asc(), Message.id.asc())
        return self._execute_query(query)

    def count_unread_for_user(self, user_id: str) -> int:
        """Count unread messages addressed to a user across all conversations."""
        try:
            return (
                self.db.query(Message)
                .filter(Message.receiver_id == user_id, Message.read.is_(False))
                .count()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting unread messages for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to count unread messages: {str(e)}")

    def create_message(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
        is_system: bool = False,
        attachments: Optional[Sequence[Dict[str, Any]]] = None,
        created_at: Optional[datetime] = None,
    ) -> Message:
        """
        Persist a new unread message and its attachments.

        Note: Does NOT commit - the calling service owns the transaction.
        """
        message = self.create(
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            body=body,
            kind=kind.value,
            is_system=is_system,
            read=False,
            created_at=created_at or datetime.now(timezone.utc),
        )
        try:
            for attachment in attachments or ():
                self.db.add(MessageAttachment(message_id=message.id, **attachment))
            self.db.flush()
            self.db.refresh(message)
        except SQLAlchemyError as e:
            self.logger.error(f"Error adding attachments to message {message.id}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to create attachments: {str(e)}")
        return message

    def mark_read(self, message_id: str) -> Tuple[Optional[Message], bool]:
        """
        Set the read flag on a message.

        Returns:
            Tuple of (message, changed); message is None if not found and
            changed is False when the message was already read
        """
        try:
            message = self.get_by_id(message_id)
            if message is None:
                return None, False
            if message.read:
                return message, False
            message.read = True
            self.db.flush()
            return message, True
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking message {message_id} as read: {str(e)}")
            raise RepositoryException(f"Failed to mark message as read: {str(e)}")
