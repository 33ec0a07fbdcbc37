# conekt/services/message_service.py
"""
Message Store Accessor.

Handles business logic for messages within a conversation:
- Loading a conversation's history (and draining its unread messages)
- Sending messages with validation and conversation upsert
- Posting automated system messages for integrations such as booking
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    InvalidMessageException,
    NotFoundException,
    RepositoryException,
    RetrievalFailedException,
    SendFailedException,
    ServiceException,
)
from ..domain.conversation_identity import other_participant_id
from ..domain.participants import assign_slots, participant_from
from ..models.message import MessageKind
from ..principal import UserPrincipal
from ..repositories.conversation_repository import ConversationRepository
from ..repositories.message_repository import MessageRepository
from ..repositories.user_repository import UserRepository
from ..schemas.messaging import AttachmentCreate, MessageRead
from .base import BaseService
from .messaging.events import ChangeType
from .messaging.publisher import publish_message_change
from .read_state_service import ReadStateService

logger = logging.getLogger(__name__)

AttachmentInput = Union[AttachmentCreate, Dict[str, Any]]


class MessageService(BaseService):
    """
    Service for reading and writing the messages of a conversation.

    Sends through one service instance are serialized so that sequential
    sends persist in the order they were issued.
    """

    def __init__(
        self,
        db: Session,
        message_repository: Optional[MessageRepository] = None,
        conversation_repository: Optional[ConversationRepository] = None,
        user_repository: Optional[UserRepository] = None,
        read_state_service: Optional[ReadStateService] = None,
    ):
        """
        Initialize message service.

        Args:
            db: Database session
            message_repository: Optional repository for messages
            conversation_repository: Optional repository for conversation rows
            user_repository: Optional repository for users
            read_state_service: Optional read-state tracker used to drain unread messages
        """
        super().__init__(db)
        self.message_repository = message_repository or MessageRepository(db)
        self.conversation_repository = conversation_repository or ConversationRepository(db)
        self.user_repository = user_repository or UserRepository(db)
        self.read_state_service = read_state_service or ReadStateService(
            db, message_repository=self.message_repository
        )
        self._send_lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _clean_body(body: Optional[str]) -> str:
        text = (body or "").strip()
        if not text:
            raise InvalidMessageException("Message body cannot be empty")
        if len(text) > settings.message_max_length:
            raise InvalidMessageException(
                f"Message body exceeds {settings.message_max_length} characters",
                details={"length": len(text), "max_length": settings.message_max_length},
            )
        return text

    @BaseService.measure_operation("load_messages")
    async def load_messages(
        self,
        principal: Optional[UserPrincipal],
        conversation_id: str,
        mark_read: bool = True,
    ) -> List[MessageRead]:
        """
        Load a conversation's messages, oldest first.

        Unread messages addressed to the caller are marked read as a side
        effect; the returned list carries the updated read flags.

        Raises:
            UnauthorizedException: No principal
            MalformedConversationIdException: Id does not decompose
            ForbiddenException: Caller is not a participant
            RetrievalFailedException: The store could not be reached
        """
        principal = self.require_principal(principal)
        other_id = other_participant_id(conversation_id, principal.user_id)

        def _load() -> List[MessageRead]:
            rows = self.message_repository.find_between(principal.user_id, other_id)
            return [MessageRead.model_validate(row) for row in rows]

        try:
            messages = await asyncio.to_thread(_load)
        except RepositoryException as exc:
            self.logger.error(f"[MESSAGING] Failed to load messages for {conversation_id}: {exc}")
            raise RetrievalFailedException(details={"conversation_id": conversation_id}) from exc

        if not mark_read:
            return messages

        drained = await self.read_state_service.mark_all_read(principal, messages)
        if not drained.marked:
            return messages
        marked_ids = set(drained.marked_ids)
        return [
            m.model_copy(update={"read": True}) if m.id in marked_ids else m for m in messages
        ]

    async def _persist(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        body: str,
        kind: MessageKind,
        is_system: bool,
        attachments: Optional[Sequence[AttachmentInput]],
    ) -> MessageRead:
        attachment_rows = [
            a.model_dump() if isinstance(a, AttachmentCreate) else dict(a)
            for a in attachments or ()
        ]

        def _send() -> MessageRead:
            users = self.user_repository.get_many([sender_id, receiver_id])
            missing = [uid for uid in (sender_id, receiver_id) if uid not in users]
            if missing:
                raise NotFoundException(
                    "Conversation participant not found",
                    code="USER_NOT_FOUND",
                    details={"user_ids": missing},
                )
            therapist, client = assign_slots(
                participant_from(users[sender_id]), participant_from(users[receiver_id])
            )

            with self.transaction():
                self.conversation_repository.get_or_create(
                    conversation_id, therapist_id=therapist.id, client_id=client.id
                )
                message = self.message_repository.create_message(
                    conversation_id=conversation_id,
                    sender_id=sender_id,
                    receiver_id=receiver_id,
                    body=body,
                    kind=kind,
                    is_system=is_system,
                    attachments=attachment_rows,
                )
                self.conversation_repository.update_last_message_at(
                    conversation_id, message.created_at
                )
                result = MessageRead.model_validate(message)
            return result

        async with self._send_lock:
            try:
                message = await asyncio.to_thread(_send)
            except (RepositoryException, ServiceException) as exc:
                self.logger.error(f"[MESSAGING] Failed to send to {conversation_id}: {exc}")
                raise SendFailedException(details={"conversation_id": conversation_id}) from exc

        self.logger.info(
            f"[MESSAGING] Message {message.id} sent in {conversation_id}",
            extra={
                "conversation_id": conversation_id,
                "message_id": message.id,
                "kind": message.kind.value,
                "is_system": is_system,
            },
        )
        await publish_message_change(ChangeType.INSERT, message)
        return message

    @BaseService.measure_operation("send_message")
    async def send_message(
        self,
        principal: Optional[UserPrincipal],
        conversation_id: str,
        body: Optional[str],
        kind: MessageKind = MessageKind.TEXT,
        attachments: Optional[Sequence[AttachmentInput]] = None,
    ) -> MessageRead:
        """
        Send a message from the caller to the other participant.

        The body is trimmed before validation. The conversation row is created
        on first send and its last_message_at advanced on every send, in the
        same transaction as the message insert. Failed sends are rolled back
        and never retried here.

        Raises:
            UnauthorizedException: No principal
            InvalidMessageException: Empty or too long body
            MalformedConversationIdException: Id does not decompose
            ForbiddenException: Caller is not a participant
            InvalidParticipantsException: Pair is not one therapist and one client
            NotFoundException: A participant does not exist
            SendFailedException: The store rejected or could not take the write
        """
        principal = self.require_principal(principal)
        text = self._clean_body(body)
        receiver_id = other_participant_id(conversation_id, principal.user_id)

        return await self._persist(
            conversation_id=conversation_id,
            sender_id=principal.user_id,
            receiver_id=receiver_id,
            body=text,
            kind=MessageKind(kind),
            is_system=False,
            attachments=attachments,
        )

    @BaseService.measure_operation("post_system_message")
    async def post_system_message(
        self,
        conversation_id: str,
        sender_id: str,
        body: str,
        kind: MessageKind = MessageKind.APPOINTMENT_REQUEST,
    ) -> MessageRead:
        """
        Post an automated message on behalf of a participant.

        Used by integrations (e.g. booking) rather than by users typing, so
        there is no authenticated caller. Stored with is_system=True.
        """
        text = self._clean_body(body)
        receiver_id = other_participant_id(conversation_id, sender_id)

        return await self._persist(
            conversation_id=conversation_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            body=text,
            kind=MessageKind(kind),
            is_system=True,
            attachments=None,
        )
