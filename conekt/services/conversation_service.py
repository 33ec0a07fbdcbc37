# conekt/services/conversation_service.py
"""
Conversation Service (Conversation Aggregator).

Builds a user's conversation list from the flat message table:
- One query for every message the user sent or received
- Grouped by canonical conversation id
- Latest message and unread count per conversation
- Therapist/client slots assigned by role, never by send direction

Also resolves a counterpart into a conversation (createConversation) without
persisting anything until the first message is sent.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.exceptions import (
    InvalidParticipantsException,
    NotFoundException,
    RepositoryException,
    RetrievalFailedException,
)
from ..domain.conversation_identity import derive_conversation_id
from ..domain.participants import assign_slots, participant_from
from ..models.conversation import Conversation
from ..principal import UserPrincipal
from ..repositories.conversation_repository import ConversationRepository
from ..repositories.message_repository import MessageRepository
from ..repositories.user_repository import UserRepository
from ..schemas.messaging import ConversationSummary, MessageRead, ParticipantSummary
from .base import BaseService
from .messaging.reducer import sort_conversations

logger = logging.getLogger(__name__)


@dataclass
class _Group:
    latest: MessageRead
    own: Optional[ParticipantSummary]
    other: Optional[ParticipantSummary]
    unread: int = 0


def aggregate_conversations(
    user_id: str,
    messages: Iterable[MessageRead],
    rows: Optional[Mapping[str, Conversation]] = None,
) -> List[ConversationSummary]:
    """
    Group a user's messages into conversation summaries.

    Args:
        user_id: The user whose list is being built
        messages: Every message the user sent or received, in any order
        rows: Optional conversation rows keyed by id, used for is_active

    Returns:
        Summaries sorted by last_message_at descending
    """
    rows = rows or {}
    groups: Dict[str, _Group] = {}

    for message in messages:
        other_id = message.other_party_id(user_id)
        try:
            conversation_id = derive_conversation_id(user_id, other_id)
        except InvalidParticipantsException as exc:
            logger.warning(f"[MESSAGING] Skipping message {message.id}: {exc}")
            continue

        group = groups.get(conversation_id)
        if group is None:
            group = groups[conversation_id] = _Group(
                latest=message,
                own=message.own_party(user_id),
                other=message.other_party(user_id),
            )
        elif (message.created_at, message.id) > (group.latest.created_at, group.latest.id):
            group.latest = message

        if message.receiver_id == user_id and not message.read:
            group.unread += 1

    summaries = []
    for conversation_id, group in groups.items():
        if group.own is None or group.other is None:
            logger.warning(
                f"[MESSAGING] Skipping {conversation_id}: participant details not loaded"
            )
            continue
        try:
            therapist, client = assign_slots(
                participant_from(group.own), participant_from(group.other)
            )
        except InvalidParticipantsException as exc:
            logger.warning(
                f"[MESSAGING] Skipping {conversation_id}: {exc}",
                extra={"conversation_id": conversation_id, "details": exc.details},
            )
            continue

        by_id = {group.own.id: group.own, group.other.id: group.other}
        row = rows.get(conversation_id)
        summaries.append(
            ConversationSummary(
                id=conversation_id,
                therapist_id=therapist.id,
                client_id=client.id,
                therapist=by_id[therapist.id],
                client=by_id[client.id],
                is_active=row.is_active if row is not None else True,
                last_message_at=group.latest.created_at,
                last_message=group.latest,
                unread_count=group.unread,
            )
        )

    return list(sort_conversations(summaries))


def total_unread(conversations: Iterable[ConversationSummary]) -> int:
    """Total unread messages across conversations (badge count)."""
    return sum(c.unread_count for c in conversations)


class ConversationService(BaseService):
    """
    Service for a user's conversation list.

    Conversations are a read model over messages; the conversation rows only
    contribute their is_active flag.
    """

    def __init__(
        self,
        db: Session,
        message_repository: Optional[MessageRepository] = None,
        conversation_repository: Optional[ConversationRepository] = None,
        user_repository: Optional[UserRepository] = None,
    ):
        """
        Initialize conversation service.

        Args:
            db: Database session
            message_repository: Optional repository for messages
            conversation_repository: Optional repository for conversation rows
            user_repository: Optional repository for users
        """
        super().__init__(db)
        self.message_repository = message_repository or MessageRepository(db)
        self.conversation_repository = conversation_repository or ConversationRepository(db)
        self.user_repository = user_repository or UserRepository(db)
        self.logger = logging.getLogger(__name__)

    def _rows_for(self, user_id: str, messages: Sequence[MessageRead]) -> Dict[str, Conversation]:
        ids = set()
        for message in messages:
            try:
                ids.add(derive_conversation_id(user_id, message.other_party_id(user_id)))
            except InvalidParticipantsException:
                continue
        return self.conversation_repository.find_by_ids(ids)

    @BaseService.measure_operation("load_conversations")
    async def load_conversations(
        self, principal: Optional[UserPrincipal]
    ) -> List[ConversationSummary]:
        """
        Load the caller's conversations, newest activity first.

        Raises:
            UnauthorizedException: No principal
            RetrievalFailedException: The store could not be reached
        """
        principal = self.require_principal(principal)
        user_id = principal.user_id

        def _load() -> List[ConversationSummary]:
            rows = self.message_repository.find_for_user(user_id)
            messages = [MessageRead.model_validate(row) for row in rows]
            return aggregate_conversations(user_id, messages, self._rows_for(user_id, messages))

        try:
            conversations = await asyncio.to_thread(_load)
        except RepositoryException as exc:
            self.logger.error(f"[MESSAGING] Failed to load conversations for {user_id}: {exc}")
            raise RetrievalFailedException(
                "Failed to load conversations", details={"user_id": user_id}
            ) from exc

        self.logger.debug(
            f"[MESSAGING] Loaded {len(conversations)} conversations",
            extra={"user_id": user_id, "total_unread": total_unread(conversations)},
        )
        return conversations

    @BaseService.measure_operation("create_conversation")
    async def create_conversation(
        self, principal: Optional[UserPrincipal], other_user_id: str
    ) -> ConversationSummary:
        """
        Resolve the conversation between the caller and another user.

        Returns the existing conversation when the pair already has history,
        otherwise a provisional summary. Persists nothing, so calling it
        repeatedly is harmless.

        Raises:
            UnauthorizedException: No principal
            InvalidParticipantsException: Self-conversation or same-role pair
            NotFoundException: The other user does not exist
            RetrievalFailedException: The store could not be reached
        """
        principal = self.require_principal(principal)
        user_id = principal.user_id
        conversation_id = derive_conversation_id(user_id, other_user_id)

        def _resolve() -> ConversationSummary:
            users = self.user_repository.get_many([user_id, other_user_id])
            for required in (other_user_id, user_id):
                if required not in users:
                    raise NotFoundException(
                        f"User {required} not found",
                        code="USER_NOT_FOUND",
                        details={"user_id": required},
                    )
            therapist, client = assign_slots(
                participant_from(users[user_id]), participant_from(users[other_user_id])
            )

            history = [
                MessageRead.model_validate(row)
                for row in self.message_repository.find_between(user_id, other_user_id)
            ]
            row = self.conversation_repository.get_by_id(conversation_id, load_relationships=False)
            if history:
                existing = aggregate_conversations(
                    user_id, history, {conversation_id: row} if row is not None else None
                )
                if existing:
                    return existing[0]

            return ConversationSummary(
                id=conversation_id,
                therapist_id=therapist.id,
                client_id=client.id,
                therapist=ParticipantSummary.model_validate(users[therapist.id]),
                client=ParticipantSummary.model_validate(users[client.id]),
                is_active=row.is_active if row is not None else True,
                provisional=True,
            )

        try:
            summary = await asyncio.to_thread(_resolve)
        except RepositoryException as exc:
            self.logger.error(f"[MESSAGING] Failed to resolve {conversation_id}: {exc}")
            raise RetrievalFailedException(
                "Failed to load conversation", details={"conversation_id": conversation_id}
            ) from exc

        self.logger.info(
            f"[MESSAGING] Resolved conversation {conversation_id}",
            extra={"conversation_id": conversation_id, "provisional": summary.provisional},
        )
        return summary
