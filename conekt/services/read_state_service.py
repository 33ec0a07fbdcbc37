# conekt/services/read_state_service.py
"""
Read-State Tracker.

Flips a message's read flag and drains the unread messages of an opened
conversation. Marking read is idempotent, which makes it the one store
write that is safe to retry.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    DomainException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    RetrievalFailedException,
    ServiceException,
)
from ..principal import UserPrincipal
from ..repositories.message_repository import MessageRepository
from ..schemas.messaging import MessageRead
from .base import BaseService
from .messaging.events import ChangeType
from .messaging.publisher import publish_message_change

logger = logging.getLogger(__name__)

# Failures that retrying cannot fix
_PERMANENT_FAILURES = (NotFoundException, ForbiddenException)


@dataclass(frozen=True)
class ReadDrainResult:
    """Outcome of draining a conversation's unread messages."""

    marked: Tuple[MessageRead, ...] = ()
    failed: Tuple[str, ...] = ()

    @property
    def marked_ids(self) -> Tuple[str, ...]:
        return tuple(m.id for m in self.marked)


class ReadStateService(BaseService):
    """Service for message read receipts."""

    def __init__(self, db: Session, message_repository: Optional[MessageRepository] = None):
        super().__init__(db)
        self.message_repository = message_repository or MessageRepository(db)
        self.logger = logging.getLogger(__name__)

    @BaseService.measure_operation("mark_read")
    async def mark_read(
        self, message_id: str, principal: Optional[UserPrincipal] = None
    ) -> MessageRead:
        """
        Mark one message as read.

        An already-read message is a successful no-op. When a principal is
        given it must be the message's receiver.

        Raises:
            NotFoundException: Unknown message id
            ForbiddenException: Principal is not the receiver
            RetrievalFailedException: The store could not be reached
        """

        def _mark() -> Tuple[MessageRead, bool]:
            message = self.message_repository.get_by_id(message_id)
            if message is None:
                raise NotFoundException(
                    f"Message {message_id} not found",
                    code="MESSAGE_NOT_FOUND",
                    details={"message_id": message_id},
                )
            if principal is not None and message.receiver_id != principal.user_id:
                raise ForbiddenException(
                    "Only the receiver can mark a message as read",
                    code="NOT_RECEIVER",
                    details={"message_id": message_id},
                )
            with self.transaction():
                updated, changed = self.message_repository.mark_read(message_id)
                result = MessageRead.model_validate(updated)
            return result, changed

        try:
            message, changed = await asyncio.to_thread(_mark)
        except (RepositoryException, ServiceException) as exc:
            self.logger.error(f"[MESSAGING] Failed to mark message {message_id} read: {exc}")
            raise RetrievalFailedException(
                "Failed to mark message as read", details={"message_id": message_id}
            ) from exc

        if changed:
            await publish_message_change(ChangeType.UPDATE, message)
        return message

    async def _mark_with_retry(
        self, message_id: str, principal: UserPrincipal
    ) -> Optional[MessageRead]:
        attempts = settings.mark_read_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await self.mark_read(message_id, principal)
            except _PERMANENT_FAILURES as exc:
                self.logger.warning(f"[MESSAGING] Not marking message {message_id} read: {exc}")
                return None
            except DomainException as exc:
                self.logger.warning(
                    f"[MESSAGING] Mark read attempt {attempt}/{attempts} failed: {exc}",
                    extra={"message_id": message_id, "attempt": attempt},
                )
        return None

    @BaseService.measure_operation("mark_all_read")
    async def mark_all_read(
        self, principal: Optional[UserPrincipal], messages: Iterable[MessageRead]
    ) -> ReadDrainResult:
        """
        Mark every unread message addressed to the principal as read.

        Messages are marked one after another. Individual failures are
        logged and reported in the result, never raised.
        """
        principal = self.require_principal(principal)
        pending = [m for m in messages if m.receiver_id == principal.user_id and not m.read]
        if not pending:
            return ReadDrainResult()

        marked = []
        failed = []
        for message in pending:
            result = await self._mark_with_retry(message.id, principal)
            if result is None:
                failed.append(message.id)
            else:
                marked.append(result)

        if failed:
            self.logger.warning(
                f"[MESSAGING] {len(failed)} of {len(pending)} messages could not be marked read",
                extra={"user_id": principal.user_id, "failed_ids": failed},
            )
        return ReadDrainResult(marked=tuple(marked), failed=tuple(failed))
