"""
Canonical conversation identity.

A conversation id is a pure function of its two participant ids:

    conv_<lower id>_<higher id>

The ids are sorted so the result does not depend on who sent first, and the
prefix keeps conversation ids distinguishable from raw entity ids.
"""

from typing import Optional, Tuple

from conekt.core.config import settings
from conekt.core.exceptions import (
    ForbiddenException,
    InvalidParticipantsException,
    MalformedConversationIdException,
)


def derive_conversation_id(
    first_id: str,
    second_id: str,
    *,
    prefix: Optional[str] = None,
    separator: Optional[str] = None,
) -> str:
    """
    Derive the canonical conversation id for two participants.

    Args:
        first_id: One participant's user id
        second_id: The other participant's user id
        prefix: Override for settings.conversation_id_prefix
        separator: Override for settings.conversation_id_separator

    Returns:
        The canonical id; derive(a, b) == derive(b, a)

    Raises:
        InvalidParticipantsException: If the ids are equal, empty, or contain the separator
    """
    prefix = prefix if prefix is not None else settings.conversation_id_prefix
    separator = separator if separator is not None else settings.conversation_id_separator

    first_id, second_id = str(first_id), str(second_id)
    if not first_id or not second_id:
        raise InvalidParticipantsException("Participant ids must be non-empty")
    if first_id == second_id:
        raise InvalidParticipantsException(
            "A user cannot start a conversation with themself",
            details={"user_id": first_id},
        )
    for user_id in (first_id, second_id):
        if separator in user_id:
            raise InvalidParticipantsException(
                f"Participant id may not contain '{separator}'",
                details={"user_id": user_id},
            )

    low, high = sorted((first_id, second_id))
    return f"{prefix}{low}{separator}{high}"


def decompose_conversation_id(
    conversation_id: str,
    *,
    prefix: Optional[str] = None,
    separator: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Recover the two participant ids from a canonical conversation id.

    Raises:
        MalformedConversationIdException: If the id is not a canonical id
    """
    prefix = prefix if prefix is not None else settings.conversation_id_prefix
    separator = separator if separator is not None else settings.conversation_id_separator

    if not conversation_id or not conversation_id.startswith(prefix):
        raise MalformedConversationIdException(conversation_id)

    parts = conversation_id[len(prefix) :].split(separator)
    if len(parts) != 2 or not all(parts) or parts[0] == parts[1]:
        raise MalformedConversationIdException(conversation_id)

    # Only the sorted form is canonical
    if parts[0] > parts[1]:
        raise MalformedConversationIdException(conversation_id)

    return parts[0], parts[1]


def other_participant_id(conversation_id: str, user_id: str) -> str:
    """
    Return the participant of the conversation who is not user_id.

    Raises:
        MalformedConversationIdException: If the id is not a canonical id
        ForbiddenException: If user_id is not one of the two participants
    """
    first_id, second_id = decompose_conversation_id(conversation_id)
    if user_id == first_id:
        return second_id
    if user_id == second_id:
        return first_id
    raise ForbiddenException(
        "You are not a participant in this conversation",
        details={"conversation_id": conversation_id},
    )
