"""
Participant roles and role-based slot assignment.

A conversation always pairs exactly one therapist with exactly one client.
Participants are modelled as a tagged variant so slot assignment is decided
by type, never by the direction a message was sent in.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple, Union

from conekt.core.exceptions import InvalidParticipantsException


class Role(str, Enum):
    """Marketplace role of a user."""

    CLIENT = "client"
    THERAPIST = "therapist"


@dataclass(frozen=True)
class Therapist:
    id: str
    name: str = ""
    avatar_url: Optional[str] = None

    @property
    def role(self) -> Role:
        return Role.THERAPIST


@dataclass(frozen=True)
class Client:
    id: str
    name: str = ""
    avatar_url: Optional[str] = None

    @property
    def role(self) -> Role:
        return Role.CLIENT


Participant = Union[Therapist, Client]


def participant_from(source: Any) -> Participant:
    """
    Build the tagged participant for anything exposing id/name/avatar_url/role.

    Accepts ORM users and participant summaries alike.
    """
    role = Role(getattr(source, "role"))
    kwargs = {
        "id": str(source.id),
        "name": getattr(source, "name", "") or "",
        "avatar_url": getattr(source, "avatar_url", None),
    }
    if role is Role.THERAPIST:
        return Therapist(**kwargs)
    return Client(**kwargs)


def assign_slots(first: Participant, second: Participant) -> Tuple[Therapist, Client]:
    """
    Return (therapist, client) for a participant pair in either order.

    Raises:
        InvalidParticipantsException: If the pair is not one therapist and one client
    """
    if isinstance(first, Therapist) and isinstance(second, Client):
        return first, second
    if isinstance(first, Client) and isinstance(second, Therapist):
        return second, first
    raise InvalidParticipantsException(
        "A conversation requires one therapist and one client",
        details={
            "participant_ids": [first.id, second.id],
            "roles": [first.role.value, second.role.value],
        },
    )
