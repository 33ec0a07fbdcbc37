"""Pure domain rules: conversation identity and participant roles."""

from conekt.domain.conversation_identity import (
    decompose_conversation_id,
    derive_conversation_id,
    other_participant_id,
)
from conekt.domain.participants import Client, Participant, Role, Therapist, assign_slots

__all__ = [
    "derive_conversation_id",
    "decompose_conversation_id",
    "other_participant_id",
    "Role",
    "Therapist",
    "Client",
    "Participant",
    "assign_slots",
]
