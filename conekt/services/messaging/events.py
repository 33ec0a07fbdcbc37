# conekt/services/messaging/events.py
"""
Message change event definitions and builders.

All events follow this structure:
{
    "type": str,           # INSERT | UPDATE
    "schema_version": int, # Schema version (currently 1)
    "timestamp": str,      # ISO 8601 timestamp
    "payload": {
        "table": "messages",
        "record": dict     # The message row after the change
    }
}
"""

from datetime import datetime, timezone
from enum import Enum
import json
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict

from conekt.domain.conversation_identity import derive_conversation_id
from conekt.schemas.messaging import MessageRead


class ChangeType(str, Enum):
    """Row change kinds delivered by the live layer."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"


# Current schema version - increment when payload structure changes
SCHEMA_VERSION = 1

MESSAGES_TABLE = "messages"


class MessageChange(BaseModel):
    """
    A single change to a message row.

    Local send completions and remote events are both expressed as a
    MessageChange so they fold through the same reducer.
    """

    type: ChangeType
    message: MessageRead
    origin: Literal["local", "remote"] = "remote"

    model_config = ConfigDict(frozen=True)

    @property
    def conversation_id(self) -> str:
        """Conversation id derived from the message's participants."""
        return derive_conversation_id(self.message.sender_id, self.message.receiver_id)

    @classmethod
    def local_insert(cls, message: MessageRead) -> "MessageChange":
        return cls(type=ChangeType.INSERT, message=message, origin="local")

    @classmethod
    def local_update(cls, message: MessageRead) -> "MessageChange":
        return cls(type=ChangeType.UPDATE, message=message, origin="local")

    @classmethod
    def from_event(cls, event: Union[str, bytes, Dict[str, Any]]) -> "MessageChange":
        """
        Parse a published event envelope.

        Raises:
            ValueError: If the envelope is not a message change of a known schema
        """
        if isinstance(event, (str, bytes)):
            event = json.loads(event)
        if not isinstance(event, dict):
            raise ValueError("Event must be a JSON object")
        if event.get("schema_version") != SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema_version: {event.get('schema_version')}")
        payload = event.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("Event payload must be a JSON object")
        if payload.get("table") != MESSAGES_TABLE:
            raise ValueError(f"Unsupported table: {payload.get('table')}")
        return cls(
            type=ChangeType(event.get("type")),
            message=MessageRead.model_validate(payload.get("record")),
        )


def build_event(change_type: ChangeType, record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build a properly structured event.

    Args:
        change_type: The type of row change
        record: The message row after the change

    Returns:
        Complete event dict ready for publishing
    """
    return {
        "type": change_type.value,
        "schema_version": SCHEMA_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": {
            "table": MESSAGES_TABLE,
            "record": record,
        },
    }


def build_message_change_event(change_type: ChangeType, message: MessageRead) -> Dict[str, Any]:
    """Build an INSERT/UPDATE event for a message."""
    return build_event(change_type, message.model_dump(mode="json"))
