"""Tests for message change envelopes."""

from datetime import datetime, timezone
import json

import pytest

from conekt.schemas.messaging import MessageRead
from conekt.services.messaging.events import (
    SCHEMA_VERSION,
    ChangeType,
    MessageChange,
    build_message_change_event,
)


def _message(**overrides) -> MessageRead:
    data = {
        "id": "01HZX3KQ9V6D2B8N5R7T4W1Y0C",
        "conversation_id": "conv_c1_t1",
        "sender_id": "c1",
        "receiver_id": "t1",
        "body": "hello",
        "created_at": datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return MessageRead(**data)


class TestMessageChangeEvents:
    def test_envelope_structure(self):
        event = build_message_change_event(ChangeType.INSERT, _message())
        assert event["type"] == "INSERT"
        assert event["schema_version"] == SCHEMA_VERSION
        assert event["payload"]["table"] == "messages"
        assert event["payload"]["record"]["body"] == "hello"

    def test_parses_published_json(self):
        message = _message(read=True)
        raw = json.dumps(build_message_change_event(ChangeType.UPDATE, message))

        change = MessageChange.from_event(raw)

        assert change.type is ChangeType.UPDATE
        assert change.origin == "remote"
        assert change.message == message
        assert change.conversation_id == "conv_c1_t1"

    @pytest.mark.parametrize(
        "event",
        [
            "[]",
            "not json",
            '{"type": "INSERT", "schema_version": 1, "payload": "oops"}',
            {"type": "INSERT", "schema_version": 1, "payload": ["messages"]},
            {"type": "INSERT", "schema_version": 99, "payload": {"table": "messages"}},
            {"type": "INSERT", "schema_version": 1, "payload": {"table": "users", "record": {}}},
            {"type": "DELETE", "schema_version": 1, "payload": {"table": "messages", "record": {}}},
            {"type": "INSERT", "schema_version": 1, "payload": {"table": "messages", "record": {}}},
        ],
    )
    def test_rejects_unknown_envelopes(self, event):
        with pytest.raises(ValueError):
            MessageChange.from_event(event)

    def test_local_constructors(self):
        message = _message()
        assert MessageChange.local_insert(message).origin == "local"
        assert MessageChange.local_update(message).type is ChangeType.UPDATE
