"""
Tests for Conversation Repository.

- Get-or-create idempotency keyed by the canonical id
- Listing conversation rows for a user
- Advancing last_message_at
"""

from datetime import datetime, timedelta, timezone

from conekt.domain.conversation_identity import derive_conversation_id
from conekt.repositories.conversation_repository import ConversationRepository


class TestGetOrCreate:
    def test_creates_then_returns_existing(self, db, test_therapist, test_client_user):
        """Second call returns the same row without creating another."""
        repo = ConversationRepository(db)
        cid = derive_conversation_id(test_therapist.id, test_client_user.id)

        first, created = repo.get_or_create(cid, test_therapist.id, test_client_user.id)
        db.commit()
        second, created_again = repo.get_or_create(cid, test_therapist.id, test_client_user.id)

        assert created is True
        assert created_again is False
        assert first.id == second.id == cid
        assert first.is_active is True
        assert first.client_id == test_client_user.id


class TestFindByIds:
    def test_returns_existing_rows_keyed_by_id(
        self, db, test_therapist, test_client_user, test_client_user_2
    ):
        repo = ConversationRepository(db)
        cid_1 = derive_conversation_id(test_therapist.id, test_client_user.id)
        cid_2 = derive_conversation_id(test_therapist.id, test_client_user_2.id)
        repo.get_or_create(cid_1, test_therapist.id, test_client_user.id)
        repo.get_or_create(cid_2, test_therapist.id, test_client_user_2.id)
        db.commit()

        rows = repo.find_by_ids([cid_1, cid_2, "conv_missing_row"])

        assert set(rows) == {cid_1, cid_2}
        assert rows[cid_2].client_id == test_client_user_2.id
        assert repo.find_by_ids([]) == {}


class TestUpdateLastMessageAt:
    def test_never_moves_backwards(self, db, test_therapist, test_client_user):
        repo = ConversationRepository(db)
        cid = derive_conversation_id(test_therapist.id, test_client_user.id)
        repo.get_or_create(cid, test_therapist.id, test_client_user.id)

        later = datetime.now(timezone.utc)
        earlier = later - timedelta(minutes=5)

        repo.update_last_message_at(cid, later)
        db.commit()
        repo.update_last_message_at(cid, earlier)
        db.commit()

        row = repo.get_by_id(cid, load_relationships=False)
        stored = row.last_message_at.replace(tzinfo=timezone.utc)
        assert stored == later

    def test_unknown_conversation_returns_none(self, db):
        assert ConversationRepository(db).update_last_message_at("conv_a_b") is None
