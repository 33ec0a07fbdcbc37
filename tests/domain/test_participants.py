"""Tests for participant roles and therapist/client slot assignment."""

import pytest

from conekt.core.exceptions import InvalidParticipantsException
from conekt.domain.participants import (
    Client,
    Role,
    Therapist,
    assign_slots,
    participant_from,
)
from conekt.schemas.messaging import ParticipantSummary


class TestAssignSlots:
    def test_therapist_first(self):
        therapist, client = assign_slots(Therapist(id="t"), Client(id="c"))
        assert (therapist.id, client.id) == ("t", "c")

    def test_client_first(self):
        """Slots follow roles, not argument order."""
        therapist, client = assign_slots(Client(id="c"), Therapist(id="t"))
        assert (therapist.id, client.id) == ("t", "c")

    @pytest.mark.parametrize(
        "first,second",
        [
            (Client(id="c1"), Client(id="c2")),
            (Therapist(id="t1"), Therapist(id="t2")),
        ],
    )
    def test_same_role_pair_is_rejected(self, first, second):
        with pytest.raises(InvalidParticipantsException) as exc_info:
            assign_slots(first, second)
        assert exc_info.value.details["participant_ids"] == [first.id, second.id]


class TestParticipantFrom:
    def test_builds_therapist_from_summary(self):
        summary = ParticipantSummary(id="t", name="Dr. T", role=Role.THERAPIST)
        participant = participant_from(summary)
        assert participant == Therapist(id="t", name="Dr. T")
        assert participant.role is Role.THERAPIST

    def test_builds_client_from_orm_user(self, test_client_user):
        participant = participant_from(test_client_user)
        assert isinstance(participant, Client)
        assert participant.id == test_client_user.id
        assert participant.name == "Casey Client"
