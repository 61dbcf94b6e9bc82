"""Tests for pokerroom.models row encoding and card values."""

import pytest

from pokerroom.models import (
    DECK,
    Card,
    ChangeEvent,
    Estimate,
    EventType,
    Participant,
    ParticipantKind,
    Phase,
    RoomState,
    Table,
    Topic,
    estimate_row_id,
    room_row,
    topic_from_row,
)


class TestCard:
    """Tests for Card construction and parsing."""

    def test_scale_values_accepted(self):
        assert [c.points for c in DECK[:-1]] == [1, 2, 3, 5, 8, 13, 21]

    def test_deck_ends_with_unknown(self):
        assert DECK[-1].is_unknown
        assert str(DECK[-1]) == "?"

    @pytest.mark.parametrize("value", [0, 4, 22, -1, 100])
    def test_off_scale_rejected(self, value):
        with pytest.raises(ValueError):
            Card(value)

    def test_bool_rejected(self):
        with pytest.raises(ValueError):
            Card(True)
        with pytest.raises(ValueError):
            Card.parse(True)

    @pytest.mark.parametrize("raw,expected", [
        ("5", 5),
        (" 13 ", 13),
        (8, 8),
        (21.0, 21),
        ("3.0", 3),
    ])
    def test_parse_numeric(self, raw, expected):
        assert Card.parse(raw).points == expected

    def test_parse_unknown(self):
        card = Card.parse("?")
        assert card.is_unknown
        assert card.to_wire() == "?"

    @pytest.mark.parametrize("raw", ["abc", "", "4", 2.5, None, [], "??"])
    def test_parse_invalid(self, raw):
        with pytest.raises(ValueError):
            Card.parse(raw)

    def test_parse_returns_card_unchanged(self):
        card = Card(5)
        assert Card.parse(card) is card


class TestParticipant:
    """Tests for Participant rows."""

    def test_human_with_persona_rejected(self):
        with pytest.raises(ValueError):
            Participant(id="p1", name="Ann", kind=ParticipantKind.HUMAN, persona="Grumpy")

    def test_row_roundtrip_simulated(self):
        participant = Participant(
            id="ai-qa", name="Alex", kind=ParticipantKind.SIMULATED,
            avatar_ref="https://example/a.png", persona="Tests everything",
        )
        row = participant.to_row("room1")

        assert row["room_id"] == "room1"
        assert row["kind"] == "SIMULATED"
        assert Participant.from_row(row) == participant

    def test_from_row_drops_persona_for_humans(self):
        row = {"id": "p1", "room_id": "r", "name": "Ann", "kind": "HUMAN", "persona": "stray"}
        assert Participant.from_row(row).persona is None

    def test_from_row_defaults_to_human(self):
        participant = Participant.from_row({"id": "p1", "name": "Ann"})
        assert participant.kind is ParticipantKind.HUMAN
        assert participant.avatar_ref == ""

    def test_from_row_unknown_kind(self):
        with pytest.raises(ValueError):
            Participant.from_row({"id": "p1", "kind": "ROBOT"})


class TestEstimate:
    """Tests for Estimate rows."""

    def test_row_key_is_room_and_participant(self):
        row = Estimate("p1", Card(5)).to_row("room1")
        assert row["id"] == estimate_row_id("room1", "p1") == "room1-p1"
        assert row["value"] == "5"

    def test_unknown_value_on_the_wire(self):
        row = Estimate("p1", Card.unknown(), rationale="No idea").to_row("r")
        assert row["value"] == "?"
        assert Estimate.from_row(row).value.is_unknown
        assert Estimate.from_row(row).rationale == "No idea"

    def test_from_row_rejects_off_scale(self):
        with pytest.raises(ValueError):
            Estimate.from_row({"participant_id": "p1", "value": "7"})


class TestRoomRow:
    """Tests for room rows and topics."""

    def test_room_row_defaults(self):
        assert room_row("r1") == {
            "id": "r1",
            "topic_title": "",
            "topic_description": "",
            "phase": "SETUP",
        }

    def test_topic_from_row_tolerates_nulls(self):
        topic = topic_from_row({"topic_title": None, "topic_description": None})
        assert topic == Topic()
        assert topic.is_blank

    def test_whitespace_topic_is_blank(self):
        assert Topic("  ", "\n").is_blank
        assert not Topic("", "has description").is_blank


class TestChangeEvent:
    """Tests for ChangeEvent serialization."""

    def test_dict_roundtrip(self):
        event = ChangeEvent(Table.ESTIMATES, EventType.DELETE, {"id": "r-p", "room_id": "r"})
        assert ChangeEvent.from_dict(event.to_dict()) == event

    def test_room_id_of_room_row_is_its_id(self):
        event = ChangeEvent(Table.ROOMS, EventType.UPDATE, {"id": "r1"})
        assert event.room_id == "r1"

    def test_from_dict_rejects_unknown_table(self):
        with pytest.raises(ValueError):
            ChangeEvent.from_dict({"table": "votes", "event_type": "insert"})


class TestRoomState:
    """Tests for RoomState derived values."""

    def test_all_voted_false_for_empty_room(self):
        assert RoomState(room_id="r").all_voted is False

    def test_all_voted(self):
        a = Participant(id="a", name="A")
        b = Participant(id="b", name="B")
        state = RoomState(
            room_id="r",
            phase=Phase.VOTING,
            participants=(a, b),
            estimates={"a": Estimate("a", Card(3))},
        )
        assert not state.all_voted
        assert state.pending_participants == [b]

        done = RoomState(
            room_id="r",
            participants=(a, b),
            estimates={"a": Estimate("a", Card(3)), "b": Estimate("b", Card.unknown())},
        )
        assert done.all_voted

    def test_topic_editable_only_in_setup(self):
        assert RoomState(room_id="r").topic_editable
        assert not RoomState(room_id="r", phase=Phase.VOTING).topic_editable
        assert not RoomState(room_id="r", phase=Phase.REVEALED).topic_editable
