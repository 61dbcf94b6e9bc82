"""Tests for pokerroom.reducer change event reconciliation."""

from pokerroom.models import (
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
    room_row,
)
from pokerroom.reducer import apply_event, remove_participant, seed_state

ROOM = "room1"


def _participant_event(event_type, participant, room_id=ROOM):
    return ChangeEvent(Table.PARTICIPANTS, event_type, participant.to_row(room_id))


def _estimate_event(event_type, estimate, room_id=ROOM):
    return ChangeEvent(Table.ESTIMATES, event_type, estimate.to_row(room_id))


class TestRoomEvents:
    """Room row updates overwrite phase and topic."""

    def test_update_sets_phase_and_topic(self):
        state = RoomState(room_id=ROOM)
        row = room_row(ROOM, Phase.VOTING, Topic("Login page", "OAuth"))

        new_state = apply_event(state, ChangeEvent(Table.ROOMS, EventType.UPDATE, row))

        assert new_state.phase is Phase.VOTING
        assert new_state.topic == Topic("Login page", "OAuth")
        assert state.phase is Phase.SETUP

    def test_update_without_phase_keeps_phase(self):
        state = RoomState(room_id=ROOM, phase=Phase.REVEALED)
        row = {"id": ROOM, "topic_title": "New", "topic_description": ""}

        new_state = apply_event(state, ChangeEvent(Table.ROOMS, EventType.UPDATE, row))

        assert new_state.phase is Phase.REVEALED
        assert new_state.topic.title == "New"

    def test_invalid_phase_ignored(self):
        state = RoomState(room_id=ROOM)
        row = {"id": ROOM, "phase": "LOBBY"}

        assert apply_event(state, ChangeEvent(Table.ROOMS, EventType.UPDATE, row)) is state

    def test_room_insert_and_delete_ignored(self):
        state = RoomState(room_id=ROOM)
        for event_type in (EventType.INSERT, EventType.DELETE):
            event = ChangeEvent(Table.ROOMS, event_type, room_row(ROOM, Phase.VOTING))
            assert apply_event(state, event) is state

    def test_other_room_ignored(self):
        state = RoomState(room_id=ROOM)
        event = ChangeEvent(Table.ROOMS, EventType.UPDATE, room_row("other", Phase.VOTING))
        assert apply_event(state, event) is state


class TestParticipantEvents:
    """Participant inserts, updates and deletes."""

    def test_insert_appends(self, alice, bob):
        state = RoomState(room_id=ROOM, participants=(alice,))
        new_state = apply_event(state, _participant_event(EventType.INSERT, bob))
        assert [p.id for p in new_state.participants] == ["alice-id", "bob-id"]

    def test_insert_is_idempotent(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        event = _participant_event(EventType.INSERT, alice)

        once = apply_event(state, event)
        twice = apply_event(once, event)

        assert once == state
        assert twice == state

    def test_update_replaces_in_place(self, alice, bob):
        state = RoomState(room_id=ROOM, participants=(alice, bob))
        renamed = Participant(id=alice.id, name="Alicia")

        new_state = apply_event(state, _participant_event(EventType.UPDATE, renamed))

        assert [p.name for p in new_state.participants] == ["Alicia", "Bob"]

    def test_update_of_unknown_participant_adds_it(self, alice):
        state = RoomState(room_id=ROOM)
        new_state = apply_event(state, _participant_event(EventType.UPDATE, alice))
        assert new_state.participants == (alice,)

    def test_delete_removes_participant_and_estimate(self, alice, bob):
        state = RoomState(
            room_id=ROOM,
            phase=Phase.VOTING,
            participants=(alice, bob),
            estimates={
                alice.id: Estimate(alice.id, Card(5)),
                bob.id: Estimate(bob.id, Card(8)),
            },
        )

        new_state = apply_event(state, _participant_event(EventType.DELETE, bob))

        assert new_state.participants == (alice,)
        assert set(new_state.estimates) == {alice.id}
        assert new_state.all_voted

    def test_delete_with_only_keys(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        event = ChangeEvent(Table.PARTICIPANTS, EventType.DELETE, {"id": alice.id, "room_id": ROOM})
        assert apply_event(state, event).participants == ()

    def test_malformed_row_ignored(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        event = ChangeEvent(Table.PARTICIPANTS, EventType.INSERT, {"room_id": ROOM, "name": "No id"})
        assert apply_event(state, event) is state

    def test_simulated_persona_kept(self):
        state = RoomState(room_id=ROOM)
        bot = Participant(id="ai-pm", name="Jessica", kind=ParticipantKind.SIMULATED, persona="Business")

        new_state = apply_event(state, _participant_event(EventType.INSERT, bot))

        assert new_state.participants[0].persona == "Business"
        assert new_state.simulated_participants == [bot]


class TestEstimateEvents:
    """Estimate writes upsert by participant id."""

    def test_insert_and_replace(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))

        state = apply_event(state, _estimate_event(EventType.INSERT, Estimate(alice.id, Card(3))))
        state = apply_event(state, _estimate_event(EventType.UPDATE, Estimate(alice.id, Card(13))))

        assert len(state.estimates) == 1
        assert state.estimates[alice.id].value == Card(13)

    def test_unknown_card_is_a_vote(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        state = apply_event(state, _estimate_event(EventType.INSERT, Estimate(alice.id, Card.unknown())))
        assert state.all_voted

    def test_delete_removes(self, alice):
        estimate = Estimate(alice.id, Card(3))
        state = RoomState(room_id=ROOM, participants=(alice,), estimates={alice.id: estimate})

        new_state = apply_event(state, _estimate_event(EventType.DELETE, estimate))

        assert new_state.estimates == {}

    def test_delete_of_missing_estimate_is_noop(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        event = _estimate_event(EventType.DELETE, Estimate(alice.id, Card(3)))
        assert apply_event(state, event) is state

    def test_off_scale_value_ignored(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        row = {"id": f"{ROOM}-{alice.id}", "room_id": ROOM, "participant_id": alice.id, "value": "4"}

        assert apply_event(state, ChangeEvent(Table.ESTIMATES, EventType.INSERT, row)) is state

    def test_replaying_feed_converges(self, alice, bob):
        events = [
            _participant_event(EventType.INSERT, alice),
            _participant_event(EventType.INSERT, bob),
            ChangeEvent(Table.ROOMS, EventType.UPDATE, room_row(ROOM, Phase.VOTING, Topic("Story"))),
            _estimate_event(EventType.INSERT, Estimate(alice.id, Card(5))),
            _estimate_event(EventType.INSERT, Estimate(bob.id, Card(8))),
        ]

        state = RoomState(room_id=ROOM)
        for event in events:
            state = apply_event(state, event)
        replayed = state
        for event in events:
            replayed = apply_event(replayed, event)

        assert replayed == state
        assert state.all_voted


class TestSeedState:
    """Bootstrap from fetched rows."""

    def test_seed_from_rows(self, alice, bob):
        state = seed_state(
            ROOM,
            room_row(ROOM, Phase.VOTING, Topic("Story", "Details")),
            [alice.to_row(ROOM), bob.to_row(ROOM)],
            [Estimate(alice.id, Card(2)).to_row(ROOM)],
        )

        assert state.phase is Phase.VOTING
        assert state.topic.title == "Story"
        assert [p.id for p in state.participants] == [alice.id, bob.id]
        assert state.estimates[alice.id].value == Card(2)

    def test_seed_without_room(self):
        state = seed_state(ROOM, None)
        assert state == RoomState(room_id=ROOM)

    def test_seed_skips_malformed_rows(self, alice):
        state = seed_state(
            ROOM,
            {"id": ROOM, "phase": "BOGUS"},
            [alice.to_row(ROOM), {"room_id": ROOM}, alice.to_row(ROOM)],
            [{"participant_id": alice.id, "value": "99"}],
        )

        assert state.phase is Phase.SETUP
        assert state.participants == (alice,)
        assert state.estimates == {}


class TestRemoveParticipant:
    def test_remove_unknown_is_harmless(self, alice):
        state = RoomState(room_id=ROOM, participants=(alice,))
        assert remove_participant(state, "ghost") == state
