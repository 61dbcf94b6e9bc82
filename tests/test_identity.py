"""Tests for local identity storage."""

import json

import pytest

from pokerroom.identity import (
    IdentityStore,
    InvalidDisplayNameError,
    generate_participant_id,
    validate_display_name,
)
from pokerroom.models import ParticipantKind


class TestValidateDisplayName:
    @pytest.mark.parametrize("raw,expected", [
        ("Al", "Al"),
        ("  Dana  ", "Dana"),
        ("x" * 20, "x" * 20),
    ])
    def test_valid(self, raw, expected):
        assert validate_display_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", " ", "A", "  B  ", "x" * 21, None, 42])
    def test_invalid(self, raw):
        with pytest.raises(InvalidDisplayNameError):
            validate_display_name(raw)


class TestIdentityStore:
    """Tests for IdentityStore."""

    def test_participant_id_is_stable_per_room(self, tmp_path):
        path = tmp_path / "identity.json"

        first = IdentityStore(path).resolve_participant_id("room1")
        again = IdentityStore(path).resolve_participant_id("room1")
        other = IdentityStore(path).resolve_participant_id("room2")

        assert first == again
        assert first != other
        assert json.loads(path.read_text())["participant_ids"] == {"room1": first, "room2": other}

    def test_display_name_persists(self, tmp_path):
        path = tmp_path / "identity.json"
        assert IdentityStore(path).resolve_display_name() is None

        IdentityStore(path).commit_display_name("Priya")

        assert IdentityStore(path).resolve_display_name() == "Priya"

    def test_corrupt_file_falls_back_to_session(self, tmp_path):
        path = tmp_path / "identity.json"
        path.write_text("{not json")
        identity = IdentityStore(path)

        pid = identity.resolve_participant_id("room1")
        identity.commit_display_name("Sam")

        assert pid == identity.resolve_participant_id("room1")
        assert identity.resolve_display_name() == "Sam"
        assert IdentityStore(path).resolve_display_name() is None

    @pytest.mark.parametrize("contents", [
        {"participant_ids": []},
        {"participant_ids": {"room1": 7}},
    ])
    def test_malformed_ids_fall_back_to_session(self, tmp_path, contents):
        """A well-formed JSON file with the wrong shape is treated as corrupt."""
        path = tmp_path / "identity.json"
        path.write_text(json.dumps(contents))
        identity = IdentityStore(path)

        pid = identity.resolve_participant_id("room1")

        assert isinstance(pid, str) and pid
        assert identity.resolve_participant_id("room1") == pid
        assert identity.build_local_participant("room1", "Kai").id == pid

    def test_non_text_display_name_is_ignored(self, tmp_path):
        path = tmp_path / "identity.json"
        path.write_text(json.dumps({"display_name": 42}))

        assert IdentityStore(path).resolve_display_name() is None

    def test_unwritable_location_falls_back(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        identity = IdentityStore(blocker / "identity.json")

        pid = identity.resolve_participant_id("room1")

        assert pid
        assert identity.resolve_participant_id("room1") == pid

    def test_build_local_participant(self, tmp_path):
        identity = IdentityStore(tmp_path / "identity.json")

        participant = identity.build_local_participant("room1", "Kai")

        assert participant.id == identity.resolve_participant_id("room1")
        assert participant.kind is ParticipantKind.HUMAN
        assert participant.persona is None
        assert participant.avatar_ref


def test_generated_ids_are_unique():
    assert len({generate_participant_id() for _ in range(100)}) == 100
