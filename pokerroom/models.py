"""Room data models and their store row encoding."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import SCALE, UNKNOWN_CARD


class Phase(str, Enum):
    """Stages of a voting round."""

    SETUP = "SETUP"
    VOTING = "VOTING"
    REVEALED = "REVEALED"


class ParticipantKind(str, Enum):
    """Who is behind a seat at the table."""

    HUMAN = "HUMAN"
    SIMULATED = "SIMULATED"


class Table(str, Enum):
    """Record store tables."""

    ROOMS = "rooms"
    PARTICIPANTS = "participants"
    ESTIMATES = "estimates"


class EventType(str, Enum):
    """Kinds of change feed events."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Card:
    """A value on the permitted scale, or the unknown card.

    ``points`` is None for the unknown card. Any other number outside the
    scale is rejected at construction.
    """

    points: int | None = None

    def __post_init__(self) -> None:
        if self.points is not None and (
            isinstance(self.points, bool) or self.points not in SCALE
        ):
            raise ValueError(f"{self.points!r} is not on the scale {SCALE}")

    @classmethod
    def unknown(cls) -> "Card":
        return cls(None)

    @classmethod
    def parse(cls, raw: Any) -> "Card":
        """Build a card from a Card, a number, or its wire string.

        Raises:
            ValueError: If the value is not a scale member or "?"
        """
        if isinstance(raw, Card):
            return raw
        if isinstance(raw, bool):
            raise ValueError(f"{raw!r} is not a card value")
        if isinstance(raw, str):
            text = raw.strip()
            if text == UNKNOWN_CARD:
                return cls.unknown()
            try:
                raw = float(text)
            except ValueError:
                raise ValueError(f"{raw!r} is not a card value") from None
        if isinstance(raw, float):
            if not raw.is_integer():
                raise ValueError(f"{raw!r} is not a card value")
            raw = int(raw)
        if isinstance(raw, int):
            return cls(raw)
        raise ValueError(f"{raw!r} is not a card value")

    @property
    def is_unknown(self) -> bool:
        return self.points is None

    def to_wire(self) -> str:
        return UNKNOWN_CARD if self.points is None else str(self.points)

    def __str__(self) -> str:
        return self.to_wire()


# The full deck in display order
DECK: tuple[Card, ...] = tuple(Card(p) for p in SCALE) + (Card.unknown(),)


@dataclass(frozen=True)
class Topic:
    """The work item under estimation."""

    title: str = ""
    description: str = ""

    @property
    def is_blank(self) -> bool:
        return not self.title.strip() and not self.description.strip()


@dataclass(frozen=True)
class Participant:
    """A seat in the room, human or simulated.

    Only simulated participants carry a persona descriptor.
    """

    id: str
    name: str
    kind: ParticipantKind = ParticipantKind.HUMAN
    avatar_ref: str = ""
    persona: str | None = None

    def __post_init__(self) -> None:
        if self.kind is ParticipantKind.HUMAN and self.persona is not None:
            raise ValueError("Human participants do not carry a persona")

    @property
    def is_simulated(self) -> bool:
        return self.kind is ParticipantKind.SIMULATED

    def to_row(self, room_id: str) -> dict[str, Any]:
        """Encode as a ``participants`` row."""
        return {
            "id": self.id,
            "room_id": room_id,
            "name": self.name,
            "kind": self.kind.value,
            "avatar_ref": self.avatar_ref,
            "persona": self.persona,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Participant":
        """Decode a ``participants`` row.

        Raises:
            KeyError: If the row has no id
            ValueError: If the kind is not recognised
        """
        kind = ParticipantKind(row.get("kind", ParticipantKind.HUMAN.value))
        persona = row.get("persona") if kind is ParticipantKind.SIMULATED else None
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            kind=kind,
            avatar_ref=row.get("avatar_ref") or "",
            persona=persona,
        )


def estimate_row_id(room_id: str, participant_id: str) -> str:
    """Composite key of an estimate row."""
    return f"{room_id}-{participant_id}"


@dataclass(frozen=True)
class Estimate:
    """One participant's vote for the current round."""

    participant_id: str
    value: Card
    rationale: str | None = None

    def to_row(self, room_id: str) -> dict[str, Any]:
        """Encode as an ``estimates`` row."""
        return {
            "id": estimate_row_id(room_id, self.participant_id),
            "room_id": room_id,
            "participant_id": self.participant_id,
            "value": self.value.to_wire(),
            "rationale": self.rationale,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Estimate":
        """Decode an ``estimates`` row.

        Raises:
            KeyError: If the row has no participant id
            ValueError: If the value is not a card
        """
        return cls(
            participant_id=row["participant_id"],
            value=Card.parse(row.get("value")),
            rationale=row.get("rationale"),
        )


def room_row(room_id: str, phase: Phase = Phase.SETUP, topic: Topic | None = None) -> dict[str, Any]:
    """Encode a ``rooms`` row."""
    topic = topic or Topic()
    return {
        "id": room_id,
        "topic_title": topic.title,
        "topic_description": topic.description,
        "phase": phase.value,
    }


def topic_from_row(row: Mapping[str, Any]) -> Topic:
    return Topic(
        title=row.get("topic_title") or "",
        description=row.get("topic_description") or "",
    )


@dataclass(frozen=True)
class ChangeEvent:
    """A change feed notification.

    For deletes ``row`` holds the removed row (at least its keys).
    """

    table: Table
    event_type: EventType
    row: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "table": self.table.value,
            "event_type": self.event_type.value,
            "row": self.row,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChangeEvent":
        """Create from dictionary.

        Raises:
            KeyError, ValueError: If the payload is not a change event
        """
        return cls(
            table=Table(data["table"]),
            event_type=EventType(data["event_type"]),
            row=dict(data.get("row") or {}),
        )

    @property
    def room_id(self) -> str | None:
        """Room the changed row belongs to."""
        if self.table is Table.ROOMS:
            return self.row.get("id")
        return self.row.get("room_id")


@dataclass(frozen=True)
class RoomState:
    """The local projection of one room.

    Instances are never mutated; the reducer returns new ones.
    """

    room_id: str
    phase: Phase = Phase.SETUP
    topic: Topic = field(default_factory=Topic)
    participants: tuple[Participant, ...] = ()
    estimates: Mapping[str, Estimate] = field(default_factory=dict)

    def participant(self, participant_id: str) -> Participant | None:
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def has_participant(self, participant_id: str) -> bool:
        return self.participant(participant_id) is not None

    def estimate_for(self, participant_id: str) -> Estimate | None:
        return self.estimates.get(participant_id)

    @property
    def simulated_participants(self) -> list[Participant]:
        return [p for p in self.participants if p.is_simulated]

    @property
    def pending_participants(self) -> list[Participant]:
        """Participants without an estimate this round."""
        return [p for p in self.participants if p.id not in self.estimates]

    @property
    def all_voted(self) -> bool:
        """True iff the roster is non-empty and everyone has voted."""
        if not self.participants:
            return False
        return all(p.id in self.estimates for p in self.participants)

    @property
    def topic_editable(self) -> bool:
        return self.phase is Phase.SETUP
