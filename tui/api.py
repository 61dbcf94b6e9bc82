"""Room client for the planning poker TUI.

Wires identity, the record service client, the room engine and the
simulated voter together, and turns room state into what the screen shows.
"""

from dataclasses import dataclass

from pokerroom import config
from pokerroom.engine import RoomEngine
from pokerroom.estimator import Oracle
from pokerroom.http_store import HttpRecordStore
from pokerroom.identity import IdentityStore, validate_display_name
from pokerroom.links import invite_link, new_game_url, resolve_room_url
from pokerroom.models import Phase, RoomState
from pokerroom.scheduler import SimulatedVoter
from pokerroom.store import RecordStore
from pokerroom.summary import EstimateSummary, summarize

DEFAULT_APP_URL = config.APP_URL


@dataclass
class Seat:
    """One participant as shown at the table."""

    participant_id: str
    name: str
    is_simulated: bool
    is_local: bool
    status: str
    rationale: str | None = None


def build_seats(state: RoomState, local_id: str) -> list[Seat]:
    """
    Describe every seat at the table.

    Votes stay hidden until the round is revealed; before that a seat only
    shows whether its participant has voted.
    """
    seats = []
    for participant in state.participants:
        estimate = state.estimate_for(participant.id)
        rationale = None
        if state.phase is Phase.REVEALED:
            status = str(estimate.value) if estimate else "-"
            rationale = estimate.rationale if estimate else None
        elif state.phase is Phase.VOTING:
            if estimate:
                status = "voted"
            elif participant.is_simulated:
                status = "thinking..."
            else:
                status = "waiting"
        else:
            status = ""
        seats.append(
            Seat(
                participant_id=participant.id,
                name=participant.name,
                is_simulated=participant.is_simulated,
                is_local=participant.id == local_id,
                status=status,
                rationale=rationale,
            )
        )
    return seats


def available_actions(state: RoomState) -> set[str]:
    """Controls that make sense in the room's current phase."""
    if state.phase is Phase.SETUP:
        return {"edit_topic", "start_voting", "add_simulated"}
    if state.phase is Phase.VOTING:
        actions = {"vote", "add_simulated"}
        if state.all_voted:
            actions.add("reveal")
        return actions
    return {"revote", "next_round", "add_simulated"}


class RoomClient:
    """A single user's session in one room."""

    def __init__(
        self,
        url: str = DEFAULT_APP_URL,
        store: RecordStore | None = None,
        identity: IdentityStore | None = None,
        oracle: Oracle | None = None,
    ):
        self.room_id, self.url = resolve_room_url(url)
        self.store = store or HttpRecordStore(config.STORE_URL)
        self.identity = identity or IdentityStore()
        self.oracle = oracle
        self.engine: RoomEngine | None = None
        self.voter: SimulatedVoter | None = None

    @property
    def display_name(self) -> str | None:
        """Name committed earlier on this machine, if any."""
        return self.identity.resolve_display_name()

    @property
    def invite_link(self) -> str:
        return invite_link(self.url)

    @property
    def new_game_url(self) -> str:
        return new_game_url(self.url)

    async def join(self, name: str) -> bool:
        """
        Enter the room under ``name``.

        Raises:
            InvalidDisplayNameError: If the name is outside the allowed length

        Returns:
            True once the room is loaded, False if the record service was
            unreachable
        """
        name = validate_display_name(name)
        self.identity.commit_display_name(name)
        participant = self.identity.build_local_participant(self.room_id, name)

        self.engine = RoomEngine(self.store, participant)
        self.voter = SimulatedVoter(self.engine, oracle=self.oracle)
        self.voter.attach()
        return await self.engine.open(self.room_id)

    def summary(self) -> EstimateSummary | None:
        """Round statistics, available once revealed."""
        if self.engine is None or self.engine.state is None:
            return None
        if self.engine.state.phase is not Phase.REVEALED:
            return None
        return summarize(self.engine.state.estimates)

    async def close(self) -> None:
        """Leave the room and release connections."""
        if self.voter is not None:
            await self.voter.stop()
        if self.engine is not None:
            await self.engine.close()
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()
