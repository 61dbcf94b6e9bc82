"""Drives voting for simulated participants.

``SimulatedVoter`` watches a ``RoomEngine``. Whenever the room is voting and
a simulated participant still lacks an estimate, it runs a pass: one
participant at a time, it waits a human-looking delay, asks the estimator
and casts the vote with its rationale. Only one pass runs per room at once.
"""

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable

from .config import SIMULATED_VOTE_DELAY
from .engine import RoomEngine
from .estimator import Oracle, estimate
from .models import Participant, Phase, RoomState
from .personas import PERSONAS, Persona, find_persona

logger = logging.getLogger(__name__)


def needs_simulated_votes(state: RoomState) -> bool:
    """True while voting and some simulated participant has not voted."""
    if state.phase is not Phase.VOTING:
        return False
    return any(p.id not in state.estimates for p in state.simulated_participants)


class SimulatedVoter:
    """Casts votes on behalf of a room's simulated participants."""

    def __init__(
        self,
        engine: RoomEngine,
        oracle: Oracle | None = None,
        personas: tuple[Persona, ...] = PERSONAS,
        delay_range: tuple[float, float] = SIMULATED_VOTE_DELAY,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.oracle = oracle
        self.personas = personas
        self.delay_range = delay_range
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._detach: Callable[[], None] | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def attach(self) -> None:
        """Start reacting to room changes (and check the current state)."""
        if self._detach is None:
            self._detach = self.engine.add_listener(self._on_change)
        if self.engine.state is not None:
            self._on_change(self.engine.state)

    def _on_change(self, state: RoomState) -> None:
        if self.in_flight or not needs_simulated_votes(state):
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        # Keep going while there is work: participants seated mid-pass or a
        # round restarted mid-pass are picked up by the next iteration
        while True:
            state = self.engine.state
            if state is None or not needs_simulated_votes(state):
                return
            await self._run_pass(state)

    async def _run_pass(self, state: RoomState) -> None:
        pending = [p for p in state.simulated_participants if p.id not in state.estimates]
        logger.info("Simulated voting pass for %d participants", len(pending))

        for participant in pending:
            await self._sleep(self._rng.uniform(*self.delay_range))

            current = self.engine.state
            if current is None or current.phase is not Phase.VOTING:
                logger.info("Voting ended; stopping simulated pass")
                return
            if not current.has_participant(participant.id) or participant.id in current.estimates:
                continue

            result = await estimate(
                current.topic,
                self._persona_for(participant),
                oracle=self.oracle,
                rng=self._rng,
            )

            # The round may have been revealed while the oracle was thinking
            after = self.engine.state
            if after is None or after.phase is not Phase.VOTING:
                return
            await self.engine.cast_vote(participant.id, result.card, rationale=result.rationale)
            logger.debug("%s voted %s", participant.name, result.points)

    def _persona_for(self, participant: Participant) -> Persona:
        persona = find_persona(participant.id, self.personas)
        if persona is not None:
            return persona
        descriptor = participant.persona or "Team member"
        return Persona(
            id=participant.id,
            name=participant.name,
            role=descriptor,
            avatar_seed=participant.id,
            description=descriptor,
        )

    async def wait_idle(self) -> None:
        """Wait until no pass is running."""
        while self.in_flight:
            await asyncio.shield(self._task)

    async def stop(self) -> None:
        """Stop reacting to changes and cancel any running pass."""
        if self._detach is not None:
            self._detach()
            self._detach = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
