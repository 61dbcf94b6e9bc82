"""Room reconciliation engine.

One ``RoomEngine`` owns the local projection of one room. It seeds the
projection from the record store, folds the room's change feed into it with
the reducer, and exposes the mutations the presentation layer calls. Every
mutation updates the projection first and then writes through to the store;
the echo that comes back over the feed is a no-op.

Store failures never escape: bootstrap failures leave the engine loading,
write failures are logged and not re-issued.
"""

import asyncio
import contextlib
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from .config import SIMULATED_PARTICIPANTS_PER_ADD
from .logging_config import set_participant_id, set_room_id
from .models import Card, Estimate, Participant, Phase, RoomState, Table, Topic, room_row
from .personas import PERSONAS, Persona
from .reducer import (
    add_participant,
    apply_event,
    clear_estimates,
    remove_participant,
    seed_state,
    upsert_estimate,
)
from .store import RecordExistsError, RecordStore, StoreError, Subscription
from .telemetry import trace_span

logger = logging.getLogger(__name__)

Listener = Callable[[RoomState], None]


class RoomEngine:
    """Live projection of a room plus its mutation API."""

    def __init__(
        self,
        store: RecordStore,
        local_participant: Participant,
        personas: tuple[Persona, ...] = PERSONAS,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.local_participant = local_participant
        self.personas = personas
        self._rng = rng or random.Random()
        self.room_id: str | None = None
        self._state: RoomState | None = None
        self._subscription: Subscription | None = None
        self._feed_task: asyncio.Task | None = None
        self._listeners: list[Listener] = []

    # -- Queries --------------------------------------------------------

    @property
    def state(self) -> RoomState | None:
        """Current projection, or None while loading."""
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    @property
    def all_voted(self) -> bool:
        return self._state is not None and self._state.all_voted

    @property
    def my_estimate(self) -> Estimate | None:
        if self._state is None:
            return None
        return self._state.estimate_for(self.local_participant.id)

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with the new projection after every change.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _set_state(self, state: RoomState) -> None:
        # Echoes of our own writes land here and change nothing
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Room listener failed")

    # -- Lifecycle ------------------------------------------------------

    async def open(self, room_id: str) -> bool:
        """
        Bootstrap the projection and start following the change feed.

        The subscription is opened before the fetches so that no change is
        lost between reading and listening; buffered events are applied on
        top of the seed.

        Args:
            room_id: Room to open

        Returns:
            True if the room loaded, False if the store was unreachable
        """
        if self.room_id is not None:
            raise RuntimeError(f"Engine already opened room {self.room_id}")

        self.room_id = room_id
        set_room_id(room_id)
        set_participant_id(self.local_participant.id)

        try:
            self._subscription = await self.store.subscribe(room_id)
            room = await self.store.get(Table.ROOMS, room_id, room_id)
            if room is None:
                room = await self._create_room(room_id)
            participant_rows = await self.store.select(Table.PARTICIPANTS, room_id)
            estimate_rows = await self.store.select(Table.ESTIMATES, room_id)
        except StoreError as e:
            logger.warning("Could not load room %s: %s", room_id, e)
            await self._close_subscription()
            return False

        state = seed_state(room_id, room, participant_rows, estimate_rows)
        joining = not state.has_participant(self.local_participant.id)
        if joining:
            state = add_participant(state, self.local_participant)
        self._set_state(state)
        logger.info(
            "Opened room %s (%d participants, phase %s)",
            room_id, len(state.participants), state.phase.value,
        )

        if joining:
            await self._write(
                "join",
                self.store.insert(Table.PARTICIPANTS, self.local_participant.to_row(room_id)),
                tolerate_exists=True,
            )

        self._feed_task = asyncio.create_task(self._consume_feed())
        return True

    async def _create_room(self, room_id: str) -> dict[str, Any]:
        row = room_row(room_id, Phase.SETUP, Topic())
        try:
            await self.store.insert(Table.ROOMS, row)
            logger.info("Created room %s", room_id)
        except RecordExistsError:
            # Another client created it first
            existing = await self.store.get(Table.ROOMS, room_id, room_id)
            if existing is not None:
                return existing
        return row

    async def _consume_feed(self) -> None:
        subscription = self._subscription
        if subscription is None:
            return
        try:
            async for event in subscription:
                if self._state is not None:
                    self._set_state(apply_event(self._state, event))
        except StoreError as e:
            logger.warning("Change feed for room %s stopped: %s", self.room_id, e)

    async def _close_subscription(self) -> None:
        if self._subscription is None:
            return
        try:
            await self._subscription.close()
        except StoreError as e:
            logger.debug("Error closing subscription: %s", e)
        self._subscription = None

    async def close(self) -> None:
        """Leave the room and stop following the change feed.

        Listeners are dropped first, so the departure is not seen by the
        presentation or an attached voter. Afterwards the engine holds no
        projection and every mutation is ignored.
        """
        self._listeners.clear()
        if self._state is not None and self._state.has_participant(self.local_participant.id):
            await self.leave()

        if self._feed_task is not None:
            self._feed_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._feed_task
            self._feed_task = None

        await self._close_subscription()
        self._state = None
        logger.info("Closed room %s", self.room_id)

    # -- Mutations ------------------------------------------------------

    async def _write(
        self,
        action: str,
        call: Awaitable[Any],
        tolerate_exists: bool = False,
    ) -> bool:
        with trace_span("room.write", {"room.id": self.room_id or "", "room.action": action}):
            try:
                await call
                return True
            except RecordExistsError:
                if tolerate_exists:
                    return True
                logger.warning("Failed to %s in room %s: row already exists", action, self.room_id)
                return False
            except StoreError as e:
                logger.warning("Failed to %s in room %s: %s", action, self.room_id, e)
                return False

    def _loaded_state(self, action: str) -> RoomState | None:
        if self._state is None or self.room_id is None:
            logger.warning("Cannot %s: room not loaded", action)
        return self._state

    async def set_topic(self, title: str, description: str) -> None:
        """Replace the topic under estimation."""
        state = self._loaded_state("set topic")
        if state is None:
            return

        topic = Topic(title=title, description=description)
        self._set_state(replace(state, topic=topic))
        await self._write(
            "set topic",
            self.store.update(
                Table.ROOMS,
                state.room_id,
                state.room_id,
                {"topic_title": topic.title, "topic_description": topic.description},
            ),
        )

    async def set_phase(self, phase: Phase | str) -> None:
        """
        Move the room to another phase.

        Entering VOTING starts a fresh round: every estimate in the room is
        deleted. Which transitions are legal is up to the caller.
        """
        state = self._loaded_state("set phase")
        if state is None:
            return
        try:
            phase = Phase(phase)
        except ValueError:
            logger.warning("Ignoring unknown phase %r", phase)
            return
        await self._enter_phase(state, phase)

    async def _enter_phase(self, state: RoomState, phase: Phase, topic: Topic | None = None) -> None:
        new_state = replace(state, phase=phase)
        fields: dict[str, Any] = {"phase": phase.value}
        if topic is not None:
            new_state = replace(new_state, topic=topic)
            fields.update(topic_title=topic.title, topic_description=topic.description)
        if phase is Phase.VOTING:
            new_state = clear_estimates(new_state)
        self._set_state(new_state)

        # Clear before announcing the phase so peers never see VOTING with
        # last round's estimates
        if phase is Phase.VOTING:
            await self._write(
                "clear estimates",
                self.store.delete_where(Table.ESTIMATES, state.room_id),
            )
        await self._write(
            "set phase",
            self.store.update(Table.ROOMS, state.room_id, state.room_id, fields),
        )

    async def cast_vote(
        self,
        participant_id: str,
        value: Card | int | str,
        rationale: str | None = None,
    ) -> None:
        """Record (or replace) a participant's estimate for this round."""
        state = self._loaded_state("cast vote")
        if state is None:
            return
        try:
            card = Card.parse(value)
        except ValueError as e:
            logger.warning("Ignoring vote from %s: %s", participant_id, e)
            return

        estimate = Estimate(participant_id=participant_id, value=card, rationale=rationale)
        self._set_state(upsert_estimate(state, estimate))
        await self._write(
            "cast vote",
            self.store.upsert(Table.ESTIMATES, estimate.to_row(state.room_id)),
        )

    async def add_simulated_participants(
        self, count: int = SIMULATED_PARTICIPANTS_PER_ADD
    ) -> list[Participant]:
        """
        Seat up to ``count`` personas drawn at random without replacement.

        Personas already seated are skipped, so fewer may be added.

        Returns:
            Participants that were added
        """
        if self._loaded_state("add simulated participants") is None:
            return []

        selected = self._rng.sample(self.personas, min(count, len(self.personas)))
        added: list[Participant] = []
        for persona in selected:
            state = self._state
            if state is None or state.has_participant(persona.id):
                continue
            participant = persona.to_participant()
            self._set_state(add_participant(state, participant))
            added.append(participant)
            await self._write(
                "add simulated participant",
                self.store.insert(Table.PARTICIPANTS, participant.to_row(state.room_id)),
                tolerate_exists=True,
            )

        if added:
            logger.info("Added simulated participants: %s", ", ".join(p.name for p in added))
        return added

    async def leave(self) -> None:
        """Remove the local participant from the room."""
        state = self._loaded_state("leave")
        if state is None:
            return
        self._set_state(remove_participant(state, self.local_participant.id))
        await self._write(
            "leave",
            self.store.delete(Table.PARTICIPANTS, state.room_id, self.local_participant.id),
        )

    # -- Round shortcuts ------------------------------------------------

    async def start_voting(self) -> None:
        await self.set_phase(Phase.VOTING)

    async def reveal(self) -> None:
        await self.set_phase(Phase.REVEALED)

    async def revote(self) -> None:
        """Vote again on the same topic."""
        await self.set_phase(Phase.VOTING)

    async def next_round(self) -> None:
        """Clear the topic and start a new round.

        Topic and phase go out in one room update, so no echo can carry the
        old phase back.
        """
        state = self._loaded_state("start next round")
        if state is None:
            return
        await self._enter_phase(state, Phase.VOTING, Topic())

    async def vote(self, value: Card | int | str) -> None:
        """Cast the local participant's vote."""
        await self.cast_vote(self.local_participant.id, value)
