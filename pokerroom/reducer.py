"""Pure reconciliation of change events into a room projection.

``apply_event`` is last-writer-wins in delivery order: room updates overwrite
phase and topic, participant inserts are idempotent, estimate writes upsert
by participant id, and deleting a participant drops its estimate.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from .models import (
    ChangeEvent,
    Estimate,
    EventType,
    Participant,
    Phase,
    RoomState,
    Table,
    topic_from_row,
)

logger = logging.getLogger(__name__)


def apply_event(state: RoomState, event: ChangeEvent) -> RoomState:
    """
    Fold one change event into the projection.

    Args:
        state: Current projection (left untouched)
        event: Change feed notification

    Returns:
        The new projection, or ``state`` itself if the event does not apply
    """
    if event.room_id != state.room_id:
        return state

    try:
        if event.table is Table.ROOMS:
            return _apply_room(state, event)
        if event.table is Table.PARTICIPANTS:
            return _apply_participant(state, event)
        if event.table is Table.ESTIMATES:
            return _apply_estimate(state, event)
    except (KeyError, ValueError) as e:
        logger.warning(
            "Ignoring malformed %s %s event: %s",
            event.table.value, event.event_type.value, e,
        )
        return state

    logger.warning("Ignoring event for unknown table %r", event.table)
    return state


def _apply_room(state: RoomState, event: ChangeEvent) -> RoomState:
    # Inserts only happen at bootstrap, deletes have no projection
    if event.event_type is not EventType.UPDATE:
        return state
    row = event.row
    phase = Phase(row["phase"]) if row.get("phase") else state.phase
    return replace(state, phase=phase, topic=topic_from_row(row))


def _apply_participant(state: RoomState, event: ChangeEvent) -> RoomState:
    if event.event_type is EventType.DELETE:
        return remove_participant(state, event.row["id"])

    participant = Participant.from_row(event.row)
    if event.event_type is EventType.INSERT or not state.has_participant(participant.id):
        return add_participant(state, participant)

    return replace(
        state,
        participants=tuple(
            participant if p.id == participant.id else p for p in state.participants
        ),
    )


def _apply_estimate(state: RoomState, event: ChangeEvent) -> RoomState:
    if event.event_type is EventType.DELETE:
        participant_id = event.row["participant_id"]
        if participant_id not in state.estimates:
            return state
        estimates = dict(state.estimates)
        del estimates[participant_id]
        return replace(state, estimates=estimates)

    return upsert_estimate(state, Estimate.from_row(event.row))


def add_participant(state: RoomState, participant: Participant) -> RoomState:
    """Append to the roster unless a participant with that id is present."""
    if state.has_participant(participant.id):
        return state
    return replace(state, participants=state.participants + (participant,))


def upsert_estimate(state: RoomState, estimate: Estimate) -> RoomState:
    """Set a participant's estimate, replacing any earlier one."""
    estimates = dict(state.estimates)
    estimates[estimate.participant_id] = estimate
    return replace(state, estimates=estimates)


def remove_participant(state: RoomState, participant_id: str) -> RoomState:
    """Drop a participant and any estimate keyed to it."""
    estimates = {
        pid: estimate
        for pid, estimate in state.estimates.items()
        if pid != participant_id
    }
    return replace(
        state,
        participants=tuple(p for p in state.participants if p.id != participant_id),
        estimates=estimates,
    )


def clear_estimates(state: RoomState) -> RoomState:
    return replace(state, estimates={})


def seed_state(
    room_id: str,
    room: Mapping[str, Any] | None,
    participant_rows: Iterable[Mapping[str, Any]] = (),
    estimate_rows: Iterable[Mapping[str, Any]] = (),
) -> RoomState:
    """
    Build the initial projection from fetched rows.

    Malformed rows are skipped with a warning.
    """
    state = RoomState(room_id=room_id)
    if room is not None:
        try:
            state = replace(
                state,
                phase=Phase(room.get("phase") or Phase.SETUP.value),
                topic=topic_from_row(room),
            )
        except ValueError as e:
            logger.warning("Room %s has an invalid phase: %s", room_id, e)

    participants: list[Participant] = []
    seen: set[str] = set()
    for row in participant_rows:
        try:
            participant = Participant.from_row(row)
        except (KeyError, ValueError) as e:
            logger.warning("Skipping malformed participant row: %s", e)
            continue
        if participant.id not in seen:
            seen.add(participant.id)
            participants.append(participant)

    estimates: dict[str, Estimate] = {}
    for row in estimate_rows:
        try:
            estimate = Estimate.from_row(row)
        except (KeyError, ValueError) as e:
            logger.warning("Skipping malformed estimate row: %s", e)
            continue
        estimates[estimate.participant_id] = estimate

    return replace(state, participants=tuple(participants), estimates=estimates)
