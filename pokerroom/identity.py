"""Local identity: per-room participant ids and the display name."""

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from . import config
from .models import Participant, ParticipantKind
from .personas import avatar_ref

logger = logging.getLogger(__name__)


class InvalidDisplayNameError(ValueError):
    """Display name failed validation."""


def generate_participant_id() -> str:
    return uuid.uuid4().hex[:13]


def validate_display_name(name: str) -> str:
    """
    Trim and validate a display name.

    Args:
        name: Raw name as typed

    Returns:
        The trimmed name

    Raises:
        InvalidDisplayNameError: If the trimmed name is too short or too long
    """
    trimmed = name.strip() if isinstance(name, str) else ""
    if len(trimmed) < config.MIN_DISPLAY_NAME:
        raise InvalidDisplayNameError(
            f"Name must be at least {config.MIN_DISPLAY_NAME} characters"
        )
    if len(trimmed) > config.MAX_DISPLAY_NAME:
        raise InvalidDisplayNameError(
            f"Name must be at most {config.MAX_DISPLAY_NAME} characters"
        )
    return trimmed


class IdentityStore:
    """JSON file holding the local identity.

    Layout: ``{"display_name": str, "participant_ids": {room_id: id}}``.
    When the file cannot be read or written, ids fall back to values that
    live only as long as this object.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path or config.IDENTITY_FILE)
        self._session_ids: dict[str, str] = {}
        self._session_name: str | None = None

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")

        ids = data.get("participant_ids", {})
        if not isinstance(ids, dict) or not all(isinstance(v, str) for v in ids.values()):
            raise ValueError(f"{self.path} has malformed participant_ids")
        name = data.get("display_name")
        if name is not None and not isinstance(name, str):
            raise ValueError(f"{self.path} has a non-text display_name")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    def resolve_participant_id(self, room_id: str) -> str:
        """
        Get this client's participant id for a room, creating it if absent.

        Args:
            room_id: Room identifier

        Returns:
            Opaque participant id, stable across restarts when storage works
        """
        if room_id in self._session_ids:
            return self._session_ids[room_id]

        try:
            data = self._load()
            ids = data.setdefault("participant_ids", {})
            participant_id = ids.get(room_id)
            if not participant_id:
                participant_id = generate_participant_id()
                ids[room_id] = participant_id
                self._save(data)
            return participant_id
        except (OSError, ValueError) as e:
            logger.warning(
                "Identity storage unavailable (%s); using a session-only id", e
            )
            participant_id = generate_participant_id()
            self._session_ids[room_id] = participant_id
            return participant_id

    def resolve_display_name(self) -> str | None:
        """Get the stored display name, or None if none was committed."""
        if self._session_name is not None:
            return self._session_name
        try:
            return self._load().get("display_name") or None
        except (OSError, ValueError) as e:
            logger.warning("Identity storage unavailable: %s", e)
            return None

    def commit_display_name(self, name: str) -> None:
        """
        Store the display name for all rooms.

        Callers validate with :func:`validate_display_name` first.
        """
        try:
            data = self._load()
            data["display_name"] = name
            self._save(data)
            self._session_name = None
        except (OSError, ValueError) as e:
            logger.warning("Could not persist display name: %s", e)
            self._session_name = name

    def build_local_participant(self, room_id: str, name: str) -> Participant:
        """The human participant record for this client in a room."""
        participant_id = self.resolve_participant_id(room_id)
        return Participant(
            id=participant_id,
            name=name,
            kind=ParticipantKind.HUMAN,
            avatar_ref=avatar_ref(participant_id),
        )
