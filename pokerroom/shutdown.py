"""Shutdown signalling for open change feeds.

Every change feed registers with the coordinator and gets back an
``asyncio.Event``. When the record service stops, all of those events are
set at once, so each feed can send a ``server_shutdown`` frame right away
instead of at its next keepalive. Clients treat that frame as a cue to
reconnect.
"""

import asyncio
import json
import logging
from collections import Counter
from typing import Any

logger = logging.getLogger(__name__)


class ShutdownCoordinator:
    """Open change feeds by room, and the stop signal for each."""

    def __init__(self) -> None:
        self._shutting_down = False
        self._feeds: dict[asyncio.Event, str] = {}

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def active_stream_count(self) -> int:
        return len(self._feeds)

    def feeds_by_room(self) -> Counter[str]:
        return Counter(self._feeds.values())

    def open_feed(self, room_id: str) -> asyncio.Event:
        """
        Register a change feed for a room.

        Returns:
            Event set when the feed must send the shutdown frame and end.
            Feeds opened after shutdown began get an event that is already set.
        """
        stop = asyncio.Event()
        if self._shutting_down:
            stop.set()
        self._feeds[stop] = room_id
        return stop

    def close_feed(self, stop: asyncio.Event) -> None:
        self._feeds.pop(stop, None)

    def initiate_shutdown(self) -> None:
        """Stop every open change feed."""
        rooms = self.feeds_by_room()
        logger.info(
            "Shutdown initiated. Closing %d change feeds across %d rooms",
            sum(rooms.values()), len(rooms),
        )
        self._shutting_down = True
        for stop in self._feeds:
            stop.set()

    def shutdown_sse_event(self) -> str:
        """Format a server_shutdown SSE event."""
        event: dict[str, Any] = {
            "type": "server_shutdown",
            "message": "Record service is restarting, reconnect to resume the change feed",
        }
        return f"data: {json.dumps(event)}\n\n"


shutdown_coordinator = ShutdownCoordinator()
