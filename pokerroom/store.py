"""Record store contract and the in-process implementation.

The store holds three tables (rooms, participants, estimates). Rows are
scoped by room: the same participant id may appear in several rooms. After
each write the store pushes a change event to every subscriber of the
affected room.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from .models import ChangeEvent, EventType, Table

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A record store call failed."""


class RecordExistsError(StoreError):
    """Insert of a row whose id is already taken."""


class RecordNotFoundError(StoreError):
    """Update of a row that does not exist."""


class Subscription(Protocol):
    """Change feed for one room. Iterate for events; close to stop."""

    def __aiter__(self) -> AsyncIterator[ChangeEvent]: ...

    async def close(self) -> None: ...


class RecordStore(Protocol):
    """Typed CRUD plus a per-room change feed.

    For the rooms table the record id is the room id itself.
    """

    async def get(self, table: Table, room_id: str, record_id: str) -> dict[str, Any] | None: ...

    async def select(self, table: Table, room_id: str) -> list[dict[str, Any]]: ...

    async def insert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, table: Table, room_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def upsert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, table: Table, room_id: str, record_id: str) -> bool: ...

    async def delete_where(self, table: Table, room_id: str) -> int: ...

    async def subscribe(self, room_id: str) -> Subscription: ...


def row_room_id(table: Table, row: dict[str, Any]) -> str | None:
    """Room a row belongs to (a room row belongs to itself)."""
    if table is Table.ROOMS:
        return row.get("id")
    return row.get("room_id")


def row_key(table: Table, row: dict[str, Any]) -> tuple[str, str]:
    """
    Storage key of a row.

    Raises:
        StoreError: If the row lacks its id or room id
    """
    record_id = row.get("id")
    room_id = row_room_id(table, row)
    if not record_id or not room_id:
        raise StoreError(f"{table.value} row needs both id and room id")
    return room_id, record_id


class QueueSubscription:
    """Subscription fed through an asyncio.Queue."""

    _CLOSED = object()

    def __init__(
        self,
        room_id: str,
        on_close: Callable[["QueueSubscription"], None] | None = None,
    ) -> None:
        self.room_id = room_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def __aiter__(self) -> "QueueSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)
        if self._on_close is not None:
            self._on_close(self)


class InMemoryRecordStore:
    """Record store living in this process.

    Deleting a participant cascades to its estimate, mirroring the foreign
    key on the estimates table.
    """

    def __init__(self) -> None:
        self._tables: dict[Table, dict[tuple[str, str], dict[str, Any]]] = {
            table: {} for table in Table
        }
        self._subscribers: set[QueueSubscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, table: Table, event_type: EventType, row: dict[str, Any]) -> None:
        room_id = row_room_id(table, row)
        for subscriber in list(self._subscribers):
            if subscriber.room_id == room_id:
                subscriber.push(ChangeEvent(table, event_type, dict(row)))

    async def get(self, table: Table, room_id: str, record_id: str) -> dict[str, Any] | None:
        row = self._tables[table].get((room_id, record_id))
        return dict(row) if row is not None else None

    async def select(self, table: Table, room_id: str) -> list[dict[str, Any]]:
        return [
            dict(row)
            for (row_room, _), row in self._tables[table].items()
            if row_room == room_id
        ]

    async def insert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]:
        key = row_key(table, row)
        if key in self._tables[table]:
            raise RecordExistsError(f"{table.value}/{key[1]} already exists in room {key[0]}")
        stored = dict(row)
        self._tables[table][key] = stored
        self._publish(table, EventType.INSERT, stored)
        return dict(stored)

    async def update(
        self, table: Table, room_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        key = (room_id, record_id)
        current = self._tables[table].get(key)
        if current is None:
            raise RecordNotFoundError(f"{table.value}/{record_id} not found in room {room_id}")
        # Keys are immutable
        stored = {**current, **fields, "id": record_id}
        if table is not Table.ROOMS:
            stored["room_id"] = room_id
        self._tables[table][key] = stored
        self._publish(table, EventType.UPDATE, stored)
        return dict(stored)

    async def upsert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]:
        key = row_key(table, row)
        existed = key in self._tables[table]
        stored = dict(row)
        self._tables[table][key] = stored
        self._publish(table, EventType.UPDATE if existed else EventType.INSERT, stored)
        return dict(stored)

    async def delete(self, table: Table, room_id: str, record_id: str) -> bool:
        removed = self._tables[table].pop((room_id, record_id), None)
        if removed is None:
            return False
        if table is Table.PARTICIPANTS:
            self._cascade_participant(room_id, record_id)
        self._publish(table, EventType.DELETE, removed)
        return True

    def _cascade_participant(self, room_id: str, participant_id: str) -> None:
        estimates = self._tables[Table.ESTIMATES]
        for key, row in list(estimates.items()):
            if key[0] == room_id and row.get("participant_id") == participant_id:
                del estimates[key]
                self._publish(Table.ESTIMATES, EventType.DELETE, row)

    async def delete_where(self, table: Table, room_id: str) -> int:
        matching = [key for key in self._tables[table] if key[0] == room_id]
        for key in matching:
            await self.delete(table, *key)
        return len(matching)

    async def subscribe(self, room_id: str) -> QueueSubscription:
        subscription = QueueSubscription(room_id, on_close=self._subscribers.discard)
        self._subscribers.add(subscription)
        logger.debug("Subscribed to room %s (%d subscribers)", room_id, len(self._subscribers))
        return subscription
