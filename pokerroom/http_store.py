"""httpx client for the record service.

Implements the ``RecordStore`` contract over the service's REST routes and
reads each room's change feed from its Server-Sent Events stream. A dropped
feed is reopened with capped exponential backoff; changes made while it was
down are not replayed.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

import httpx

from . import config
from .models import ChangeEvent, Table
from .store import RecordExistsError, RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0


def parse_feed_line(line: str) -> dict[str, Any] | None:
    """
    Decode one SSE line.

    Returns:
        The JSON payload of a ``data:`` line, or None for comments, blank
        lines and undecodable data
    """
    if not line.startswith("data: "):
        return None
    try:
        payload = json.loads(line[6:])
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


class HttpSubscription:
    """Change feed of one room, read from the service's SSE stream."""

    _CLOSED = object()

    def __init__(
        self,
        client: httpx.AsyncClient,
        room_id: str,
        initial_delay: float = config.RECONNECT_INITIAL_DELAY,
        max_delay: float = config.RECONNECT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.room_id = room_id
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._queue: asyncio.Queue = asyncio.Queue()
        self._ready: asyncio.Future = asyncio.get_running_loop().create_future()
        self._closed = False
        self._task: asyncio.Task | None = None

    async def start(self, timeout: float = CONNECT_TIMEOUT) -> None:
        """
        Open the stream and wait until the service confirms the subscription.

        Raises:
            StoreError: If the first connection fails or times out
        """
        self._task = asyncio.create_task(self._pump())
        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise StoreError(f"Timed out subscribing to room {self.room_id}") from None
        except StoreError:
            await self.close()
            raise

    async def _pump(self) -> None:
        delay = self.initial_delay
        while not self._closed:
            try:
                await self._read_stream()
                delay = self.initial_delay
            except (httpx.HTTPError, StoreError) as e:
                if not self._ready.done():
                    self._ready.set_exception(StoreError(f"Change feed unavailable: {e}"))
                    return
                logger.warning("Change feed for room %s dropped: %s", self.room_id, e)

            if self._closed:
                return
            logger.info("Reconnecting change feed for room %s in %.1fs", self.room_id, delay)
            await self._sleep(delay)
            delay = min(delay * 2, self.max_delay)

    async def _read_stream(self) -> None:
        async with self.client.stream(
            "GET",
            f"/api/rooms/{quote(self.room_id, safe='')}/changes",
            timeout=httpx.Timeout(CONNECT_TIMEOUT, read=None),
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if line.startswith(": connected"):
                    if not self._ready.done():
                        self._ready.set_result(True)
                    continue
                payload = parse_feed_line(line)
                if payload is None:
                    continue
                if payload.get("type") == "server_shutdown":
                    logger.info("Record service shutting down: %s", payload.get("message"))
                    return
                if payload.get("type") == "change":
                    try:
                        self._queue.put_nowait(ChangeEvent.from_dict(payload["event"]))
                    except (KeyError, ValueError, TypeError) as e:
                        logger.warning("Skipping malformed change event: %s", e)

        if not self._ready.done():
            raise StoreError("Change feed closed before confirming the subscription")

    def __aiter__(self) -> "HttpSubscription":
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
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if not self._ready.done():
            self._ready.cancel()


class HttpRecordStore:
    """Record store backed by the record service."""

    def __init__(
        self,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url or config.STORE_URL
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    @staticmethod
    def _path(table: Table, room_id: str, record_id: str | None = None) -> str:
        path = f"/api/rooms/{quote(room_id, safe='')}/tables/{table.value}"
        if record_id is not None:
            path += f"/{quote(record_id, safe='')}"
        return path

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        if response.status_code == 409:
            raise RecordExistsError(_detail(response))
        if response.is_error and response.status_code != 404:
            raise StoreError(f"{method} {path} failed: HTTP {response.status_code} {_detail(response)}")
        return response

    async def get(self, table: Table, room_id: str, record_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", self._path(table, room_id, record_id))
        if response.status_code == 404:
            return None
        return _body(response)

    async def select(self, table: Table, room_id: str) -> list[dict[str, Any]]:
        response = await self._request("GET", self._path(table, room_id))
        _require_found(response)
        return _body(response)

    async def insert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST", self._path(table, _room_of(table, row)), json={"row": row}
        )
        _require_found(response)
        return _body(response)

    async def update(
        self, table: Table, room_id: str, record_id: str, fields: dict[str, Any]
    ) -> dict[str, Any]:
        response = await self._request(
            "PATCH", self._path(table, room_id, record_id), json={"fields": fields}
        )
        if response.status_code == 404:
            raise RecordNotFoundError(_detail(response))
        return _body(response)

    async def upsert(self, table: Table, row: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "PUT", self._path(table, _room_of(table, row)), json={"row": row}
        )
        _require_found(response)
        return _body(response)

    async def delete(self, table: Table, room_id: str, record_id: str) -> bool:
        response = await self._request("DELETE", self._path(table, room_id, record_id))
        _require_found(response)
        return _deleted_count(response) > 0

    async def delete_where(self, table: Table, room_id: str) -> int:
        response = await self._request("DELETE", self._path(table, room_id))
        _require_found(response)
        return _deleted_count(response)

    async def subscribe(self, room_id: str) -> HttpSubscription:
        subscription = HttpSubscription(self.client, room_id)
        await subscription.start()
        return subscription


def _room_of(table: Table, row: dict[str, Any]) -> str:
    room_id = row.get("id") if table is Table.ROOMS else row.get("room_id")
    if not room_id:
        raise StoreError(f"{table.value} row has no room id")
    return room_id


def _detail(response: httpx.Response) -> str:
    try:
        return str(response.json().get("detail", ""))
    except (json.JSONDecodeError, AttributeError):
        return response.text


def _require_found(response: httpx.Response) -> None:
    if response.status_code == 404:
        raise StoreError(f"Not found: {response.request.url}")


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise StoreError(f"Malformed response from {response.request.url}: {e}") from e


def _deleted_count(response: httpx.Response) -> int:
    body = _body(response)
    count = body.get("deleted") if isinstance(body, dict) else None
    if not isinstance(count, int):
        raise StoreError(f"Malformed delete response from {response.request.url}")
    return count
