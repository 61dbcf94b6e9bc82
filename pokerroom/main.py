"""FastAPI record service for planning poker rooms.

Serves the shared room records to every client and pushes each room's
change feed as Server-Sent Events.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import config
from .logging_config import setup_logging
from .models import Table
from .shutdown import ShutdownCoordinator, shutdown_coordinator
from .store import InMemoryRecordStore, RecordExistsError, RecordNotFoundError, row_room_id
from .telemetry import instrument_fastapi, setup_telemetry
from .version import get_version_info

logger = logging.getLogger(__name__)

# Seconds between keepalive comments on idle change feeds
KEEPALIVE_INTERVAL = 15.0

record_store = InMemoryRecordStore()


def get_store() -> InMemoryRecordStore:
    """Dependency returning the shared record store."""
    return record_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    if setup_telemetry():
        instrument_fastapi(app)
    yield
    shutdown_coordinator.initiate_shutdown()


app = FastAPI(title="Planning Poker Record Service", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class RowRequest(BaseModel):
    """A full row to insert or upsert."""
    row: Dict[str, Any]


class UpdateRequest(BaseModel):
    """Fields to change on an existing row."""
    fields: Dict[str, Any] = Field(default_factory=dict)


def _scoped_row(table: Table, room_id: str, row: Dict[str, Any]) -> Dict[str, Any]:
    """Bind a row to the room in the path, rejecting rows for other rooms."""
    scoped = dict(row)
    if table is Table.ROOMS:
        scoped.setdefault("id", room_id)
    else:
        scoped.setdefault("room_id", room_id)

    if row_room_id(table, scoped) != room_id:
        raise HTTPException(status_code=400, detail="Row belongs to another room")
    if not scoped.get("id"):
        raise HTTPException(status_code=400, detail="Row needs an id")
    return scoped


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "Planning Poker Record Service"}


@app.get("/api/version")
async def version():
    """Version and build information."""
    return get_version_info().to_dict()


@app.get("/api/config")
async def get_config():
    """Client-facing settings."""
    return {
        "scale": list(config.SCALE),
        "unknown_card": config.UNKNOWN_CARD,
        "oracle_configured": config.is_oracle_configured(),
    }


@app.post("/api/config/reload")
async def reload_config_endpoint():
    """Reload configuration from .env without restarting the service."""
    return config.reload_config()


@app.get("/api/rooms/{room_id}/tables/{table}", response_model=List[Dict[str, Any]])
async def select_rows(
    room_id: str,
    table: Table,
    store: InMemoryRecordStore = Depends(get_store),
):
    """List a room's rows in a table."""
    return await store.select(table, room_id)


@app.get("/api/rooms/{room_id}/tables/{table}/{record_id}")
async def get_row(
    room_id: str,
    table: Table,
    record_id: str,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Fetch one row."""
    row = await store.get(table, room_id, record_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return row


@app.post("/api/rooms/{room_id}/tables/{table}", status_code=201)
async def insert_row(
    room_id: str,
    table: Table,
    request: RowRequest,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Insert a row; 409 if its id is taken."""
    try:
        return await store.insert(table, _scoped_row(table, room_id, request.row))
    except RecordExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.put("/api/rooms/{room_id}/tables/{table}")
async def upsert_row(
    room_id: str,
    table: Table,
    request: RowRequest,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Insert or replace a row by id."""
    return await store.upsert(table, _scoped_row(table, room_id, request.row))


@app.patch("/api/rooms/{room_id}/tables/{table}/{record_id}")
async def update_row(
    room_id: str,
    table: Table,
    record_id: str,
    request: UpdateRequest,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Change fields of an existing row."""
    try:
        return await store.update(table, room_id, record_id, request.fields)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.delete("/api/rooms/{room_id}/tables/{table}/{record_id}")
async def delete_row(
    room_id: str,
    table: Table,
    record_id: str,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Delete one row."""
    deleted = await store.delete(table, room_id, record_id)
    return {"deleted": 1 if deleted else 0}


@app.delete("/api/rooms/{room_id}/tables/{table}")
async def delete_rows(
    room_id: str,
    table: Table,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Delete all of a room's rows in a table."""
    return {"deleted": await store.delete_where(table, room_id)}


async def stream_changes(
    store: InMemoryRecordStore,
    room_id: str,
    coordinator: ShutdownCoordinator = shutdown_coordinator,
    keepalive: float = KEEPALIVE_INTERVAL,
) -> AsyncIterator[str]:
    """
    Yield a room's change events as SSE frames.

    Idle periods produce keepalive comments. A shutdown ends the feed with a
    ``server_shutdown`` frame as soon as it starts, even on an idle feed.
    """
    subscription = await store.subscribe(room_id)
    stop = coordinator.open_feed(room_id)
    stopped = asyncio.ensure_future(stop.wait())
    next_event: asyncio.Future | None = None
    logger.info("Change feed opened for room %s", room_id)
    try:
        yield ": connected\n\n"
        while True:
            if next_event is None:
                next_event = asyncio.ensure_future(subscription.__anext__())
            done, _ = await asyncio.wait(
                {next_event, stopped},
                timeout=keepalive,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if stopped in done:
                yield coordinator.shutdown_sse_event()
                return
            if not done:
                yield ": keepalive\n\n"
                continue

            finished, next_event = next_event, None
            try:
                event = finished.result()
            except StopAsyncIteration:
                return
            yield f"data: {json.dumps({'type': 'change', 'event': event.to_dict()})}\n\n"
    finally:
        stopped.cancel()
        if next_event is not None:
            next_event.cancel()
        await subscription.close()
        coordinator.close_feed(stop)
        logger.info("Change feed closed for room %s", room_id)


@app.get("/api/rooms/{room_id}/changes")
async def room_changes(
    room_id: str,
    store: InMemoryRecordStore = Depends(get_store),
):
    """Server-Sent Events stream of a room's change feed."""
    return StreamingResponse(
        stream_changes(store, room_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


def main() -> None:
    """Run the record service."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)


if __name__ == "__main__":
    main()
