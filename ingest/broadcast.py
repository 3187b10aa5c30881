from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
import json
from typing import Any, AsyncIterator, Protocol
import uuid

from fastapi.websockets import WebSocketState

from common.logger import Logger


class Connection(Protocol):
    client_state: WebSocketState
    application_state: WebSocketState

    async def send_text(self, data: str) -> None:
        ...


def is_open(conn: Connection) -> bool:
    return (
        getattr(conn, "client_state", None) == WebSocketState.CONNECTED
        and getattr(conn, "application_state", None) == WebSocketState.CONNECTED
    )


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class BroadcastHub:
    """
    Registry of live client connections with best-effort JSON fan-out.

    One lock guards the connection set and serializes publishes, so two
    events never interleave on a connection and every client sees events in
    publish order. Closed connections are skipped on publish and removed
    when their `connected()` block exits.
    """

    def __init__(self, *, send_timeout_sec: float = 5.0) -> None:
        self._connections: set[Connection] = set()
        self._lock = asyncio.Lock()
        self._send_timeout = send_timeout_sec

    def __len__(self) -> int:
        return len(self._connections)

    async def register(self, conn: Connection) -> None:
        async with self._lock:
            self._connections.add(conn)
        Logger.debug("Live client connected, %d open", len(self._connections))

    async def unregister(self, conn: Connection) -> None:
        async with self._lock:
            self._connections.discard(conn)
        Logger.debug("Live client disconnected, %d open", len(self._connections))

    @asynccontextmanager
    async def connected(self, conn: Connection) -> AsyncIterator[Connection]:
        await self.register(conn)
        try:
            yield conn
        finally:
            await self.unregister(conn)

    async def publish(self, event: dict[str, Any]) -> int:
        data = json.dumps(event, default=_json_default)
        delivered = 0
        async with self._lock:
            for conn in list(self._connections):
                if not is_open(conn):
                    continue
                try:
                    await asyncio.wait_for(conn.send_text(data), timeout=self._send_timeout)
                    delivered += 1
                except Exception as e:
                    Logger.warning("Broadcast to live client failed: %r", e)
        return delivered
