"""Connection transport for the chat socket.

Features:
- Connection lifecycle (accept, track, forget)
- Per-connection FIFO writes
- Targeted, multi-target and broadcast sends
- Traffic metrics
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from src.core.errors import TransportError
from src.utils.metrics import chat_connections_active, chat_send_failures_total

logger = logging.getLogger(__name__)


@dataclass
class ChatConnection:
    """Represents one open socket."""

    connection_id: str
    websocket: WebSocket
    connected_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    # Serialises writes so frames leave in the order they were emitted
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class ConnectionManager:
    """Owns open sockets and writes frames to them."""

    def __init__(self) -> None:
        self._connections: Dict[str, ChatConnection] = {}
        self._metrics = {
            "total_connections": 0,
            "total_frames_sent": 0,
            "total_frames_received": 0,
            "total_send_failures": 0,
        }

    async def connect(self, websocket: WebSocket) -> str:
        """Accept a socket and assign it a fresh connection id."""
        await websocket.accept()

        connection_id = str(uuid.uuid4())
        self._connections[connection_id] = ChatConnection(
            connection_id=connection_id,
            websocket=websocket,
        )
        self._metrics["total_connections"] += 1
        chat_connections_active.inc()

        logger.info(f"Chat socket connected: {connection_id}", extra={"connection_id": connection_id})
        return connection_id

    async def disconnect(self, connection_id: str, close: bool = False) -> bool:
        """Forget a connection, optionally closing its socket first.

        Returns:
            True if the connection was known
        """
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return False

        chat_connections_active.dec()
        if close:
            try:
                await connection.websocket.close()
            except Exception as e:
                logger.debug(f"Close failed for {connection_id}: {e}")

        logger.info(f"Chat socket disconnected: {connection_id}", extra={"connection_id": connection_id})
        return True

    def touch(self, connection_id: str) -> None:
        """Record inbound activity on a connection."""
        connection = self._connections.get(connection_id)
        if connection:
            connection.last_activity = time.time()
            self._metrics["total_frames_received"] += 1

    async def send(self, connection_id: str, frame: Dict[str, Any]) -> bool:
        """Write one frame to one connection.

        A failed write loses the frame; there is no retry.

        Returns:
            True if the frame was written
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False

        async with connection.send_lock:
            try:
                await self._write(connection, frame)
            except TransportError as e:
                self._metrics["total_send_failures"] += 1
                chat_send_failures_total.inc()
                logger.warning(
                    e.message,
                    extra={
                        "connection_id": connection_id,
                        "event": frame.get("event"),
                        "error_code": e.code.value,
                    },
                )
                return False

        self._metrics["total_frames_sent"] += 1
        return True

    @staticmethod
    async def _write(connection: ChatConnection, frame: Dict[str, Any]) -> None:
        try:
            await connection.websocket.send_json(frame)
        except Exception as e:
            raise TransportError(
                f"Failed to send {frame.get('event')} to {connection.connection_id}: {e}",
                {"event": frame.get("event")},
            ) from e

    async def send_many(self, connection_ids: Iterable[str], frame: Dict[str, Any]) -> int:
        """Write a frame to several connections; returns how many succeeded."""
        sent_count = 0
        for conn_id in list(connection_ids):
            if await self.send(conn_id, frame):
                sent_count += 1
        return sent_count

    async def broadcast(
        self,
        frame: Dict[str, Any],
        exclude: Optional[Set[str]] = None,
    ) -> int:
        """Write a frame to every connection not in ``exclude``."""
        excluded = exclude or set()
        targets = [c for c in self._connections if c not in excluded]
        return await self.send_many(targets, frame)

    async def close_all(self) -> None:
        for conn_id in list(self._connections.keys()):
            await self.disconnect(conn_id, close=True)

    def get_connection(self, connection_id: str) -> Optional[ChatConnection]:
        return self._connections.get(connection_id)

    def connection_ids(self) -> List[str]:
        return list(self._connections.keys())

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def get_stats(self) -> Dict[str, Any]:
        return {
            "active_connections": len(self._connections),
            **self._metrics,
        }
