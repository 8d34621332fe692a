"""Shared fixtures for realtime chat unit tests."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest

from src.core.realtime.hub import ChatHub
from src.core.realtime.presence_store import InMemoryPresenceStore


class ChatHarness:
    """Drives a ChatHub with mocked sockets."""

    def __init__(self, hub: ChatHub):
        self.hub = hub

    async def open(self) -> Tuple[str, AsyncMock]:
        ws = AsyncMock()
        conn_id = await self.hub.connect(ws)
        return conn_id, ws

    async def emit(self, conn_id: str, event: str, data: Optional[Dict[str, Any]] = None) -> bool:
        return await self.hub.handle(conn_id, json.dumps({"event": event, "data": data or {}}))

    async def join(
        self,
        user_id: str,
        role: str = "client",
        name: Optional[str] = None,
    ) -> Tuple[str, AsyncMock]:
        conn_id, ws = await self.open()
        ok = await self.emit(conn_id, "join-user", {"userId": user_id, "role": role, "name": name or user_id})
        assert ok
        return conn_id, ws

    @staticmethod
    def frames(ws: AsyncMock) -> List[Dict[str, Any]]:
        return [call.args[0] for call in ws.send_json.call_args_list]

    @classmethod
    def events(cls, ws: AsyncMock, name: str) -> List[Any]:
        return [f["data"] for f in cls.frames(ws) if f["event"] == name]

    @classmethod
    def event_names(cls, ws: AsyncMock) -> List[str]:
        return [f["event"] for f in cls.frames(ws)]


@pytest.fixture
def presence_store() -> InMemoryPresenceStore:
    """Store shared by the hub under test; seed it to simulate other nodes."""
    return InMemoryPresenceStore()


@pytest.fixture
def hub(presence_store: InMemoryPresenceStore) -> ChatHub:
    return ChatHub(presence_store)


@pytest.fixture
def chat(hub: ChatHub) -> ChatHarness:
    return ChatHarness(hub)
