"""Chat hub: the object owning all realtime state for one process.

Created by the application lifespan and stored on ``app.state``; tests
build their own instances.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket

from src.core.config import Settings
from src.core.realtime.dispatcher import ChatDispatcher
from src.core.realtime.manager import ConnectionManager
from src.core.realtime.presence import PresenceBroadcaster
from src.core.realtime.presence_store import PresenceStore, create_presence_store
from src.core.realtime.registry import ConnectionRegistry
from src.core.realtime.relay import MessageRelay, TypingRelay
from src.core.realtime.rooms import ChannelRouter

logger = logging.getLogger(__name__)


class ChatHub:
    """Wires registry, router, presence and relays behind one dispatcher."""

    def __init__(self, store: Optional[PresenceStore] = None):
        self.manager = ConnectionManager()
        self.registry = ConnectionRegistry(store)
        self.router = ChannelRouter()
        self.presence = PresenceBroadcaster(self.manager, self.registry, self.router)
        self.messages = MessageRelay(self.manager, self.registry, self.router)
        self.typing = TypingRelay(self.manager, self.router)
        self.dispatcher = ChatDispatcher(
            self.manager,
            self.registry,
            self.router,
            self.presence,
            self.messages,
            self.typing,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatHub":
        backend = settings.PRESENCE_BACKEND.lower()
        if backend == "redis":
            store = create_presence_store(
                "redis", url=settings.REDIS_URL, key=settings.PRESENCE_REDIS_KEY
            )
        else:
            store = create_presence_store(backend)
        logger.info(f"Chat hub using {backend} presence store")
        return cls(store)

    async def connect(self, websocket: WebSocket) -> str:
        return await self.manager.connect(websocket)

    async def handle(self, connection_id: str, raw: str) -> bool:
        return await self.dispatcher.dispatch(connection_id, raw)

    async def disconnect(self, connection_id: str) -> None:
        """Tear down a connection and announce the user offline if they left.

        Never-registered connections, and stale connections whose user has
        since reconnected, go away silently.
        """
        try:
            result = await self.registry.unregister(connection_id)
        finally:
            self.router.leave_all(connection_id)
            await self.manager.disconnect(connection_id)

        if result.identity is not None and result.went_offline:
            await self.presence.announce_offline(result.identity)

    async def close(self) -> None:
        """Release this process's presence records, then close sockets and store.

        No offline broadcast is sent; every local socket is going away.
        """
        for connection_id in self.registry.registered_connections():
            await self.registry.unregister(connection_id)
        await self.manager.close_all()
        await self.registry.store.close()

    async def get_stats(self) -> Dict[str, Any]:
        online = await self.registry.list_online()
        return {
            **self.manager.get_stats(),
            **self.registry.get_stats(),
            **self.router.get_stats(),
            "users_online": len({r.user_id for r in online}),
        }
