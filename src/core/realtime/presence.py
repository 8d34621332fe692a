"""Presence announcements.

Clients are expected to keep presence as a set keyed by ``userId`` and
replace entries as events arrive; no ordering across announcements is
promised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from src.core.realtime.events import EventType, outbound
from src.core.realtime.manager import ConnectionManager
from src.core.realtime.registry import ConnectionIdentity, ConnectionRegistry
from src.core.realtime.rooms import ChannelRouter, personal_channel
from src.utils.metrics import chat_presence_broadcasts_total, chat_users_online

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    def __init__(
        self,
        manager: ConnectionManager,
        registry: ConnectionRegistry,
        router: ChannelRouter,
    ):
        self._manager = manager
        self._registry = registry
        self._router = router

    async def snapshot(self) -> List[Dict[str, Any]]:
        """Current online users, one entry per user id."""
        by_user: Dict[str, Dict[str, Any]] = {}
        for record in await self._registry.list_online():
            by_user[record.user_id] = record.to_dict()
        chat_users_online.set(len(by_user))
        return list(by_user.values())

    async def _refresh_online_gauge(self) -> None:
        online = await self._registry.list_online()
        chat_users_online.set(len({r.user_id for r in online}))

    async def send_snapshot(self, connection_id: str) -> bool:
        users = await self.snapshot()
        chat_presence_broadcasts_total.labels(kind="snapshot").inc()
        return await self._manager.send(connection_id, outbound(EventType.ONLINE_USERS, users))

    async def announce_online(self, connection_id: str, identity: ConnectionIdentity) -> int:
        """Tell everyone else the user is online, then hand the newcomer a snapshot.

        Connections of the same user are not told about themselves.

        Returns:
            Number of connections that received ``user-online``
        """
        own = self._router.members(personal_channel(identity.user_id))
        own.add(connection_id)
        targets = [c for c in self._registry.registered_connections() if c not in own]

        sent = await self._manager.send_many(targets, outbound(EventType.USER_ONLINE, identity.to_dict()))
        chat_presence_broadcasts_total.labels(kind="online").inc()
        logger.debug(
            f"user-online for {identity.user_id} reached {sent} connections",
            extra={"user_id": identity.user_id},
        )

        await self.send_snapshot(connection_id)
        return sent

    async def announce_offline(self, identity: ConnectionIdentity) -> int:
        """Tell every remaining registered connection the user went offline."""
        own = self._router.members(personal_channel(identity.user_id))
        targets = [c for c in self._registry.registered_connections() if c not in own]

        sent = await self._manager.send_many(targets, outbound(EventType.USER_OFFLINE, identity.to_dict()))
        chat_presence_broadcasts_total.labels(kind="offline").inc()
        await self._refresh_online_gauge()
        logger.debug(
            f"user-offline for {identity.user_id} reached {sent} connections",
            extra={"user_id": identity.user_id},
        )
        return sent
