"""Channel routing for chat connections.

Every registered connection sits in exactly two channels: its user's
personal channel and its role channel. Channels only exist while they have
members; nothing about them outlives the connections inside.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)

PERSONAL_PREFIX = "user-"
ROLE_PREFIX = "role-"


def personal_channel(user_id: str) -> str:
    """Channel addressing every connection of one user."""
    return f"{PERSONAL_PREFIX}{user_id}"


def role_channel(role: str) -> str:
    """Channel addressing every vendor (or every client) connection."""
    return f"{ROLE_PREFIX}{role}"


@dataclass
class Room:
    """A channel and its member connections."""

    name: str
    members: Set[str] = field(default_factory=set)  # connection_ids
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def room_type(self) -> str:
        if self.name.startswith(PERSONAL_PREFIX):
            return "personal"
        if self.name.startswith(ROLE_PREFIX):
            return "role"
        return "custom"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "room_type": self.room_type,
            "member_count": len(self.members),
            "created_at": self.created_at.isoformat(),
        }


class ChannelRouter:
    """Tracks which connections are in which channel."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._connection_rooms: Dict[str, Set[str]] = {}  # connection_id -> channel names

    def assign(self, connection_id: str, user_id: str, role: str) -> List[str]:
        """Place a registered connection in its personal and role channels.

        Any channels the connection was in before are left first, so a
        re-registration under another identity moves it cleanly.

        Returns:
            The channels joined
        """
        self.leave_all(connection_id)
        channels = [personal_channel(user_id), role_channel(role)]
        for channel in channels:
            room = self._rooms.get(channel)
            if room is None:
                room = Room(name=channel)
                self._rooms[channel] = room
            room.members.add(connection_id)
        self._connection_rooms[connection_id] = set(channels)
        logger.debug(f"Connection {connection_id} joined {channels}")
        return channels

    def leave_all(self, connection_id: str) -> int:
        """Remove a connection from every channel; empty channels are dropped.

        Returns:
            Number of channels left
        """
        channels = self._connection_rooms.pop(connection_id, set())
        for channel in channels:
            room = self._rooms.get(channel)
            if room is None:
                continue
            room.members.discard(connection_id)
            if not room.members:
                del self._rooms[channel]
        return len(channels)

    def members(self, channel: str) -> Set[str]:
        room = self._rooms.get(channel)
        if room:
            return room.members.copy()
        return set()

    def channels_of(self, connection_id: str) -> Set[str]:
        return self._connection_rooms.get(connection_id, set()).copy()

    def list_rooms(self) -> List[Room]:
        return list(self._rooms.values())

    def get_stats(self) -> Dict[str, Any]:
        counts: Dict[str, int] = {}
        for room in self._rooms.values():
            counts[room.room_type] = counts.get(room.room_type, 0) + 1
        return {
            "total_channels": len(self._rooms),
            "channels_by_type": counts,
        }
