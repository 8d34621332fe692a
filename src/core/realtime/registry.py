"""Connection registry: who is behind each live connection, and who is online."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from src.core.errors import InvalidRegistration
from src.core.realtime.presence_store import (
    InMemoryPresenceStore,
    PresenceRecord,
    PresenceStore,
)

logger = logging.getLogger(__name__)

ROLES = ("vendor", "client")


@dataclass(frozen=True)
class ConnectionIdentity:
    """Identity claimed on a connection by ``join-user``."""

    user_id: str
    role: str
    display_name: str

    def to_dict(self) -> Dict[str, str]:
        return {"userId": self.user_id, "name": self.display_name, "role": self.role}


@dataclass
class RegistrationResult:
    identity: ConnectionIdentity
    # Identity previously bound to the same connection, when it differed
    replaced: Optional[ConnectionIdentity] = None
    replaced_went_offline: bool = False


@dataclass
class UnregisterResult:
    identity: Optional[ConnectionIdentity] = None
    went_offline: bool = False


def validate_identity(user_id: object, role: object, display_name: object) -> ConnectionIdentity:
    """Build an identity or raise :class:`InvalidRegistration`."""
    missing = [
        name
        for name, value in (("userId", user_id), ("role", role), ("name", display_name))
        if not isinstance(value, str) or not value.strip()
    ]
    if missing:
        raise InvalidRegistration(
            f"Missing registration fields: {', '.join(missing)}",
            {"fields": missing},
        )
    if role not in ROLES:
        raise InvalidRegistration(f"Unknown role: {role}", {"fields": ["role"]})
    return ConnectionIdentity(
        user_id=user_id.strip(),  # type: ignore[union-attr]
        role=role,  # type: ignore[arg-type]
        display_name=display_name.strip(),  # type: ignore[union-attr]
    )


class ConnectionRegistry:
    """Maps connections to identities and keeps one presence record per user.

    The newest registration of a user owns the presence slot. A disconnect
    only clears the slot while it still points at the disconnecting
    connection, so a late disconnect of an old connection cannot erase the
    record of a newer one. When the slot owner leaves while the same user
    still has other registered connections here, the most recently
    registered of them takes over the slot.
    """

    def __init__(self, store: Optional[PresenceStore] = None):
        self._store = store if store is not None else InMemoryPresenceStore()
        # connection_id -> identity, kept in registration order
        self._bindings: Dict[str, ConnectionIdentity] = {}

    @property
    def store(self) -> PresenceStore:
        return self._store

    async def register(
        self,
        connection_id: str,
        user_id: str,
        role: str,
        display_name: str,
    ) -> RegistrationResult:
        """Bind an identity to a connection and claim the user's presence slot.

        Raises:
            InvalidRegistration: a field is missing or the role is unknown;
                nothing is changed in that case
        """
        identity = validate_identity(user_id, role, display_name)

        result = RegistrationResult(identity=identity)
        previous = self._bindings.pop(connection_id, None)
        if previous is not None and previous.user_id != identity.user_id:
            result.replaced = previous
            result.replaced_went_offline = await self._release(connection_id, previous)

        self._bindings[connection_id] = identity
        await self._store.put(
            PresenceRecord(
                user_id=identity.user_id,
                connection_id=connection_id,
                role=identity.role,
                display_name=identity.display_name,
            )
        )

        logger.info(
            f"Registered {identity.role} {identity.user_id} on {connection_id}",
            extra={"connection_id": connection_id, "user_id": identity.user_id, "role": identity.role},
        )
        return result

    async def unregister(self, connection_id: str) -> UnregisterResult:
        """Drop a connection's identity and release its presence slot if it owns it."""
        identity = self._bindings.pop(connection_id, None)
        if identity is None:
            return UnregisterResult()

        went_offline = await self._release(connection_id, identity)
        logger.info(
            f"Unregistered {identity.user_id} from {connection_id} (offline={went_offline})",
            extra={"connection_id": connection_id, "user_id": identity.user_id},
        )
        return UnregisterResult(identity=identity, went_offline=went_offline)

    async def _release(self, connection_id: str, identity: ConnectionIdentity) -> bool:
        """Clear the slot held by ``connection_id``; True if the user is now offline."""
        removed = await self._store.remove_if(identity.user_id, connection_id)
        if not removed:
            return False

        successor = self._latest_connection_of(identity.user_id)
        if successor is None:
            return True

        successor_identity = self._bindings[successor]
        await self._store.put(
            PresenceRecord(
                user_id=successor_identity.user_id,
                connection_id=successor,
                role=successor_identity.role,
                display_name=successor_identity.display_name,
            )
        )
        logger.debug(f"Presence slot of {identity.user_id} moved to {successor}")
        return False

    def _latest_connection_of(self, user_id: str) -> Optional[str]:
        latest = None
        for conn_id, identity in self._bindings.items():
            if identity.user_id == user_id:
                latest = conn_id
        return latest

    async def lookup_by_user(self, user_id: str) -> Optional[PresenceRecord]:
        return await self._store.get(user_id)

    async def list_online(self) -> List[PresenceRecord]:
        return await self._store.records()

    def identity_of(self, connection_id: str) -> Optional[ConnectionIdentity]:
        return self._bindings.get(connection_id)

    def registered_connections(self) -> List[str]:
        return list(self._bindings.keys())

    def connections_of(self, user_id: str) -> List[str]:
        """Local connections registered as ``user_id``."""
        return [c for c, identity in self._bindings.items() if identity.user_id == user_id]

    def get_stats(self) -> Dict[str, int]:
        return {
            "registered_connections": len(self._bindings),
            "users_registered_locally": len({i.user_id for i in self._bindings.values()}),
        }
