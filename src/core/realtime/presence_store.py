"""Presence record storage backends.

The registry keeps one presence record per user id. Backends only have to
honour three rules: ``put`` overwrites (last write wins), ``remove_if``
deletes a record only while it still points at the given connection, and
``records`` returns every stored record.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceRecord:
    """The connection currently holding a user's presence slot."""

    user_id: str
    connection_id: str
    role: str
    display_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.display_name,
            "role": self.role,
            "online": True,
        }


class PresenceStore(ABC):
    """Abstract base class for presence storage."""

    @abstractmethod
    async def put(self, record: PresenceRecord) -> None:
        """Insert or overwrite the record for ``record.user_id``."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[PresenceRecord]:
        """Return the record for a user, if any."""

    @abstractmethod
    async def remove_if(self, user_id: str, connection_id: str) -> bool:
        """Delete the user's record only if it belongs to ``connection_id``.

        Returns:
            True if a record was removed
        """

    @abstractmethod
    async def records(self) -> List[PresenceRecord]:
        """Return all records, order unspecified."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryPresenceStore(PresenceStore):
    """Process-local store for single-instance deployments.

    None of the methods await, so each call completes atomically on the
    event loop.
    """

    def __init__(self) -> None:
        self._records: Dict[str, PresenceRecord] = {}

    async def put(self, record: PresenceRecord) -> None:
        self._records[record.user_id] = record

    async def get(self, user_id: str) -> Optional[PresenceRecord]:
        return self._records.get(user_id)

    async def remove_if(self, user_id: str, connection_id: str) -> bool:
        record = self._records.get(user_id)
        if record is None or record.connection_id != connection_id:
            return False
        del self._records[user_id]
        return True

    async def records(self) -> List[PresenceRecord]:
        return list(self._records.values())


# KEYS[1] = presence hash, ARGV[1] = user id, ARGV[2] = connection id
_REMOVE_IF_SCRIPT = """
local raw = redis.call('HGET', KEYS[1], ARGV[1])
if not raw then
    return 0
end
local record = cjson.decode(raw)
if record['connection_id'] ~= ARGV[2] then
    return 0
end
redis.call('HDEL', KEYS[1], ARGV[1])
return 1
"""


class RedisPresenceStore(PresenceStore):
    """Presence records in a Redis hash shared by several processes.

    Only presence is shared; frames are still delivered to local
    connections only.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        key: str = "chat:presence",
        client: Optional[Any] = None,
    ):
        self.url = url
        self.key = key
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
            logger.info(f"Presence store connected to Redis at {self.url}")
        return self._client

    @staticmethod
    def _decode(raw: Any) -> Optional[PresenceRecord]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return PresenceRecord(**json.loads(raw))
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Dropping unreadable presence record: {e}")
            return None

    async def put(self, record: PresenceRecord) -> None:
        await self._get_client().hset(self.key, record.user_id, json.dumps(asdict(record)))

    async def get(self, user_id: str) -> Optional[PresenceRecord]:
        raw = await self._get_client().hget(self.key, user_id)
        return self._decode(raw)

    async def remove_if(self, user_id: str, connection_id: str) -> bool:
        removed = await self._get_client().eval(
            _REMOVE_IF_SCRIPT, 1, self.key, user_id, connection_id
        )
        return bool(removed)

    async def records(self) -> List[PresenceRecord]:
        raw_records = await self._get_client().hgetall(self.key)
        records = []
        for raw in raw_records.values():
            record = self._decode(raw)
            if record is not None:
                records.append(record)
        return records

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Presence store Redis connection closed")


def create_presence_store(backend: str = "memory", **kwargs: Any) -> PresenceStore:
    """Build a presence store.

    Args:
        backend: "memory" or "redis"
        **kwargs: passed to the backend constructor
    """
    if backend == "redis":
        return RedisPresenceStore(**kwargs)
    if backend != "memory":
        raise ValueError(f"Unknown presence backend: {backend}")
    return InMemoryPresenceStore()
