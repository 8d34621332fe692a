"""Realtime chat module.

Provides:
- Connection registry and presence records
- Personal/role channel routing
- Presence broadcasts
- Message, typing and read-receipt relays
- Event dispatch behind a single hub
"""

from src.core.realtime.dispatcher import ChatDispatcher
from src.core.realtime.events import (
    EventType,
    InboundEvent,
    outbound,
    parse_frame,
)
from src.core.realtime.hub import ChatHub
from src.core.realtime.manager import ChatConnection, ConnectionManager
from src.core.realtime.presence import PresenceBroadcaster
from src.core.realtime.presence_store import (
    InMemoryPresenceStore,
    PresenceRecord,
    PresenceStore,
    RedisPresenceStore,
    create_presence_store,
)
from src.core.realtime.registry import ConnectionIdentity, ConnectionRegistry
from src.core.realtime.relay import MessageEnvelope, MessageRelay, TypingRelay
from src.core.realtime.rooms import ChannelRouter, personal_channel, role_channel

__all__ = [
    # Hub
    "ChatHub",
    "ChatDispatcher",
    # Events
    "EventType",
    "InboundEvent",
    "outbound",
    "parse_frame",
    # Transport
    "ChatConnection",
    "ConnectionManager",
    # Presence
    "ConnectionIdentity",
    "ConnectionRegistry",
    "PresenceBroadcaster",
    "PresenceRecord",
    "PresenceStore",
    "InMemoryPresenceStore",
    "RedisPresenceStore",
    "create_presence_store",
    # Routing and relays
    "ChannelRouter",
    "personal_channel",
    "role_channel",
    "MessageEnvelope",
    "MessageRelay",
    "TypingRelay",
]
