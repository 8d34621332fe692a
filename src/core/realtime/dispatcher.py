"""Per-connection event dispatch.

One handler per inbound :class:`EventType`, registered in a table at
construction time. :meth:`ChatDispatcher.dispatch` is the error boundary for
a single event: whatever goes wrong is logged and answered with an
``error`` frame on the same connection, and never reaches the socket loop.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Dict, Optional

from pydantic import BaseModel

from src.core.errors import ChatError, ErrorCode, InvalidEvent
from src.core.realtime.events import (
    EmptyPayload,
    EventType,
    JoinUserPayload,
    MarkReadPayload,
    SendMessagePayload,
    TypingStartPayload,
    TypingStopPayload,
    error_frame,
    outbound,
    parse_frame,
)
from src.core.realtime.manager import ConnectionManager
from src.core.realtime.presence import PresenceBroadcaster
from src.core.realtime.registry import ConnectionRegistry
from src.core.realtime.relay import MessageRelay, TypingRelay
from src.core.realtime.rooms import ChannelRouter
from src.utils.metrics import chat_events_total

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, BaseModel], Awaitable[None]]


class ChatDispatcher:
    """Routes decoded events to their handlers."""

    def __init__(
        self,
        manager: ConnectionManager,
        registry: ConnectionRegistry,
        router: ChannelRouter,
        broadcaster: PresenceBroadcaster,
        messages: MessageRelay,
        typing: TypingRelay,
    ):
        self._manager = manager
        self._registry = registry
        self._router = router
        self._broadcaster = broadcaster
        self._messages = messages
        self._typing = typing

        self._handlers: Dict[EventType, EventHandler] = {
            EventType.JOIN_USER: self._on_join_user,
            EventType.GET_ONLINE_USERS: self._on_get_online_users,
            EventType.SEND_MESSAGE: self._on_send_message,
            EventType.TYPING_START: self._on_typing_start,
            EventType.TYPING_STOP: self._on_typing_stop,
            EventType.MARK_READ: self._on_mark_read,
            EventType.PING: self._on_ping,
        }

    @property
    def handled_events(self) -> list:
        return list(self._handlers.keys())

    async def dispatch(self, connection_id: str, raw: str) -> bool:
        """Handle one inbound frame.

        Returns:
            True if the event was handled without error
        """
        self._manager.touch(connection_id)
        event_name: Optional[str] = None
        try:
            event = parse_frame(raw)
            event_name = event.event_type.value
            await self._handlers[event.event_type](connection_id, event.payload)
        except ChatError as e:
            chat_events_total.labels(event=event_name or "invalid", status="rejected").inc()
            logger.warning(
                f"Rejected event from {connection_id}: {e.message}",
                extra={"connection_id": connection_id, "event": event_name, "error_code": e.code.value},
            )
            await self._manager.send(connection_id, error_frame(e.code.value, e.message, event_name))
            return False
        except Exception:
            chat_events_total.labels(event=event_name or "invalid", status="error").inc()
            logger.exception(
                f"Handler error for {event_name} on {connection_id}",
                extra={"connection_id": connection_id, "event": event_name},
            )
            await self._manager.send(
                connection_id,
                error_frame(ErrorCode.INTERNAL_ERROR.value, "Internal error", event_name),
            )
            return False

        chat_events_total.labels(event=event_name, status="ok").inc()
        return True

    async def _on_join_user(self, connection_id: str, payload: JoinUserPayload) -> None:
        result = await self._registry.register(
            connection_id, payload.user_id, payload.role, payload.name
        )
        if result.replaced is not None and result.replaced_went_offline:
            await self._broadcaster.announce_offline(result.replaced)

        identity = result.identity
        self._router.assign(connection_id, identity.user_id, identity.role)
        await self._broadcaster.announce_online(connection_id, identity)

    async def _on_get_online_users(self, connection_id: str, payload: EmptyPayload) -> None:
        await self._broadcaster.send_snapshot(connection_id)

    async def _on_send_message(self, connection_id: str, payload: SendMessagePayload) -> None:
        identity = self._registry.identity_of(connection_id)
        if identity is not None:
            if payload.sender_id and payload.sender_id != identity.user_id:
                logger.warning(
                    f"senderId {payload.sender_id} differs from registered user {identity.user_id}",
                    extra={"connection_id": connection_id, "user_id": identity.user_id},
                )
            sender_id = identity.user_id
        else:
            sender_id = payload.sender_id
        if not sender_id:
            raise InvalidEvent("senderId is required before join-user", {"fields": ["senderId"]})

        await self._messages.send(
            connection_id,
            sender_id=sender_id,
            recipient_id=payload.recipient_id,
            chat_id=payload.chat_id,
            body=payload.message,
        )

    async def _on_typing_start(self, connection_id: str, payload: TypingStartPayload) -> None:
        identity = self._registry.identity_of(connection_id)
        user_id = identity.user_id if identity else payload.user_id
        name = identity.display_name if identity else (payload.user_name or payload.name)
        await self._typing.start_typing(payload.chat_id, user_id, name, payload.recipient_id)

    async def _on_typing_stop(self, connection_id: str, payload: TypingStopPayload) -> None:
        identity = self._registry.identity_of(connection_id)
        user_id = identity.user_id if identity else payload.user_id
        await self._typing.stop_typing(payload.chat_id, user_id, payload.recipient_id)

    async def _on_mark_read(self, connection_id: str, payload: MarkReadPayload) -> None:
        identity = self._registry.identity_of(connection_id)
        if identity is None:
            raise InvalidEvent("mark-read requires join-user first")
        await self._messages.mark_read(
            payload.chat_id, payload.message_id, identity.user_id, payload.recipient_id
        )

    async def _on_ping(self, connection_id: str, payload: EmptyPayload) -> None:
        await self._manager.send(connection_id, outbound(EventType.PONG, {"timestamp": time.time()}))
