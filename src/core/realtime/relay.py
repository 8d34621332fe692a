"""Message and typing relays.

The relay only transports envelopes. Chat history and unread counters are
persisted by the HTTP layer, which stays the system of record; a message
reported as pending is never queued or retried here.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from src.core.realtime.events import EventType, outbound
from src.core.realtime.manager import ConnectionManager
from src.core.realtime.registry import ConnectionRegistry
from src.core.realtime.rooms import ChannelRouter, personal_channel
from src.utils.metrics import chat_messages_total

logger = logging.getLogger(__name__)


def new_message_id() -> str:
    return f"msg-{uuid.uuid4().hex}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MessageEnvelope:
    """One chat message in transit."""

    message_id: str
    chat_id: str
    sender_id: str
    recipient_id: str
    body: str
    timestamp: datetime
    sender_name: Optional[str] = None
    sender_role: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messageId": self.message_id,
            "chatId": self.chat_id,
            "senderId": self.sender_id,
            "senderName": self.sender_name,
            "senderRole": self.sender_role,
            "recipientId": self.recipient_id,
            "message": self.body,
            "timestamp": self.timestamp.isoformat(),
        }


class MessageRelay:
    """Routes chat messages to the recipient's personal channel."""

    def __init__(
        self,
        manager: ConnectionManager,
        registry: ConnectionRegistry,
        router: ChannelRouter,
        id_factory: Callable[[], str] = new_message_id,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._manager = manager
        self._registry = registry
        self._router = router
        self._id_factory = id_factory
        self._clock = clock

    async def send(
        self,
        connection_id: str,
        sender_id: str,
        recipient_id: str,
        chat_id: str,
        body: str,
    ) -> MessageEnvelope:
        """Stamp a message and deliver it, or report it pending.

        Online recipient: ``receive-message`` to the recipient's personal
        channel and ``message-sent`` back to the sending connection.
        Offline or unknown recipient, or one whose presence record no local
        connection answers for: ``message-pending`` back to the sending
        connection only. Each call yields a new message id.
        """
        identity = self._registry.identity_of(connection_id)
        envelope = MessageEnvelope(
            message_id=self._id_factory(),
            chat_id=chat_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            body=body,
            timestamp=self._clock(),
            sender_name=identity.display_name if identity else None,
            sender_role=identity.role if identity else None,
        )
        log_extra = {
            "connection_id": connection_id,
            "chat_id": chat_id,
            "message_id": envelope.message_id,
            "recipient_id": recipient_id,
        }

        payload = envelope.to_dict()
        reached = 0
        record = await self._registry.lookup_by_user(recipient_id)
        if record is not None:
            reached = await self._manager.send_many(
                self._router.members(personal_channel(recipient_id)),
                outbound(EventType.RECEIVE_MESSAGE, payload),
            )
            if reached == 0:
                # Record owned by another node or a dead process
                logger.warning(
                    f"Presence lists {recipient_id} but no local connection took the message",
                    extra=log_extra,
                )

        if reached == 0:
            await self._manager.send(
                connection_id,
                outbound(
                    EventType.MESSAGE_PENDING,
                    {
                        "messageId": envelope.message_id,
                        "chatId": chat_id,
                        "timestamp": envelope.timestamp.isoformat(),
                    },
                ),
            )
            chat_messages_total.labels(outcome="pending").inc()
            logger.info(f"Message pending, {recipient_id} offline", extra={**log_extra, "outcome": "pending"})
            return envelope

        await self._manager.send(connection_id, outbound(EventType.MESSAGE_SENT, payload))
        chat_messages_total.labels(outcome="delivered").inc()
        logger.info(f"Message delivered to {recipient_id}", extra={**log_extra, "outcome": "delivered"})
        return envelope

    async def mark_read(
        self,
        chat_id: str,
        message_id: str,
        reader_id: str,
        recipient_id: str,
    ) -> int:
        """Tell the original sender that ``reader_id`` has read a message."""
        return await self._manager.send_many(
            self._router.members(personal_channel(recipient_id)),
            outbound(
                EventType.MESSAGE_READ,
                {"chatId": chat_id, "messageId": message_id, "userId": reader_id},
            ),
        )


class TypingRelay:
    """Forwards typing signals. Nothing is stored, timed or coalesced."""

    def __init__(self, manager: ConnectionManager, router: ChannelRouter):
        self._manager = manager
        self._router = router

    async def start_typing(
        self,
        chat_id: str,
        user_id: Optional[str],
        display_name: Optional[str],
        recipient_id: str,
    ) -> int:
        return await self._manager.send_many(
            self._router.members(personal_channel(recipient_id)),
            outbound(
                EventType.USER_TYPING,
                {"chatId": chat_id, "userId": user_id, "name": display_name},
            ),
        )

    async def stop_typing(self, chat_id: str, user_id: Optional[str], recipient_id: str) -> int:
        return await self._manager.send_many(
            self._router.members(personal_channel(recipient_id)),
            outbound(EventType.USER_STOP_TYPING, {"chatId": chat_id, "userId": user_id}),
        )
