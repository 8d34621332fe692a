"""Realtime chat event protocol.

Every frame is a JSON object ``{"event": <name>, "data": {...}}``. Inbound
frames decode into an :class:`InboundEvent` whose ``payload`` is the
pydantic model registered for that event kind.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from src.core.errors import InvalidEvent, InvalidRegistration, UnknownEvent


class EventType(str, Enum):
    """Event names carried on the chat socket."""

    # Client -> Server
    JOIN_USER = "join-user"
    GET_ONLINE_USERS = "get-online-users"
    SEND_MESSAGE = "send-message"
    TYPING_START = "typing-start"
    TYPING_STOP = "typing-stop"
    MARK_READ = "mark-read"
    PING = "ping"

    # Server -> Client
    ONLINE_USERS = "online-users"
    USER_ONLINE = "user-online"
    USER_OFFLINE = "user-offline"
    RECEIVE_MESSAGE = "receive-message"
    MESSAGE_SENT = "message-sent"
    MESSAGE_PENDING = "message-pending"
    USER_TYPING = "user-typing"
    USER_STOP_TYPING = "user-stop-typing"
    MESSAGE_READ = "message-read"
    PONG = "pong"
    ERROR = "error"


# Older clients emit these names for the typing signals
EVENT_ALIASES: Dict[str, EventType] = {
    "typing": EventType.TYPING_START,
    "stop-typing": EventType.TYPING_STOP,
}

Role = Literal["vendor", "client"]
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EmptyPayload(_Payload):
    pass


class JoinUserPayload(_Payload):
    user_id: NonEmptyStr = Field(alias="userId")
    role: Role
    name: NonEmptyStr


class SendMessagePayload(_Payload):
    chat_id: NonEmptyStr = Field(alias="chatId")
    recipient_id: NonEmptyStr = Field(alias="recipientId")
    message: str = Field(min_length=1)
    sender_id: Optional[str] = Field(default=None, alias="senderId")


class TypingStartPayload(_Payload):
    chat_id: NonEmptyStr = Field(alias="chatId")
    recipient_id: NonEmptyStr = Field(alias="recipientId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    user_name: Optional[str] = Field(default=None, alias="userName")
    name: Optional[str] = None


class TypingStopPayload(_Payload):
    chat_id: NonEmptyStr = Field(alias="chatId")
    recipient_id: NonEmptyStr = Field(alias="recipientId")
    user_id: Optional[str] = Field(default=None, alias="userId")


class MarkReadPayload(_Payload):
    chat_id: NonEmptyStr = Field(alias="chatId")
    message_id: NonEmptyStr = Field(alias="messageId")
    recipient_id: NonEmptyStr = Field(alias="recipientId")


PAYLOAD_MODELS: Dict[EventType, Type[_Payload]] = {
    EventType.JOIN_USER: JoinUserPayload,
    EventType.GET_ONLINE_USERS: EmptyPayload,
    EventType.SEND_MESSAGE: SendMessagePayload,
    EventType.TYPING_START: TypingStartPayload,
    EventType.TYPING_STOP: TypingStopPayload,
    EventType.MARK_READ: MarkReadPayload,
    EventType.PING: EmptyPayload,
}


@dataclass
class InboundEvent:
    """A decoded client->server event."""

    event_type: EventType
    payload: BaseModel


def resolve_event_name(name: Any) -> EventType:
    """Map a wire event name (or alias) to an inbound :class:`EventType`."""
    if not isinstance(name, str) or not name:
        raise InvalidEvent("Missing event name")
    if name in EVENT_ALIASES:
        return EVENT_ALIASES[name]
    try:
        event_type = EventType(name)
    except ValueError:
        raise UnknownEvent(f"Unknown event: {name}", {"event": name})
    if event_type not in PAYLOAD_MODELS:
        # server->client names are not accepted inbound
        raise UnknownEvent(f"Unknown event: {name}", {"event": name})
    return event_type


def parse_frame(raw: str) -> InboundEvent:
    """Decode one text frame.

    Raises:
        InvalidEvent: bad JSON, unknown event or invalid payload
        InvalidRegistration: invalid ``join-user`` payload
    """
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        raise InvalidEvent("Invalid JSON")

    if not isinstance(frame, dict):
        raise InvalidEvent("Frame must be a JSON object")

    event_type = resolve_event_name(frame.get("event"))
    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise InvalidEvent("Event data must be an object", {"event": event_type.value})

    model = PAYLOAD_MODELS[event_type]
    try:
        payload = model.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        details = {"event": event_type.value, "fields": fields}
        if event_type is EventType.JOIN_USER:
            raise InvalidRegistration("userId, role and name are required", details)
        raise InvalidEvent(f"Invalid payload for {event_type.value}", details)

    return InboundEvent(event_type=event_type, payload=payload)


def outbound(event: EventType, data: Any) -> Dict[str, Any]:
    """Build a server->client frame."""
    return {"event": event.value, "data": data}


def error_frame(code: str, message: str, event: Optional[str] = None) -> Dict[str, Any]:
    return outbound(
        EventType.ERROR,
        {"code": code, "error": message, "event": event, "timestamp": time.time()},
    )
