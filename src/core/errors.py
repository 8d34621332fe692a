"""Shared error codes and exceptions for the realtime chat layer.

Error codes travel to clients inside ``error`` frames, so their string
values are part of the wire protocol.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INVALID_REGISTRATION = "INVALID_REGISTRATION"  # join-user missing/invalid identity
    INVALID_EVENT = "INVALID_EVENT"  # malformed frame or payload
    UNKNOWN_EVENT = "UNKNOWN_EVENT"  # event name not part of the protocol
    TRANSPORT_ERROR = "TRANSPORT_ERROR"  # socket write failed
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ChatError(Exception):
    """Base class for errors raised while handling a single chat event."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidRegistration(ChatError):
    """join-user was missing userId, role or name (or carried an unknown role)."""

    code = ErrorCode.INVALID_REGISTRATION


class InvalidEvent(ChatError):
    """A frame could not be decoded into a known event with a valid payload."""

    code = ErrorCode.INVALID_EVENT


class UnknownEvent(InvalidEvent):
    code = ErrorCode.UNKNOWN_EVENT


class TransportError(ChatError):
    """Writing a frame to a connection failed; the frame is lost."""

    code = ErrorCode.TRANSPORT_ERROR


__all__ = [
    "ErrorCode",
    "ChatError",
    "InvalidRegistration",
    "InvalidEvent",
    "UnknownEvent",
    "TransportError",
]
