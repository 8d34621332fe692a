"""Tests for chat event decoding."""

from __future__ import annotations

import json

import pytest

from src.core.errors import ErrorCode, InvalidEvent, InvalidRegistration, UnknownEvent
from src.core.realtime.events import (
    EventType,
    JoinUserPayload,
    SendMessagePayload,
    TypingStartPayload,
    error_frame,
    outbound,
    parse_frame,
)


def _frame(event, data=None):
    return json.dumps({"event": event, "data": data})


class TestParseFrame:
    def test_join_user(self):
        event = parse_frame(_frame("join-user", {"userId": "u1", "role": "vendor", "name": "Vera"}))

        assert event.event_type is EventType.JOIN_USER
        assert isinstance(event.payload, JoinUserPayload)
        assert event.payload.user_id == "u1"
        assert event.payload.role == "vendor"
        assert event.payload.name == "Vera"

    def test_send_message_camel_case_keys(self):
        event = parse_frame(
            _frame("send-message", {"chatId": "s1", "senderId": "c1", "recipientId": "v1", "message": "hello"})
        )

        assert isinstance(event.payload, SendMessagePayload)
        assert event.payload.chat_id == "s1"
        assert event.payload.sender_id == "c1"
        assert event.payload.recipient_id == "v1"
        assert event.payload.message == "hello"

    def test_message_body_keeps_whitespace(self):
        event = parse_frame(_frame("send-message", {"chatId": "s1", "recipientId": "v1", "message": "  hi  "}))
        assert event.payload.message == "  hi  "

    @pytest.mark.parametrize("alias,canonical", [
        ("typing", EventType.TYPING_START),
        ("stop-typing", EventType.TYPING_STOP),
    ])
    def test_typing_aliases(self, alias, canonical):
        event = parse_frame(_frame(alias, {"chatId": "s1", "recipientId": "v1"}))
        assert event.event_type is canonical

    def test_typing_accepts_user_name(self):
        event = parse_frame(_frame("typing-start", {"chatId": "s1", "recipientId": "v1", "userName": "Cleo"}))
        assert isinstance(event.payload, TypingStartPayload)
        assert event.payload.user_name == "Cleo"

    def test_missing_data_treated_as_empty(self):
        event = parse_frame(json.dumps({"event": "ping"}))
        assert event.event_type is EventType.PING

    def test_invalid_json(self):
        with pytest.raises(InvalidEvent, match="Invalid JSON"):
            parse_frame("not json")

    def test_non_object_frame(self):
        with pytest.raises(InvalidEvent):
            parse_frame("[1, 2]")

    def test_missing_event_name(self):
        with pytest.raises(InvalidEvent, match="Missing event name"):
            parse_frame(json.dumps({"data": {}}))

    def test_unknown_event(self):
        with pytest.raises(UnknownEvent) as exc:
            parse_frame(_frame("launch-rocket"))
        assert exc.value.code is ErrorCode.UNKNOWN_EVENT

    def test_server_event_rejected_inbound(self):
        with pytest.raises(UnknownEvent):
            parse_frame(_frame("receive-message", {}))

    def test_data_must_be_object(self):
        with pytest.raises(InvalidEvent):
            parse_frame(json.dumps({"event": "ping", "data": "x"}))

    @pytest.mark.parametrize("data", [
        {"role": "vendor", "name": "Vera"},
        {"userId": "u1", "name": "Vera"},
        {"userId": "u1", "role": "vendor"},
        {"userId": "  ", "role": "vendor", "name": "Vera"},
        {"userId": "u1", "role": "admin", "name": "Vera"},
    ])
    def test_join_user_invalid_is_invalid_registration(self, data):
        with pytest.raises(InvalidRegistration) as exc:
            parse_frame(_frame("join-user", data))
        assert exc.value.code is ErrorCode.INVALID_REGISTRATION

    def test_send_message_missing_recipient(self):
        with pytest.raises(InvalidEvent) as exc:
            parse_frame(_frame("send-message", {"chatId": "s1", "message": "hello"}))
        assert "recipientId" in exc.value.details["fields"]

    def test_send_message_empty_body(self):
        with pytest.raises(InvalidEvent):
            parse_frame(_frame("send-message", {"chatId": "s1", "recipientId": "v1", "message": ""}))


class TestOutbound:
    def test_outbound_shape(self):
        assert outbound(EventType.PONG, {"a": 1}) == {"event": "pong", "data": {"a": 1}}

    def test_error_frame(self):
        frame = error_frame("INVALID_EVENT", "bad", "send-message")
        assert frame["event"] == "error"
        assert frame["data"]["code"] == "INVALID_EVENT"
        assert frame["data"]["event"] == "send-message"
