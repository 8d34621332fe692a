"""Tests for event dispatch and the per-event error boundary."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from src.core.realtime.events import EventType


class TestDispatchTable:
    def test_every_inbound_event_has_a_handler(self, hub):
        assert set(hub.dispatcher.handled_events) == {
            EventType.JOIN_USER,
            EventType.GET_ONLINE_USERS,
            EventType.SEND_MESSAGE,
            EventType.TYPING_START,
            EventType.TYPING_STOP,
            EventType.MARK_READ,
            EventType.PING,
        }


class TestDispatch:
    @pytest.mark.asyncio
    async def test_ping_pong(self, chat):
        conn_id, ws = await chat.open()

        assert await chat.emit(conn_id, "ping")

        assert chat.event_names(ws) == ["pong"]

    @pytest.mark.asyncio
    async def test_invalid_json_answered_with_error(self, chat, hub):
        conn_id, ws = await chat.open()

        assert await hub.handle(conn_id, "{not json") is False

        error = chat.events(ws, "error")[0]
        assert error["code"] == "INVALID_EVENT"
        assert error["event"] is None

    @pytest.mark.asyncio
    async def test_unknown_event_answered_with_error(self, chat):
        conn_id, ws = await chat.open()

        assert await chat.emit(conn_id, "launch-rocket") is False

        assert chat.events(ws, "error")[0]["code"] == "UNKNOWN_EVENT"

    @pytest.mark.asyncio
    async def test_invalid_registration_rejected_without_side_effect(self, chat, hub):
        _, vendor_ws = await chat.join("v1", role="vendor")
        conn_id, ws = await chat.open()

        ok = await chat.emit(conn_id, "join-user", {"userId": "c1", "name": "Cleo"})

        assert ok is False
        assert chat.events(ws, "error")[0]["code"] == "INVALID_REGISTRATION"
        assert hub.registry.identity_of(conn_id) is None
        assert await hub.registry.lookup_by_user("c1") is None
        assert hub.router.channels_of(conn_id) == set()
        assert chat.events(vendor_ws, "user-online") == []

    @pytest.mark.asyncio
    async def test_handler_crash_is_contained(self, chat, hub):
        _, vendor_ws = await chat.join("v1", role="vendor")
        conn_id, ws = await chat.join("c1")

        with patch.object(hub.messages, "send", AsyncMock(side_effect=RuntimeError("boom"))):
            ok = await chat.emit(conn_id, "send-message", {"chatId": "s1", "recipientId": "v1", "message": "hi"})

        assert ok is False
        error = chat.events(ws, "error")[0]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["event"] == "send-message"

        # The hub keeps serving the same and other connections
        assert await chat.emit(conn_id, "send-message", {"chatId": "s1", "recipientId": "v1", "message": "again"})
        assert len(chat.events(vendor_ws, "receive-message")) == 1

    @pytest.mark.asyncio
    async def test_error_frame_write_failure_does_not_raise(self, chat, hub):
        conn_id, ws = await chat.open()
        ws.send_json.side_effect = RuntimeError("socket gone")

        assert await hub.handle(conn_id, "garbage") is False

    @pytest.mark.asyncio
    async def test_dispatch_records_activity(self, chat, hub):
        conn_id, _ = await chat.open()
        before = hub.manager.get_stats()["total_frames_received"]

        await chat.emit(conn_id, "ping")

        assert hub.manager.get_stats()["total_frames_received"] == before + 1
