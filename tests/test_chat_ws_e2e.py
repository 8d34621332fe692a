"""End-to-end chat protocol tests over the real socket endpoint."""

from __future__ import annotations

import time

WS_PATH = "/api/v1/chat/ws"


def _emit(ws, event, data=None):
    ws.send_json({"event": event, "data": data or {}})


def _join(ws, user_id, role, name):
    _emit(ws, "join-user", {"userId": user_id, "role": role, "name": name})
    frame = ws.receive_json()
    assert frame["event"] == "online-users"
    return frame["data"]


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _active_connections(client):
    return client.get("/api/v1/chat/stats").json()["active_connections"]


def test_vendor_and_client_exchange_message(client):
    with client.websocket_connect(WS_PATH) as vendor, client.websocket_connect(WS_PATH) as shopper:
        _join(vendor, "V", "vendor", "Vera")
        snapshot = _join(shopper, "C", "client", "Cleo")
        assert {u["userId"] for u in snapshot} == {"V", "C"}

        _emit(shopper, "send-message", {"chatId": "s1", "senderId": "C", "recipientId": "V", "message": "hello"})
        confirmation = shopper.receive_json()

        online = vendor.receive_json()
        received = vendor.receive_json()

    assert online == {"event": "user-online", "data": {"userId": "C", "name": "Cleo", "role": "client"}}
    assert confirmation["event"] == "message-sent"
    assert received["event"] == "receive-message"
    assert received["data"]["senderId"] == "C"
    assert received["data"]["message"] == "hello"
    assert received["data"]["chatId"] == "s1"
    assert received["data"]["messageId"] == confirmation["data"]["messageId"]


def test_message_to_offline_vendor_is_pending(client):
    with client.websocket_connect(WS_PATH) as shopper:
        _join(shopper, "C", "client", "Cleo")

        _emit(shopper, "send-message", {"chatId": "s1", "senderId": "C", "recipientId": "V", "message": "hello"})
        reply = shopper.receive_json()

        assert reply["event"] == "message-pending"
        assert reply["data"]["messageId"].startswith("msg-")
        assert client.get("/api/v1/chat/presence/V").status_code == 404


def test_disconnect_without_join_broadcasts_nothing(client):
    with client.websocket_connect(WS_PATH) as shopper:
        _join(shopper, "C", "client", "Cleo")

        with client.websocket_connect(WS_PATH):
            assert _wait_for(lambda: _active_connections(client) == 2)
        assert _wait_for(lambda: _active_connections(client) == 1)

        # Frames reach a connection in emission order: the next one is the pong
        _emit(shopper, "ping")
        assert shopper.receive_json()["event"] == "pong"


def test_disconnect_after_join_broadcasts_offline(client):
    with client.websocket_connect(WS_PATH) as shopper:
        _join(shopper, "C", "client", "Cleo")

        with client.websocket_connect(WS_PATH) as vendor:
            _join(vendor, "V", "vendor", "Vera")
            assert shopper.receive_json()["event"] == "user-online"

        offline = shopper.receive_json()
        assert offline == {"event": "user-offline", "data": {"userId": "V", "name": "Vera", "role": "vendor"}}


def test_stale_connection_close_keeps_presence(client):
    with client.websocket_connect(WS_PATH) as newer:
        with client.websocket_connect(WS_PATH) as older:
            _join(older, "C", "client", "Cleo")
            _join(newer, "C", "client", "Cleo")

        assert _wait_for(lambda: _active_connections(client) == 1)
        response = client.get("/api/v1/chat/presence/C")
        assert response.status_code == 200
        assert response.json() == {"userId": "C", "name": "Cleo", "role": "client", "online": True}


def test_typing_start_then_stop(client):
    with client.websocket_connect(WS_PATH) as vendor, client.websocket_connect(WS_PATH) as shopper:
        _join(vendor, "V", "vendor", "Vera")
        _join(shopper, "C", "client", "Cleo")
        assert vendor.receive_json()["event"] == "user-online"

        _emit(shopper, "typing-start", {"chatId": "s1", "recipientId": "V"})
        _emit(shopper, "typing-stop", {"chatId": "s1", "recipientId": "V"})

        first = vendor.receive_json()
        second = vendor.receive_json()

    assert first == {"event": "user-typing", "data": {"chatId": "s1", "userId": "C", "name": "Cleo"}}
    assert second == {"event": "user-stop-typing", "data": {"chatId": "s1", "userId": "C"}}


def test_invalid_registration_reports_error(client):
    with client.websocket_connect(WS_PATH) as ws:
        _emit(ws, "join-user", {"userId": "C", "name": "Cleo"})
        error = ws.receive_json()

        assert error["event"] == "error"
        assert error["data"]["code"] == "INVALID_REGISTRATION"
        assert client.get("/api/v1/chat/presence/C").status_code == 404

        # The connection stays usable
        _join(ws, "C", "client", "Cleo")


def test_malformed_frame_keeps_connection_open(client):
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_text("{{{")
        assert ws.receive_json()["data"]["code"] == "INVALID_EVENT"

        _emit(ws, "ping")
        assert ws.receive_json()["event"] == "pong"


def test_online_users_endpoint(client):
    with client.websocket_connect(WS_PATH) as vendor:
        _join(vendor, "V", "vendor", "Vera")

        body = client.get("/api/v1/chat/online-users").json()

    assert body["total"] == 1
    assert body["users"] == [{"userId": "V", "name": "Vera", "role": "vendor", "online": True}]
