"""Realtime chat endpoints.

Provides endpoints for:
- The chat socket (named JSON events)
- Presence lookups
- Connection statistics
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from src.api.dependencies import get_api_key, get_chat_hub
from src.core.realtime.hub import ChatHub

logger = logging.getLogger(__name__)
router = APIRouter(tags=["chat"])


class OnlineUser(BaseModel):
    userId: str
    name: str
    role: str
    online: bool = True


class OnlineUsersResponse(BaseModel):
    total: int
    users: List[OnlineUser]


class ChatStatsResponse(BaseModel):
    active_connections: int
    registered_connections: int
    users_registered_locally: int
    users_online: int
    total_channels: int
    channels_by_type: Dict[str, int]
    total_connections: int
    total_frames_sent: int
    total_frames_received: int
    total_send_failures: int


@router.websocket("/ws")
async def chat_websocket(websocket: WebSocket) -> None:
    """Chat socket.

    Frames are JSON objects ``{"event": name, "data": {...}}``:
    - Register: {"event": "join-user", "data": {"userId", "role", "name"}}
    - Send: {"event": "send-message", "data": {"chatId", "recipientId", "message"}}
    - Typing: {"event": "typing-start" | "typing-stop", "data": {"chatId", "recipientId"}}
    - Read receipt: {"event": "mark-read", "data": {"chatId", "messageId", "recipientId"}}
    - Presence: {"event": "get-online-users"}
    - Ping: {"event": "ping"}
    """
    hub: ChatHub = websocket.app.state.chat_hub
    connection_id = await hub.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            await hub.handle(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"Chat socket closed by client: {connection_id}", extra={"connection_id": connection_id})
    except Exception as e:
        logger.error(f"Chat socket error on {connection_id}: {e}", extra={"connection_id": connection_id})
    finally:
        try:
            await hub.disconnect(connection_id)
        except Exception:
            logger.exception(f"Cleanup failed for {connection_id}", extra={"connection_id": connection_id})


@router.get("/online-users", response_model=OnlineUsersResponse)
async def list_online_users(hub: ChatHub = Depends(get_chat_hub)) -> OnlineUsersResponse:
    """Users with a live registered chat connection."""
    users = await hub.presence.snapshot()
    return OnlineUsersResponse(total=len(users), users=[OnlineUser(**u) for u in users])


@router.get("/presence/{user_id}", response_model=OnlineUser)
async def get_presence(user_id: str, hub: ChatHub = Depends(get_chat_hub)) -> OnlineUser:
    record = await hub.registry.lookup_by_user(user_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} is offline")
    return OnlineUser(**record.to_dict())


@router.get("/stats", response_model=ChatStatsResponse)
async def get_chat_stats(
    hub: ChatHub = Depends(get_chat_hub),
    api_key: str = Depends(get_api_key),
) -> ChatStatsResponse:
    """Connection and traffic statistics."""
    stats: Dict[str, Any] = await hub.get_stats()
    return ChatStatsResponse(**stats)
