"""API dependencies."""

from fastapi import Header, HTTPException, Request

from src.core.config import Settings, get_settings
from src.core.realtime.hub import ChatHub


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


async def get_api_key(
    request: Request,
    x_api_key: str = Header(default="", alias="X-API-Key"),
) -> str:
    """Check X-API-Key against API_KEY; open when API_KEY is unset."""
    expected = get_app_settings(request).API_KEY
    if not expected:
        return x_api_key
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing API Key")
    if x_api_key != expected:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return x_api_key


def get_chat_hub(request: Request) -> ChatHub:
    hub = getattr(request.app.state, "chat_hub", None)
    if hub is None:
        raise HTTPException(status_code=503, detail="Chat hub not started")
    return hub
