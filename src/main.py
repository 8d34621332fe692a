"""
Marketplace Chat - realtime service entrypoint.
Presence-aware message routing between vendors and clients.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from prometheus_client import make_asgi_app

from src.api import api_router
from src.core.config import Settings, get_settings
from src.core.realtime.hub import ChatHub
from src.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME}...")
        app.state.chat_hub = ChatHub.from_settings(settings)

        yield

        logger.info(f"Shutting down {settings.APP_NAME}...")
        await app.state.chat_hub.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Realtime chat between marketplace vendors and clients",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

    app.include_router(api_router, prefix="/api")
    app.mount("/metrics", make_asgi_app())

    @app.get("/")
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs",
            "health": "/health",
            "chat_socket": "/api/v1/chat/ws",
        }

    @app.get("/health")
    async def health_check():
        hub = getattr(app.state, "chat_hub", None)
        return {
            "status": "healthy" if hub is not None else "starting",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {
                "api": "up",
                "chat": "up" if hub is not None else "down",
                "presence_backend": settings.PRESENCE_BACKEND,
            },
            "runtime": {
                "python_version": sys.version.split(" ")[0],
                "active_connections": len(hub.manager.connection_ids()) if hub else 0,
            },
        }

    return app


setup_logging(get_settings().LOG_LEVEL, get_settings().LOG_JSON)
app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=settings.WORKERS,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )
