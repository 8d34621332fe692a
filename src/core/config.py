"""Runtime settings for the marketplace chat service."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "Marketplace Chat"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"  # nosec B104
    PORT: int = 8000
    WORKERS: int = 1  # presence is process-local unless PRESENCE_BACKEND=redis
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Web settings
    CORS_ORIGINS: list[str] = ["*"]
    ALLOWED_HOSTS: list[str] = ["*"]

    # Presence store backend (memory|redis)
    PRESENCE_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"
    PRESENCE_REDIS_KEY: str = "chat:presence"

    # Admin/read-only HTTP endpoints
    API_KEY: str = ""

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
