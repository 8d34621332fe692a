import os

import pytest
from fastapi.testclient import TestClient

from src.core.config import Settings, reset_settings

# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "API_KEY",
    "PRESENCE_BACKEND",
    "REDIS_URL",
    "PRESENCE_REDIS_KEY",
    "LOG_LEVEL",
    "LOG_JSON",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def app_settings() -> Settings:
    return Settings(PRESENCE_BACKEND="memory", API_KEY="")


@pytest.fixture
def client(app_settings):
    """A TestClient with the lifespan running and a fresh chat hub."""
    from src.main import create_app

    with TestClient(create_app(app_settings)) as test_client:
        yield test_client
