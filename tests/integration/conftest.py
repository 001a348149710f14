"""
Shared fixtures for API integration tests.

The application is built with create_app() around a RedisStore whose
engine talks to the in-memory FakeRedis from the top-level conftest.
"""

import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from main import create_app
from session.codec import CookieCodec
from session.redis_store import RedisStore

ADMIN_TOKEN = "admin-token"
COOKIE_NAME = "session-key"


@pytest.fixture
def app_settings():
    """Development settings with an admin token and a fixed cookie name."""
    return Settings(
        environment="development",
        session_secret_keys=["secret-key"],
        session_cookie_name=COOKIE_NAME,
        session_admin_token=ADMIN_TOKEN,
        log_level="WARNING",
    )


@pytest.fixture
def session_store(engine, app_settings):
    """Store built from the settings, on the fake Redis engine."""
    return RedisStore(
        engine,
        CookieCodec(app_settings.session_key_pairs()),
        options=app_settings.session_options(),
    )


@pytest.fixture
def app(app_settings, session_store):
    return create_app(settings=app_settings, store=session_store)


@pytest.fixture
def client(app):
    """Test client without lifespan; the injected store needs no connect."""
    return TestClient(app)


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
