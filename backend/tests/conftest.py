"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from bruinmarket.auth.service import create_access_token
from bruinmarket.chat.hub import set_hub
from bruinmarket.config import AppSettings, DatabaseSettings, set_config
from bruinmarket.main import app
from bruinmarket.messages.service import MessageStore


@pytest.fixture(autouse=True)
def test_config():
    """Use in-memory storage and a fresh hub for every test."""
    config = AppSettings(database=DatabaseSettings(path=":memory:"))
    set_config(config)
    MessageStore.reset_instance()
    set_hub(None)
    yield config
    MessageStore.reset_instance()
    set_hub(None)
    set_config(None)


@pytest.fixture
def api_client():
    """Provide a TestClient with the app lifespan running.

    Entering the client keeps every WebSocket on one event loop, which the
    hub relies on to hand frames between sessions.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers():
    """Build a bearer header for a user id."""
    def _headers(user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}
    return _headers
