import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from chat_relay import chatbot
from chat_relay.db_store import DatabaseStore
from chat_relay.main import app, get_store
from chat_relay.models import get_session_factory, init_db
from chat_relay.settings import get_settings

CHATBOT_URL = "http://chatbot.test/send-message"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body_is_json=True):
        self.status_code = status_code
        self._payload = payload
        self._body_is_json = body_is_json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error", response=self)

    def json(self):
        if not self._body_is_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeChatbot:
    """Stands in for requests.post inside chat_relay.chatbot"""

    def __init__(self):
        self.calls = []
        self.response = FakeResponse(payload={"message": "Hello from the bot"})
        self.error = None

    def reply_with(self, message):
        self.respond(payload={"message": message})

    def respond(self, status_code=200, payload=None, body_is_json=True):
        self.response = FakeResponse(status_code, payload, body_is_json)

    def __call__(self, url, json=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("CHATBOT_MODE", "live")
    monkeypatch.setenv("CHATBOT_API_URL", CHATBOT_URL)
    monkeypatch.setenv("CHATBOT_TIMEOUT_SECONDS", "2.5")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_chatbot(monkeypatch):
    fake = FakeChatbot()
    monkeypatch.setattr(chatbot.requests, "post", fake)
    return fake


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return DatabaseStore(session_factory)


@pytest.fixture
def client(store, fake_chatbot):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
