import uuid

import requests

from chat_relay.chatbot import FALLBACK_MESSAGE
from chat_relay.models import Conversation, Message
from chat_relay.schemas import is_uuid
from chat_relay.settings import get_settings


def _counts(session_factory):
    with session_factory() as db:
        return db.query(Conversation).count(), db.query(Message).count()


def test_new_question_creates_session_and_two_messages(client, session_factory, fake_chatbot):
    resp = client.post("/questions", json={"question": "  Hello, how are you?  "})

    assert resp.status_code == 200
    body = resp.json()
    assert is_uuid(body["sessionId"])
    assert body["message"] == "Hello from the bot"
    assert resp.headers["x-session-id"] == body["sessionId"]
    assert "x-request-id" in resp.headers

    assert _counts(session_factory) == (1, 2)
    with session_factory() as db:
        senders = [(m.sender_type, m.message) for m in db.query(Message).order_by(Message.id)]
        conv = db.query(Conversation).one()
    assert senders == [("user", "Hello, how are you?"), ("bot", "Hello from the bot")]
    assert conv.session_id == body["sessionId"]
    assert conv.last_messages == "Hello from the bot"

    # the chatbot sees the trimmed question under the same session id
    assert fake_chatbot.calls == [{
        "url": "http://chatbot.test/send-message",
        "json": {"session_id": body["sessionId"], "message": "Hello, how are you?"},
        "timeout": 2.5,
    }]


def test_each_new_session_gets_a_fresh_uuid(client):
    first = client.post("/questions", json={"question": "one"}).json()["sessionId"]
    second = client.post("/questions", json={"question": "two"}).json()["sessionId"]
    assert first != second


def test_existing_session_reuses_conversation(client, session_factory, fake_chatbot):
    session_id = client.post("/questions", json={"question": "first"}).json()["sessionId"]

    fake_chatbot.reply_with("second answer")
    resp = client.post("/questions", json={"question": "second", "sessionId": session_id})

    assert resp.status_code == 200
    assert resp.json() == {"sessionId": session_id, "message": "second answer"}
    assert _counts(session_factory) == (1, 4)
    with session_factory() as db:
        conv = db.query(Conversation).one()
        newest_bot = db.query(Message).order_by(Message.id.desc()).first()
    assert conv.messages_id == newest_bot.id
    assert conv.last_messages == "second answer"


def test_unseen_valid_session_id_is_adopted(client, store):
    supplied = str(uuid.uuid4())

    resp = client.post("/questions", json={"question": "hi", "sessionId": supplied})

    assert resp.status_code == 200
    assert resp.json()["sessionId"] == supplied
    assert store.find_by_session_id(supplied) is not None


def test_blank_session_id_starts_new_session(client):
    resp = client.post("/questions", json={"question": "hi", "sessionId": "   "})
    assert resp.status_code == 200
    assert is_uuid(resp.json()["sessionId"])


def test_chatbot_server_error_falls_back(client, store, fake_chatbot):
    fake_chatbot.respond(status_code=500, payload={"error": "boom"})

    resp = client.post("/questions", json={"question": "anyone there?"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == FALLBACK_MESSAGE
    conv = store.find_by_session_id(body["sessionId"])
    assert conv["lastMessage"]["senderType"] == "bot"
    assert conv["lastMessage"]["message"] == FALLBACK_MESSAGE


def test_chatbot_timeout_falls_back(client, session_factory, fake_chatbot):
    fake_chatbot.error = requests.Timeout("read timed out")

    resp = client.post("/questions", json={"question": "slow?"})

    assert resp.status_code == 200
    assert resp.json()["message"] == FALLBACK_MESSAGE
    with session_factory() as db:
        bot = db.query(Message).filter(Message.sender_type == "bot").one()
    assert bot.message == FALLBACK_MESSAGE


def test_missing_question_is_400(client, session_factory):
    resp = client.post("/questions", json={})

    assert resp.status_code == 400
    fields = [e["field"] for e in resp.json()["errors"]]
    assert fields == ["question"]
    assert _counts(session_factory) == (0, 0)


def test_blank_question_is_400(client):
    resp = client.post("/questions", json={"question": "   "})
    assert resp.status_code == 400
    assert resp.json()["errors"][0]["field"] == "question"


def test_malformed_session_id_is_400(client, session_factory):
    resp = client.post("/questions", json={"question": "hi", "sessionId": "not-a-uuid"})

    assert resp.status_code == 400
    errors = resp.json()["errors"]
    assert errors[0]["field"] == "sessionId"
    assert "UUID" in errors[0]["message"]
    assert _counts(session_factory) == (0, 0)


def test_storage_failure_is_500(client, store, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(store, "create_message", broken)

    resp = client.post("/questions", json={"question": "hi"})

    assert resp.status_code == 500
    assert resp.json() == {"message": "An unexpected error occurred.", "error": "database is gone"}


def test_storage_failure_hides_detail_in_production(client, store, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    get_settings.cache_clear()

    def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(store, "create_message", broken)

    resp = client.post("/questions", json={"question": "hi"})

    assert resp.status_code == 500
    assert resp.json() == {"message": "An unexpected error occurred."}


def test_internal_error_keeps_request_id(client, store, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(store, "find_by_session_id", broken)
    session_id = str(uuid.uuid4())

    resp = client.post(
        "/questions",
        json={"question": "hi", "sessionId": session_id},
        headers={"x-session-id": session_id},
    )

    assert resp.status_code == 500
    assert "x-request-id" in resp.headers
    assert resp.headers["x-session-id"] == session_id
