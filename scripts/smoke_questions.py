#!/usr/bin/env python3
"""
Smoke Test — Questions & Conversations

Talks to a RUNNING chat-relay server over HTTP using `requests`.

Verifies:
  1. POST /questions without a session id starts a new session
  2. Re-using the session id keeps a single conversation
  3. GET /conversation/{id} and /conversation/{uuid} agree
  4. DELETE /message/{id} clears the conversation's last message
  5. DELETE /conversation/{id} removes the conversation

Run from the repository root after starting the server:

        CHATBOT_MODE=mock uvicorn chat_relay.main:app --port 8000
        python scripts/smoke_questions.py
"""

import os
import sys

import requests

BASE_URL = os.getenv("BASE_URL", "http://127.0.0.1:8000").rstrip("/")


def ask(question: str, session_id: str | None = None) -> dict:
    payload = {"question": question}
    if session_id:
        payload["sessionId"] = session_id
    r = requests.post(f"{BASE_URL}/questions", json=payload, timeout=30)
    r.raise_for_status()
    return r.json()


def get_json(path: str, **params) -> dict:
    r = requests.get(f"{BASE_URL}{path}", params=params, timeout=10)
    r.raise_for_status()
    return r.json()


def banner(title: str):
    print("=" * 60)
    print(title)
    print("=" * 60)


def main():
    print(f"[TEST] Base URL: {BASE_URL}\n")

    banner("TEST 1: New question starts a session")
    first = ask("Hello, how are you?")
    session_id = first["sessionId"]
    print(f"Session: {session_id}")
    print(f"Reply:   {first['message']}\n")

    banner("TEST 2: Follow-up stays in the same conversation")
    second = ask("And what can you do?", session_id=session_id)
    assert second["sessionId"] == session_id, "session id should be reused"
    listing = get_json("/conversation", sessionId=session_id)
    assert listing["meta"]["total"] == 1, f"expected 1 conversation, got {listing['meta']['total']}"
    print(f"✓ one conversation, last message: {listing['data'][0]['lastMessages']}\n")

    banner("TEST 3: Lookup by id and by uuid agree")
    by_uuid = get_json(f"/conversation/{session_id}")
    by_id = get_json(f"/conversation/{by_uuid['id']}")
    assert by_id == by_uuid, "lookups disagree"
    print(f"✓ conversation id={by_id['id']}\n")

    banner("TEST 4: Deleting the last message clears the pointer")
    r = requests.delete(f"{BASE_URL}/message/{by_id['messagesId']}", timeout=10)
    assert r.status_code == 204, f"expected 204, got {r.status_code}"
    cleared = get_json(f"/conversation/{session_id}")
    assert cleared["messagesId"] is None and cleared["lastMessage"] is None
    print("✓ last message cleared\n")

    banner("TEST 5: Deleting the conversation")
    r = requests.delete(f"{BASE_URL}/conversation/{by_id['id']}", timeout=10)
    assert r.status_code == 204, f"expected 204, got {r.status_code}"
    r = requests.get(f"{BASE_URL}/conversation/{session_id}", timeout=10)
    assert r.status_code == 404, f"expected 404, got {r.status_code}"
    print("✓ conversation gone\n")

    banner("ALL TESTS PASSED ✓")


if __name__ == "__main__":
    try:
        main()
    except (AssertionError, requests.RequestException) as e:
        print(f"[FAIL] {e}", file=sys.stderr)
        sys.exit(1)
