import logging
import uuid
from typing import Optional, Tuple

from chat_relay.chatbot import answer_or_fallback
from chat_relay.db_store import DatabaseStore
from chat_relay.models import MAX_PRIMARY_KEY, SENDER_BOT, SENDER_USER
from chat_relay.schemas import is_uuid

logger = logging.getLogger(__name__)


def resolve_conversation(store: DatabaseStore, session_id: Optional[str]) -> dict:
    """Find the conversation for session_id, creating it when unseen.

    A well-formed but unknown session id is kept as-is rather than replaced.
    """
    if session_id:
        conversation = store.find_by_session_id(session_id)
        if conversation:
            return conversation
    else:
        session_id = str(uuid.uuid4())

    conversation = store.create_conversation(session_id)
    logger.info("Started conversation id=%s session_id=%s", conversation["id"], session_id)
    return conversation


def submit_question(
    store: DatabaseStore, question: str, session_id: Optional[str] = None
) -> Tuple[str, str]:
    """Persist a question, relay it to the chatbot and persist the answer.

    Returns (session_id, answer). Chatbot failures never raise here.
    """
    conversation = resolve_conversation(store, session_id)
    current_session_id = conversation["sessionId"]

    # store user message once
    store.create_message(SENDER_USER, question)

    answer = answer_or_fallback(current_session_id, question)

    bot_message = store.create_message(SENDER_BOT, answer)
    store.set_last_message(conversation["id"], bot_message)

    return current_session_id, answer


def get_conversation(store: DatabaseStore, id_or_session_id: str) -> Optional[dict]:
    if is_uuid(id_or_session_id):
        return store.find_by_session_id(id_or_session_id.lower())
    if id_or_session_id.isascii() and id_or_session_id.isdigit():
        conversation_id = int(id_or_session_id)
        if conversation_id <= MAX_PRIMARY_KEY:
            return store.find_by_id(conversation_id)
    return None


def list_conversations(
    store: DatabaseStore, session_id: Optional[str] = None, page: int = 1, limit: int = 10
) -> dict:
    if session_id:
        session_id = session_id.strip().lower()
    return store.list_conversations(session_id=session_id, page=page, limit=limit)


def delete_conversation(store: DatabaseStore, conversation_id: int) -> bool:
    return store.delete_conversation(conversation_id)


def delete_message(store: DatabaseStore, message_id: int) -> bool:
    return store.delete_message(message_id)
