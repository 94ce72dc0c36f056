import logging

import requests

from chat_relay.settings import get_settings

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Sorry, I could not get a response from the chatbot at this time."


class ChatbotError(Exception):
    """The external chatbot could not produce an answer"""


def _mock_reply(session_id: str, question: str) -> str:
    return f"[MOCK CHATBOT] Session={session_id} | Replying to: {question.strip()}"


def ask_chatbot(session_id: str, question: str) -> str:
    """
    Send a question to the external chatbot API and return its answer.

    The API takes {"session_id", "message"} and answers with a JSON object
    carrying the reply in "message". Transport errors, timeouts, non-2xx
    statuses and any other response shape raise ChatbotError.
    """
    settings = get_settings()

    if settings.chatbot_mode == "mock":
        return _mock_reply(session_id, question)

    try:
        response = requests.post(
            settings.chatbot_api_url,
            json={"session_id": session_id, "message": question},
            timeout=settings.chatbot_timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        raise ChatbotError(f"request failed: {e}") from e
    except ValueError as e:
        raise ChatbotError("response body is not JSON") from e

    answer = data.get("message") if isinstance(data, dict) else None
    if not isinstance(answer, str) or not answer:
        raise ChatbotError(f'response did not contain a "message" field: {data!r}')
    return answer


def answer_or_fallback(session_id: str, question: str) -> str:
    """Like ask_chatbot, but any failure yields FALLBACK_MESSAGE"""
    try:
        return ask_chatbot(session_id, question)
    except ChatbotError as e:
        logger.warning("Chatbot call failed for session_id=%s: %s", session_id, e)
        return FALLBACK_MESSAGE
