# chat_relay/db_store.py
import logging
import math
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm import selectinload

from chat_relay.models import Conversation, Message, get_session_factory

logger = logging.getLogger(__name__)


def _iso(ts) -> Optional[str]:
    return ts.isoformat() if ts else None


def message_to_dict(m: Message) -> dict:
    return {
        "id": m.id,
        "senderType": m.sender_type,
        "message": m.message,
        "createdAt": _iso(m.created_at),
        "updatedAt": _iso(m.updated_at),
    }


def conversation_to_dict(c: Conversation) -> dict:
    return {
        "id": c.id,
        "sessionId": c.session_id,
        "messagesId": c.messages_id,
        "lastMessages": c.last_messages,
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
        "lastMessage": message_to_dict(c.last_message) if c.last_message else None,
    }


class DatabaseStore:
    """SQLAlchemy-backed conversation and message store.

    Every public method opens its own session and returns plain dicts, so
    callers never hold ORM instances past a commit.
    """

    def __init__(self, session_factory=None):
        self.SessionFactory = session_factory or get_session_factory()

    def _get_db(self) -> DBSession:
        """Get database session (context manager pattern)"""
        return self.SessionFactory()

    # -------- Messages --------
    def create_message(self, sender_type: str, text: str) -> dict:
        with self._get_db() as db:
            msg = Message(sender_type=sender_type, message=text)
            db.add(msg)
            db.commit()
            return message_to_dict(msg)

    def find_message(self, message_id: int) -> Optional[dict]:
        with self._get_db() as db:
            msg = db.get(Message, message_id)
            return message_to_dict(msg) if msg else None

    def delete_message(self, message_id: int) -> bool:
        """Delete a message, nulling every last-message pointer at it first.

        Both steps share one transaction.
        """
        with self._get_db() as db:
            msg = db.get(Message, message_id)
            if not msg:
                return False
            cleared = self.clear_last_message_references_to(message_id, db=db)
            db.delete(msg)
            db.commit()
            if cleared:
                logger.info("Cleared last message on %d conversation(s) for message_id=%s", cleared, message_id)
            return True

    def clear_last_message_references_to(self, message_id: int, db: Optional[DBSession] = None) -> int:
        """Null messages_id and last_messages on conversations pointing at message_id.

        With an open session the caller owns the commit.
        """
        if db is None:
            with self._get_db() as own_db:
                cleared = self.clear_last_message_references_to(message_id, db=own_db)
                own_db.commit()
                return cleared

        conversations = db.query(Conversation).filter(Conversation.messages_id == message_id).all()
        for conv in conversations:
            conv.messages_id = None
            conv.last_messages = None
        db.flush()
        return len(conversations)

    # -------- Conversations --------
    def find_by_session_id(self, session_id: str) -> Optional[dict]:
        with self._get_db() as db:
            conv = (
                db.query(Conversation)
                .options(selectinload(Conversation.last_message))
                .filter(Conversation.session_id == session_id)
                .first()
            )
            return conversation_to_dict(conv) if conv else None

    def find_by_id(self, conversation_id: int) -> Optional[dict]:
        with self._get_db() as db:
            conv = (
                db.query(Conversation)
                .options(selectinload(Conversation.last_message))
                .filter(Conversation.id == conversation_id)
                .first()
            )
            return conversation_to_dict(conv) if conv else None

    def create_conversation(self, session_id: str) -> dict:
        """Insert a conversation for session_id.

        Losing a race on the unique session_id returns the winner's row.
        """
        with self._get_db() as db:
            conv = Conversation(session_id=session_id)
            db.add(conv)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                existing = self.find_by_session_id(session_id)
                if existing is None:
                    raise
                logger.info("Conversation for session_id=%s created concurrently, reusing it", session_id)
                return existing
            return conversation_to_dict(conv)

    def set_last_message(self, conversation_id: int, message: dict) -> bool:
        """Point the conversation at message and cache its text"""
        with self._get_db() as db:
            conv = db.get(Conversation, conversation_id)
            if not conv:
                return False
            conv.messages_id = message["id"]
            conv.last_messages = message["message"]
            db.commit()
            return True

    def delete_conversation(self, conversation_id: int) -> bool:
        with self._get_db() as db:
            conv = db.get(Conversation, conversation_id)
            if not conv:
                return False
            db.delete(conv)
            db.commit()
            return True

    def list_conversations(
        self, session_id: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> dict:
        """Paginated conversations, 1-indexed, each with its last message"""
        with self._get_db() as db:
            query = db.query(Conversation)
            if session_id:
                query = query.filter(Conversation.session_id == session_id)

            total = query.count()
            offset = (page - 1) * limit
            if offset >= total:
                rows = []
            else:
                rows = (
                    query.options(selectinload(Conversation.last_message))
                    .order_by(Conversation.id)
                    .offset(offset)
                    .limit(min(limit, total - offset))
                    .all()
                )
            return {
                "meta": {
                    "total": total,
                    "perPage": limit,
                    "currentPage": page,
                    "lastPage": max(1, math.ceil(total / limit)),
                },
                "data": [conversation_to_dict(c) for c in rows],
            }
