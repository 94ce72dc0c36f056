import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, relationship, sessionmaker

from chat_relay.settings import get_settings

logger = logging.getLogger(__name__)

SENDER_USER = "user"
SENDER_BOT = "bot"

# Integer primary keys are 32-bit signed
MAX_PRIMARY_KEY = 2_147_483_647


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Modern SQLAlchemy 2.0 syntax
class Base(DeclarativeBase):
    pass


class Message(Base):
    """A single chat turn, either the user's question or the bot's answer"""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender_type = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("sender_type IN ('user', 'bot')", name="check_sender_type"),
    )


class Conversation(Base):
    """Maps a session id onto the most recent bot message"""
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), unique=True, index=True, nullable=False)
    messages_id = Column(
        Integer,
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_messages = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    last_message = relationship("Message", foreign_keys=[messages_id])


def get_engine(database_url: Optional[str] = None):
    """Get database engine from environment"""
    settings = get_settings()
    database_url = database_url or settings.database_url
    if not database_url:
        raise ValueError("DATABASE_URL not set in environment")
    return create_engine(database_url, echo=settings.db_echo, pool_pre_ping=True)


def get_session_factory(engine=None):
    """Get SQLAlchemy session factory"""
    engine = engine or get_engine()
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine=None):
    """Initialize database tables"""
    own_engine = engine is None
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database tables created successfully")
    if own_engine:
        engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(name)s: %(message)s")
    init_db()
