from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()

DEFAULT_CHATBOT_API_URL = (
    "https://api.majadigidev.jatimprov.go.id/api/external/chatbot/send-message"
)
DEV_ENVIRONMENTS = {"dev", "development", "local"}


def _env_flag(key: str, default: str) -> bool:
    return os.getenv(key, default).strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self):
        self.app_env: str = os.getenv("APP_ENV", "dev")
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")
        self.db_echo: bool = _env_flag("DB_ECHO", "false")
        self.db_auto_create: bool = _env_flag("DB_AUTO_CREATE", "true")
        self.chatbot_api_url: str = os.getenv("CHATBOT_API_URL", DEFAULT_CHATBOT_API_URL)
        self.chatbot_timeout_seconds: float = float(os.getenv("CHATBOT_TIMEOUT_SECONDS", "10"))
        self.chatbot_mode: str = os.getenv("CHATBOT_MODE", "live").lower()
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def is_dev(self) -> bool:
        return self.app_env.lower() in DEV_ENVIRONMENTS


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
