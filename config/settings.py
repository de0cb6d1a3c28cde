from __future__ import annotations

import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    app_env: str = os.getenv("APP_ENV", "development")
    port: int = int(os.getenv("PORT", "3000"))

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    thread_default_model: str = os.getenv("THREAD_DEFAULT_MODEL", "gpt-5")
    messages_default_model: str = os.getenv("MESSAGES_DEFAULT_MODEL", "gpt-4o")
    temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
    completion_timeout: float = float(os.getenv("COMPLETION_TIMEOUT", "60"))

    kintone_domain: Optional[str] = os.getenv("KINTONE_DOMAIN")
    kintone_chat_app_id: Optional[str] = os.getenv("KINTONE_CHAT_APP_ID")
    kintone_chat_token: Optional[str] = os.getenv("KINTONE_CHAT_TOKEN")
    record_store_timeout: float = float(os.getenv("RECORD_STORE_TIMEOUT", "10"))

    # Sessions never outlive the TTL, even if a request skipped its cleanup.
    session_ttl: float = float(os.getenv("SESSION_TTL_SECONDS", "1800"))
    sweep_interval: float = float(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "60"))

    cors_origins: List[str] = _split_csv(os.getenv("CORS_ORIGINS", "*"))
    max_body_bytes: int = int(os.getenv("MAX_BODY_BYTES", str(20 * 1024 * 1024)))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
