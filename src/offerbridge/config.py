"""Runtime configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SHOPEE_API_URL = "https://open-api.affiliate.shopee.com.br/graphql"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_COMMERCE_KEYWORDS = ("shopee", "shope.ee", "s.shopee.com.br")

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    """Configuration for the session supervisor and the offer pipeline."""

    monitored_conversation_id: str
    target_conversation_id: str
    session_key: str
    session_cache_dir: Path
    credentials_key: str
    shopee_app_id: str
    shopee_secret: str
    shopee_api_url: str
    gemini_api_key: str
    gemini_model: str
    commerce_keywords: tuple[str, ...]
    max_reconnect_attempts: int
    auto_connect: bool
    pipeline_workers: int


def _get_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _get_keywords() -> tuple[str, ...]:
    raw = os.environ.get("COMMERCE_KEYWORDS", "")
    keywords = tuple(k.strip().lower() for k in raw.split(",") if k.strip())
    return keywords or DEFAULT_COMMERCE_KEYWORDS


def load_settings() -> Settings:
    """Load configuration from environment variables and defaults.

    Raises:
        ValueError: If an integer variable (MAX_RECONNECT_ATTEMPTS,
            PIPELINE_WORKERS) is not a valid integer.
    """
    return Settings(
        monitored_conversation_id=os.environ.get("MONITORED_GROUP_JID", ""),
        target_conversation_id=os.environ.get("TARGET_GROUP_JID", ""),
        session_key=os.environ.get("SESSION_KEY", "default"),
        session_cache_dir=Path(os.environ.get("SESSION_CACHE_DIR", "auth_info_baileys")),
        credentials_key=os.environ.get("CREDENTIALS_KEY", ""),
        shopee_app_id=os.environ.get("SHOPEE_APP_ID", ""),
        shopee_secret=os.environ.get("SHOPEE_SECRET", ""),
        shopee_api_url=os.environ.get("SHOPEE_API_URL", DEFAULT_SHOPEE_API_URL),
        gemini_api_key=os.environ.get("GEMINI_API_KEY", ""),
        gemini_model=os.environ.get("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        commerce_keywords=_get_keywords(),
        max_reconnect_attempts=int(os.environ.get("MAX_RECONNECT_ATTEMPTS", "5")),
        auto_connect=_get_bool("AUTO_CONNECT", True),
        pipeline_workers=int(os.environ.get("PIPELINE_WORKERS", "4")),
    )
