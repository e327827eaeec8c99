from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


load_dotenv()

PLACEHOLDER_KEYS = ("your-gemini-api-key-here", "your_production_api_key", "changeme")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    """Application settings loaded from environment variables.

    Keep all credentials and config centralized here.
    """

    def __init__(self) -> None:
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.database_url: str = os.getenv("SPACIO_DATABASE_URL", "sqlite:///./spacio.db")
        self.google_api_key: Optional[str] = os.getenv("GOOGLE_API_KEY")
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.1"))
        self.gemini_max_retries: int = int(os.getenv("GEMINI_MAX_RETRIES", "2"))
        self.gemini_retry_base_delay: float = float(os.getenv("GEMINI_RETRY_BASE_DELAY", "1.0"))
        self.timezone: str = os.getenv("SPACIO_TIMEZONE", "Asia/Jakarta")
        self.session_ttl_hours: int = int(os.getenv("SESSION_TTL_HOURS", "24"))
        self.rispat_upload_dir: str = os.getenv("RISPAT_UPLOAD_DIR", "uploads/rispat")
        self.rispat_max_bytes: int = int(os.getenv("RISPAT_MAX_BYTES", str(10 * 1024 * 1024)))
        self.admin_email: Optional[str] = os.getenv("SPACIO_ADMIN_EMAIL")
        self.admin_password: Optional[str] = os.getenv("SPACIO_ADMIN_PASSWORD")
        self.seed_rooms: bool = _env_bool("SPACIO_SEED_ROOMS", True)
        self.backend_url: str = os.getenv("SPACIO_BACKEND_URL", "http://localhost:8000")

    @property
    def has_gemini_key(self) -> bool:
        key = (self.google_api_key or "").strip()
        if not key:
            return False
        return not any(placeholder in key for placeholder in PLACEHOLDER_KEYS)

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() in {"dev", "development", "local"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Mask a credential for log output, keeping only its last characters."""
    if not value:
        return "unset"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
