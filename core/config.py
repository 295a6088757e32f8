"""Application settings.

Values are read from the environment (optionally seeded from a `.env` file)
once at import time and exposed through the module-level `settings` object.
"""

import os
from datetime import datetime, tzinfo
from pathlib import Path
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str) -> Optional[float]:
    raw = (os.getenv(name) or "").strip()
    return float(raw) if raw else None


class Settings:
    """Centralized configuration for the diet tracker backend."""

    def __init__(self) -> None:
        self.write_database_url: str = os.getenv("WRITE_DATABASE_URL", "sqlite:///diet_tracker.db")
        self.read_database_url: str = os.getenv("READ_DATABASE_URL", self.write_database_url)

        self.timezone_name: Optional[str] = os.getenv("TRACKER_TIMEZONE") or None
        self.storage_path: Path = Path(
            os.getenv("TRACKER_STORAGE_PATH", BASE_DIR / "local_storage.json")
        ).expanduser()
        self.log_dir: Path = Path(os.getenv("TRACKER_LOG_DIR", BASE_DIR / "logs")).expanduser()

        self.session_ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
        self.session_refresh_buffer_seconds: int = int(os.getenv("SESSION_REFRESH_BUFFER_SECONDS", "60"))
        self.session_check_interval_seconds: float = float(os.getenv("SESSION_CHECK_INTERVAL_SECONDS", "300"))
        self.require_email_confirmation: bool = _env_bool("REQUIRE_EMAIL_CONFIRMATION")

        self.classifier_base_url: str = os.getenv(
            "CLASSIFIER_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
        self.classifier_model: str = os.getenv("CLASSIFIER_MODEL", "gemini-2.5-flash-lite")
        # None disables the client timeout entirely.
        self.classifier_timeout: Optional[float] = _env_float("CLASSIFIER_TIMEOUT")

        cors = os.getenv("CORS_ORIGINS", "*")
        if cors.strip() == "*":
            self.cors_origins: List[str] = ["*"]
        else:
            self.cors_origins = [origin.strip() for origin in cors.split(",") if origin.strip()]

    @property
    def timezone(self) -> tzinfo:
        """Zone used for day boundaries; the host's local zone unless configured."""
        if self.timezone_name:
            return ZoneInfo(self.timezone_name)
        return datetime.now().astimezone().tzinfo


settings = Settings()
