"""Runtime configuration loaded from the environment (and a local `.env` file)."""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB limit
DEFAULT_MAX_SESSIONS = 100
DEFAULT_SESSION_TTL_SECONDS = 60 * 60


@dataclass
class Settings:
    gemini_api_key: Optional[str] = None
    image_model: str = DEFAULT_IMAGE_MODEL
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    preferences_file: Optional[str] = None
    max_sessions: int = DEFAULT_MAX_SESSIONS
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        api_key = os.getenv("GEMINI_API_KEY") or None
        if not api_key:
            # A key can still be supplied per browser session from the preferences panel.
            logger.warning("GEMINI_API_KEY not set; clients must provide their own key")

        origins = os.getenv("VISIONARY_CORS_ORIGINS", "*")
        return cls(
            gemini_api_key=api_key,
            image_model=os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            max_upload_bytes=int(os.getenv("VISIONARY_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)),
            preferences_file=os.getenv("VISIONARY_PREFERENCES_FILE") or None,
            max_sessions=int(os.getenv("VISIONARY_MAX_SESSIONS", DEFAULT_MAX_SESSIONS)),
            session_ttl_seconds=int(os.getenv("VISIONARY_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("VISIONARY_LOG_LEVEL", "INFO").upper(),
            host=os.getenv("VISIONARY_HOST", "127.0.0.1"),
            port=int(os.getenv("VISIONARY_PORT", "8000")),
        )
