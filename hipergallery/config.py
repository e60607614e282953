import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BASE = Path(__file__).parent

# Accounts with this email always resolve to the admin role.
DEFAULT_ADMIN_EMAIL = "admin@hipergallery.art"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_PRODIGI_URL = "https://api.sandbox.prodigi.com/v4.0"


@dataclass
class Settings:
    database_url: str = ""
    media_root: Path = BASE / "media"
    local_store_dir: Path = BASE / "data" / "local"
    admin_email: str = DEFAULT_ADMIN_EMAIL
    secret_key: str = "change-me"
    session_max_age: int = 60 * 60 * 24 * 14
    api_key: str = ""
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    prodigi_api_key: Optional[str] = None
    prodigi_api_url: str = DEFAULT_PRODIGI_URL
    log_level: str = "INFO"

    @property
    def is_remote_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def is_vision_configured(self) -> bool:
        return bool(self.anthropic_api_key) and self.anthropic_api_key.startswith("sk-ant-")

    @property
    def is_prints_configured(self) -> bool:
        return bool(self.prodigi_api_key)

    def report(self) -> None:
        """Log once which optional services are unavailable."""
        if not self.is_remote_configured:
            logger.warning("GALLERY_DATABASE_URL not set, running in demo mode (local store only)")
        if not self.is_vision_configured:
            logger.warning("ANTHROPIC_API_KEY missing or invalid, AI descriptions disabled")
        if not self.is_prints_configured:
            logger.warning("PRODIGI_API_KEY not set, print fulfillment disabled")
        if self.secret_key == "change-me":
            logger.warning("GALLERY_SECRET_KEY not set, using an insecure default")


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def load_settings() -> Settings:
    load_dotenv()
    media_root = _env("GALLERY_MEDIA_ROOT")
    local_dir = _env("GALLERY_LOCAL_STORE")
    max_age = _env("GALLERY_SESSION_MAX_AGE")
    try:
        session_max_age = int(max_age) if max_age else Settings.session_max_age
    except ValueError:
        logger.warning("GALLERY_SESSION_MAX_AGE=%r is not an integer, using default", max_age)
        session_max_age = Settings.session_max_age

    return Settings(
        database_url=_env("GALLERY_DATABASE_URL"),
        media_root=Path(media_root) if media_root else Settings.media_root,
        local_store_dir=Path(local_dir) if local_dir else Settings.local_store_dir,
        admin_email=_env("GALLERY_ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).lower(),
        secret_key=_env("GALLERY_SECRET_KEY", "change-me"),
        session_max_age=session_max_age,
        api_key=_env("API_KEY"),
        anthropic_api_key=_env("ANTHROPIC_API_KEY") or None,
        anthropic_model=_env("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
        prodigi_api_key=_env("PRODIGI_API_KEY") or None,
        prodigi_api_url=_env("PRODIGI_API_URL", DEFAULT_PRODIGI_URL).rstrip("/"),
        log_level=_env("LOG_LEVEL", "INFO"),
    )
