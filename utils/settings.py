"""Environment-driven configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from utils.errors import ConfigurationError

PLACEHOLDER_VALUES = {"your_bot_token_here", "your_chat_id_here", "your-secret-key-change-in-production"}

DEFAULT_UPLOAD_MAX_BYTES = 5 * 1024 * 1024


def _usable(value: Optional[str]) -> bool:
    return bool(value and value.strip() and value.strip() not in PLACEHOLDER_VALUES)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class Settings:
    """Runtime configuration.

    Credentials and Telegram settings are allowed to be missing at startup;
    the `require_*` helpers raise `ConfigurationError` when a request
    actually needs them.
    """

    database_dir: Optional[str] = None
    admin_username: str = "admin"
    admin_password: Optional[str] = None
    jwt_secret: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    log_level: str = "INFO"
    upload_max_bytes: int = DEFAULT_UPLOAD_MAX_BYTES
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_dir=os.getenv("DATABASE_DIR"),
            admin_username=os.getenv("ADMIN_USERNAME") or "admin",
            admin_password=os.getenv("ADMIN_PASSWORD"),
            jwt_secret=os.getenv("JWT_SECRET"),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            upload_max_bytes=_int_env("UPLOAD_MAX_BYTES", DEFAULT_UPLOAD_MAX_BYTES),
            rate_limit_max_requests=_int_env("RATE_LIMIT_MAX_REQUESTS", 10),
            rate_limit_window_seconds=_int_env("RATE_LIMIT_WINDOW_SECONDS", 60),
        )

    @property
    def telegram_configured(self) -> bool:
        return _usable(self.telegram_bot_token) and _usable(self.telegram_chat_id)

    def require_telegram(self) -> None:
        """Raise `ConfigurationError` unless the bot token and chat id are set."""
        if not _usable(self.telegram_bot_token):
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is not set or still holds the placeholder value.")
        if not _usable(self.telegram_chat_id):
            raise ConfigurationError("TELEGRAM_CHAT_ID is not set or still holds the placeholder value.")

    def require_signing_secret(self) -> str:
        if not _usable(self.jwt_secret):
            raise ConfigurationError("JWT_SECRET is not set or still holds the placeholder value.")
        return self.jwt_secret

    def require_admin_password(self) -> str:
        if not self.admin_password:
            raise ConfigurationError("ADMIN_PASSWORD is not set.")
        return self.admin_password
