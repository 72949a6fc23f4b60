"""Accessors for the shared objects `main.lifespan` attaches to `app.state`."""

from __future__ import annotations

from fastapi import Request

from dal.folder_dal import FolderDAL
from dal.image_dal import ImageDAL
from services.auth.token_service import TokenService
from services.rate_limiter import SlidingWindowRateLimiter
from services.telegram.client import TelegramClient
from utils.settings import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_image_dal(request: Request) -> ImageDAL:
    return ImageDAL(request.app.state.kv_store)


def get_folder_dal(request: Request) -> FolderDAL:
    return FolderDAL(request.app.state.kv_store)


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter


def get_token_service(request: Request) -> TokenService:
    """Build a token service; raises `ConfigurationError` when no signing secret is configured."""
    settings = get_settings(request)
    return TokenService(settings.require_signing_secret(), clock=request.app.state.clock)


def get_telegram_client(request: Request) -> TelegramClient:
    """Return the shared Telegram client, creating it on first use.

    Raises:
        ConfigurationError: If the bot token or chat id is missing.
    """
    settings = get_settings(request)
    settings.require_telegram()
    state = request.app.state
    if getattr(state, "telegram_client", None) is None:
        state.telegram_client = TelegramClient(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            transport=getattr(state, "telegram_transport", None),
        )
    return state.telegram_client


def client_identifier(request: Request) -> str:
    """Identify the caller for rate limiting: proxy headers first, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    client_ip = request.headers.get("client-ip")
    if client_ip:
        return client_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
