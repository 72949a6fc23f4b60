"""Async wrapper around the Telegram Bot API methods the image bed relies on.

Every call is bounded by a deadline (10 seconds for `getFile`, 15 seconds
for the rest). HTTP failures, `ok: false` replies, unparsable bodies and
timeouts all surface as `UpstreamError`; nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from utils.errors import UpstreamError

LOGGER = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT = 15.0
FILE_TIMEOUT = 10.0


class TelegramClient:
    """Thin async client bound to one bot token and one target chat.

    Args:
        bot_token: Bot API token.
        chat_id: Target account id, channel id (`-100...`) or `@channel` name.
        transport: Optional httpx transport, used by tests to fake the API.
    """

    def __init__(self, bot_token: str, chat_id: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self._http = httpx.AsyncClient(base_url=API_BASE, timeout=DEFAULT_TIMEOUT, transport=transport)

    @property
    def is_channel(self) -> bool:
        """Channel ids are negative numbers or `@username` handles."""
        return self.chat_id.startswith("-") or self.chat_id.startswith("@")

    def file_url(self, file_path: str) -> str:
        return f"{API_BASE}/file/bot{self.bot_token}/{file_path}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        method: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Tuple[str, bytes, str]]] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Any:
        """Invoke `method` and return the `result` member of the reply."""
        url = f"/bot{self.bot_token}/{method}"
        try:
            if data is not None or files is not None:
                response = await self._http.post(url, data=data, files=files, timeout=timeout)
            else:
                response = await self._http.get(url, params=params, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Telegram {method} request timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Telegram {method} request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"Telegram {method} returned an unparsable body (HTTP {response.status_code})"
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"Telegram {method} returned an unexpected body (HTTP {response.status_code})")

        if response.status_code >= 300 or not payload.get("ok"):
            description = payload.get("description") or "Unknown error"
            raise UpstreamError(f"Telegram {method} failed: HTTP {response.status_code}: {description}")
        return payload.get("result")

    async def get_file(self, file_id: str) -> Dict[str, Any]:
        """Describe a stored file (`file_path`, `file_size`)."""
        result = await self._call("getFile", params={"file_id": file_id}, timeout=FILE_TIMEOUT)
        if not result or not result.get("file_path"):
            raise UpstreamError(f"Telegram getFile returned no file_path for {file_id}")
        return result

    async def resolve_file_url(self, file_id: str) -> Tuple[str, Dict[str, Any]]:
        """Describe-then-resolve: return the download URL and the file description."""
        info = await self.get_file(file_id)
        return self.file_url(info["file_path"]), info

    async def send_photo(self, filename: str, content: bytes, mime_type: str) -> Dict[str, Any]:
        """Post an image to the target chat and return the created message."""
        return await self._call(
            "sendPhoto",
            data={"chat_id": self.chat_id},
            files={"photo": (filename, content, mime_type)},
        )

    async def get_updates(self, offset: Optional[int] = None, limit: int = 100) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit, "allowed_updates": '["message","channel_post"]'}
        if offset is not None:
            params["offset"] = offset
        return await self._call("getUpdates", params=params) or []

    async def get_chat(self) -> Dict[str, Any]:
        return await self._call("getChat", params={"chat_id": self.chat_id})

    async def get_chat_history(self, offset: int = 0, limit: int = 100) -> List[Dict[str, Any]]:
        """Page through channel history, newest first.

        Only available to bots with history access; callers fall back to the
        update feed when this raises.
        """
        result = await self._call(
            "getChatHistory", params={"chat_id": self.chat_id, "offset": offset, "limit": limit}
        )
        if isinstance(result, dict):
            result = result.get("messages")
        if not isinstance(result, list):
            raise UpstreamError("Telegram getChatHistory returned no message list")
        return result

    async def get_user_profile_photos(self, limit: int = 100) -> List[List[Dict[str, Any]]]:
        result = await self._call(
            "getUserProfilePhotos", params={"user_id": self.chat_id, "limit": limit}
        )
        return (result or {}).get("photos") or []
