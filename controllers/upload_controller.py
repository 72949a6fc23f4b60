"""Upload handling: rate limit, validation, relay."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request, UploadFile

from controllers.app_state import (
    client_identifier,
    get_folder_dal,
    get_image_dal,
    get_rate_limiter,
    get_settings,
    get_telegram_client,
)
from controllers.auth_controller import is_admin_request
from services.upload_relay import UploadRelay
from utils.errors import ValidationError
from utils.media_validation import read_image_upload


async def upload_image(
    request: Request,
    image: Optional[UploadFile],
    category: Optional[str] = None,
    folder_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Relay one uploaded image to Telegram.

    The rate limit is checked first, then the payload is validated, so an
    oversized or malformed upload never reaches Telegram. Only admin callers
    get the record indexed and the URL returned.
    """
    get_rate_limiter(request).check(client_identifier(request))

    settings = get_settings(request)
    upload = await read_image_upload(image, settings.upload_max_bytes)

    is_admin = is_admin_request(request)
    if is_admin and folder_id and not await get_folder_dal(request).exists(folder_id):
        raise ValidationError(f"Folder {folder_id} does not exist")

    relay = UploadRelay(get_telegram_client(request), get_image_dal(request))
    return await relay.relay(upload, category=category or None, is_admin=is_admin, folder_id=folder_id or None)
