"""Relay uploaded images into the Telegram chat and index them."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from dal.image_dal import ImageDAL
from models.image_record import SOURCE_UPLOAD, ImageRecord
from models.sync_models import UploadedImage
from services.telegram.client import TelegramClient
from utils.errors import UpstreamError

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"


def _stored_file(message: Dict[str, Any]) -> Dict[str, Any]:
    """The file Telegram kept for a sent image: the largest photo size, else the document."""
    sizes = message.get("photo") or []
    if sizes:
        return sizes[-1]
    document = message.get("document")
    if document:
        return document
    raise UpstreamError("Telegram sendPhoto reply contains no photo")


class UploadRelay:
    """Forward an upload to Telegram, then resolve and optionally index its URL.

    The Telegram message is created first; when the follow-up `getFile`
    call fails that message is left in place and the inconsistency is
    logged, never repaired.
    """

    def __init__(self, client: TelegramClient, image_dal: ImageDAL) -> None:
        self.client = client
        self.image_dal = image_dal

    async def relay(
        self,
        upload: UploadedImage,
        category: Optional[str] = None,
        is_admin: bool = False,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Upload `upload` and return the API response body.

        Args:
            upload: Validated image.
            category: Category for the indexed record (admin uploads only).
            is_admin: Only admin uploads are indexed and see the image URL.
            folder_id: Target folder for the indexed record.

        Raises:
            UpstreamError: If either Telegram call fails.
        """
        message = await self.client.send_photo(upload.filename, upload.data, upload.content_type)
        stored = _stored_file(message)
        file_id = stored["file_id"]
        message_id = message.get("message_id")

        try:
            url, info = await self.client.resolve_file_url(file_id)
        except UpstreamError:
            LOGGER.error(
                "Uploaded message %s (file %s) exists in Telegram but its URL could not be resolved",
                message_id, file_id,
            )
            raise

        file_size = stored.get("file_size") or info.get("file_size") or upload.size
        LOGGER.info("Relayed %s (%d bytes) as message %s", upload.filename, upload.size, message_id)

        saved: Optional[ImageRecord] = None
        if is_admin:
            metadata: Dict[str, Any] = {"messageId": message_id, "mimeType": upload.content_type}
            if upload.width and upload.height:
                metadata.update({"width": upload.width, "height": upload.height})
            saved = await self.image_dal.create(ImageRecord(
                id=None,
                url=url,
                filename=upload.filename,
                category=category or DEFAULT_CATEGORY,
                folder_id=folder_id,
                external_file_id=file_id,
                size=file_size,
                source=SOURCE_UPLOAD,
                metadata=metadata,
            ))

        return {
            "success": True,
            "imageUrl": url if is_admin else None,
            "fileId": file_id,
            "messageId": message_id,
            "fileSize": file_size,
            "image": saved.to_dict() if saved else None,
            "message": (
                "Image uploaded successfully"
                if is_admin
                else "Image uploaded successfully but URL is only available to administrators"
            ),
        }
