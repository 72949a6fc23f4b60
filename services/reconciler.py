"""One-way reconciliation of the local image index against the Telegram chat."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from dal.image_dal import ImageDAL
from models.image_record import SOURCE_TELEGRAM, SOURCE_UPLOAD, ImageRecord
from models.sync_models import ExternalPhoto, SyncResult
from services.telegram.media_fetcher import MediaFetcher

LOGGER = logging.getLogger(__name__)

DEFAULT_CATEGORY = "general"


class TelegramReconciler:
    """Mirror the chat's photos into the image index.

    A pass deletes local records whose file id vanished from the chat,
    then inserts records for photos the index does not know yet. Records
    present on both sides are never modified, so manual edits survive.
    """

    def __init__(self, image_dal: ImageDAL, fetcher: MediaFetcher) -> None:
        self.image_dal = image_dal
        self.fetcher = fetcher

    async def run(self, force_full: bool = False) -> SyncResult:
        """Execute one reconciliation pass.

        Args:
            force_full: Passed to the fetcher to ignore the sync cursor.

        Returns:
            Counts of inserted, skipped and deleted records.

        Raises:
            UpstreamError: If the photo listing itself fails. Records already
                written by the pass stay written.
        """
        fetched = await self.fetcher.list_current_photos(force_full=force_full)
        current_ids = fetched.listed_ids()

        existing = await self.image_dal.list_external_images()
        category_memo = {img.external_file_id: img.category for img in existing}

        result = SyncResult(
            total=len(fetched.photos),
            profile_photos=fetched.profile_count,
            chat_photos=fetched.chat_count,
            strategy=fetched.strategy,
            authoritative=fetched.authoritative,
        )

        if fetched.authoritative:
            for record in existing:
                if record.external_file_id not in current_ids:
                    LOGGER.info("Deleting image %s: file %s left the chat", record.id, record.external_file_id)
                    await self.image_dal.delete(record.id)
                    result.deleted += 1
        elif existing:
            LOGGER.info("Partial fetch via %s; deletion phase skipped", fetched.strategy)

        for photo in fetched.photos:
            if await self.image_dal.find_by_external_id(photo.external_id) is not None:
                result.skipped += 1
                continue
            category = category_memo.get(photo.external_id) or photo.suggested_category or DEFAULT_CATEGORY
            await self.image_dal.create(self._record_for(photo, category))
            result.inserted += 1

        LOGGER.info(
            "Sync finished: %d new, %d skipped, %d deleted of %d photos",
            result.inserted, result.skipped, result.deleted, result.total,
        )
        return result

    @staticmethod
    def _record_for(photo: ExternalPhoto, category: str) -> ImageRecord:
        return ImageRecord(
            id=None,
            url=photo.url,
            filename=photo.file_name or f"telegram_{photo.external_id}",
            category=category,
            description=photo.caption,
            folder_id=None,
            external_file_id=photo.external_id,
            size=photo.size or 0,
            source=SOURCE_TELEGRAM,
            metadata=photo.metadata(),
        )


async def sync_status(image_dal: ImageDAL, recent_limit: int = 10) -> Dict[str, Any]:
    """Diagnostics for the sync endpoint: counters, cursor and the newest records by source."""
    stats = await image_dal.get_stats()
    external = await image_dal.list_external_images()
    recent, _ = await image_dal.list_images(page=1, limit=recent_limit)
    cursor: Optional[int] = await image_dal.get_sync_cursor()

    analysis = {"total": len(recent), "telegram": 0, "upload": 0, "manual": 0}
    details = []
    for img in recent:
        if img.source == SOURCE_TELEGRAM:
            source = "telegram"
        elif img.source == SOURCE_UPLOAD:
            source = "upload"
        else:
            source = "manual"
        analysis[source] += 1
        details.append({
            "id": img.id,
            "filename": img.filename,
            "fileId": img.external_file_id or "N/A",
            "category": img.category or "N/A",
            "source": source,
            "uploadDate": img.upload_date,
        })

    return {
        "success": True,
        "stats": {**stats, "telegramImages": len(external)},
        "syncCursor": cursor,
        "sourceAnalysis": analysis,
        "recentImages": details,
        "telegramImageDetails": [
            {"id": img.id, "fileId": img.external_file_id, "category": img.category} for img in external
        ],
    }
