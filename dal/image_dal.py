"""Async data access layer for image metadata.

`ImageDAL` keeps image records as JSON strings in the key-value store and
maintains the derived structures around them:

- `imgbed:images`: sorted set of ids scored by creation time
- `imgbed:fileid:<fileId>`: reverse index from Telegram file id to image id
- `imgbed:telegram_images`: set of ids whose record carries a file id
- `imgbed:categories`: every category ever assigned
- `imgbed:stats`: `totalImages` / `totalSize` counters

The reverse index and the membership set are caches over the records and
can be rebuilt with `rebuild_external_index()`; the counters can be
recomputed with `recompute_stats()`.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from dal.kv_store import KVStore
from models.image_record import MUTABLE_FIELDS, ImageRecord
from utils.errors import ValidationError

LOGGER = logging.getLogger(__name__)

IMAGE_KEY_PREFIX = "imgbed:image:"
IMAGES_INDEX_KEY = "imgbed:images"
FILE_ID_KEY_PREFIX = "imgbed:fileid:"
TELEGRAM_IMAGES_KEY = "imgbed:telegram_images"
CATEGORIES_KEY = "imgbed:categories"
STATS_KEY = "imgbed:stats"
SYNC_CURSOR_KEY = "imgbed:sync:cursor"
REQUIRED_TEXT_FIELDS = ("url", "filename", "category")

ANY_FOLDER = object()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ImageDAL:
    """Data access layer for image records.

    The constructor accepts a `KVStore`; every public method is a short
    sequence of single-key operations with no cross-record transaction.
    """

    _last_id = 0

    def __init__(self, kv: KVStore) -> None:
        self._kv = kv

    @classmethod
    def _next_id(cls) -> str:
        """Return a nanosecond timestamp id, strictly increasing within the process."""
        candidate = time.time_ns()
        if candidate <= cls._last_id:
            candidate = cls._last_id + 1
        cls._last_id = candidate
        return str(candidate)

    @staticmethod
    def _score_for(image_id: str) -> int:
        try:
            return int(image_id)
        except ValueError:
            return time.time_ns()

    async def _write(self, record: ImageRecord) -> None:
        await self._kv.set(f"{IMAGE_KEY_PREFIX}{record.id}", json.dumps(record.to_dict()))

    async def _index_external(self, record: ImageRecord) -> None:
        await self._kv.set(f"{FILE_ID_KEY_PREFIX}{record.external_file_id}", record.id)
        await self._kv.sadd(TELEGRAM_IMAGES_KEY, record.id)

    async def _unindex_external(self, record: ImageRecord) -> None:
        key = f"{FILE_ID_KEY_PREFIX}{record.external_file_id}"
        if await self._kv.get(key) == record.id:
            await self._kv.delete(key)
        await self._kv.srem(TELEGRAM_IMAGES_KEY, record.id)

    async def _ensure_external_id_free(self, file_id: str, owner_id: Optional[str]) -> None:
        holder = await self.find_by_external_id(file_id)
        if holder is not None and holder.id != owner_id:
            raise ValidationError(f"fileId {file_id} already belongs to image {holder.id}")

    async def _adjust_stats(self, count_delta: int, size_delta: int) -> None:
        if count_delta:
            await self._kv.hincrby(STATS_KEY, "totalImages", count_delta, floor=0)
        if size_delta:
            await self._kv.hincrby(STATS_KEY, "totalSize", size_delta, floor=0)

    async def get(self, image_id: str) -> Optional[ImageRecord]:
        """Return the record for `image_id`, or None if not found."""
        raw = await self._kv.get(f"{IMAGE_KEY_PREFIX}{image_id}")
        return ImageRecord.from_dict(json.loads(raw)) if raw else None

    async def create(self, record: ImageRecord) -> ImageRecord:
        """Insert a new record, assigning its id and upload date.

        Args:
            record: ImageRecord with `id=None`.

        Returns:
            The stored record.

        Raises:
            ValidationError: If another record already holds the same file id.
        """
        if record.external_file_id:
            await self._ensure_external_id_free(record.external_file_id, None)

        record.id = self._next_id()
        record.upload_date = record.upload_date or _utc_now_iso()

        await self._write(record)
        await self._kv.zadd(IMAGES_INDEX_KEY, record.id, self._score_for(record.id))
        if record.external_file_id:
            await self._index_external(record)
        await self.add_category(record.category)
        await self._adjust_stats(1, record.size or 0)
        return record

    async def put(self, record: ImageRecord) -> ImageRecord:
        """Upsert `record`, overwriting every stored field.

        Indexes and counters follow the difference between the previous and
        the new version of the record.
        """
        if not record.id:
            raise ValidationError("Image ID is required")
        if record.external_file_id:
            await self._ensure_external_id_free(record.external_file_id, record.id)

        existing = await self.get(record.id)
        record.upload_date = record.upload_date or (existing.upload_date if existing else _utc_now_iso())

        await self._write(record)
        if existing is None:
            await self._kv.zadd(IMAGES_INDEX_KEY, record.id, self._score_for(record.id))
            await self._adjust_stats(1, record.size or 0)
        else:
            await self._adjust_stats(0, (record.size or 0) - (existing.size or 0))
            if existing.external_file_id and existing.external_file_id != record.external_file_id:
                await self._unindex_external(existing)

        if record.external_file_id:
            await self._index_external(record)
        await self.add_category(record.category)
        return record

    async def update(self, image_id: str, changes: Dict[str, Any]) -> Optional[ImageRecord]:
        """Merge `changes` over the stored record. Returns None if it does not exist.

        Only the fields in `MUTABLE_FIELDS` are applied; `None` clears
        `folder_id` (moves the image to the root) and is ignored elsewhere.
        `url`, `filename` and `category` are stripped and may not be blank.

        Raises:
            ValidationError: If one of those fields is blank.
        """
        record = await self.get(image_id)
        if record is None:
            return None

        for name, value in changes.items():
            if name not in MUTABLE_FIELDS:
                continue
            if value is None and name != "folder_id":
                continue
            if name in REQUIRED_TEXT_FIELDS:
                value = str(value).strip()
                if not value:
                    raise ValidationError(f"Image {name} cannot be empty")
            setattr(record, name, value)

        await self._write(record)
        await self.add_category(record.category)
        return record

    async def delete(self, image_id: str) -> Optional[ImageRecord]:
        """Delete a record and return it, or None if it did not exist."""
        record = await self.get(image_id)
        if record is None:
            return None

        await self._kv.delete(f"{IMAGE_KEY_PREFIX}{image_id}")
        await self._kv.zrem(IMAGES_INDEX_KEY, image_id)
        if record.external_file_id:
            await self._unindex_external(record)
        await self._adjust_stats(-1, -(record.size or 0))
        return record

    async def all_images(self) -> List[ImageRecord]:
        """Every record, newest first."""
        ids = await self._kv.zrange(IMAGES_INDEX_KEY, 0, -1, rev=True)
        raws = await self._kv.mget([f"{IMAGE_KEY_PREFIX}{image_id}" for image_id in ids])
        return [ImageRecord.from_dict(json.loads(raw)) for raw in raws if raw]

    async def list_images(
        self,
        page: int = 1,
        limit: int = 20,
        category: Optional[str] = None,
        folder_id: Any = ANY_FOLDER,
    ) -> Tuple[List[ImageRecord], int]:
        """Return one page of records (newest first) and the filtered total.

        Args:
            page: 1-based page number.
            limit: Page size.
            category: Only records with this category when given.
            folder_id: Only records in this folder; None selects the root.
        """
        images = await self.all_images()
        if category:
            images = [img for img in images if img.category == category]
        if folder_id is not ANY_FOLDER:
            images = [img for img in images if img.folder_id == folder_id]

        start = (page - 1) * limit
        return images[start:start + limit], len(images)

    async def find_by_external_id(self, file_id: str) -> Optional[ImageRecord]:
        """Look up the record holding `file_id`.

        The reverse index is tried first. On a miss the records are scanned
        and, when a holder is found, the index entry is written back.
        """
        key = f"{FILE_ID_KEY_PREFIX}{file_id}"
        image_id = await self._kv.get(key)
        if image_id:
            record = await self.get(image_id)
            if record is not None and record.external_file_id == file_id:
                return record
            LOGGER.warning("Dropping stale reverse index entry %s -> %s", file_id, image_id)
            await self._kv.delete(key)

        for record in await self.all_images():
            if record.external_file_id == file_id:
                LOGGER.info("Repaired reverse index entry %s -> %s", file_id, record.id)
                await self._index_external(record)
                return record
        return None

    async def external_image_ids(self) -> List[str]:
        return await self._kv.smembers(TELEGRAM_IMAGES_KEY)

    async def list_external_images(self) -> List[ImageRecord]:
        """Records that carry a Telegram file id, enumerated through the membership set.

        Ids whose record vanished or lost its file id are pruned from the set.
        """
        ids = await self.external_image_ids()
        raws = await self._kv.mget([f"{IMAGE_KEY_PREFIX}{image_id}" for image_id in ids])
        records: List[ImageRecord] = []
        for image_id, raw in zip(ids, raws):
            record = ImageRecord.from_dict(json.loads(raw)) if raw else None
            if record is None or not record.external_file_id:
                await self._kv.srem(TELEGRAM_IMAGES_KEY, image_id)
                continue
            records.append(record)
        return records

    async def rebuild_external_index(self) -> Dict[str, int]:
        """Recompute the reverse index and the membership set from the records."""
        stale_keys = await self._kv.keys(FILE_ID_KEY_PREFIX)
        if stale_keys:
            await self._kv.delete(*stale_keys)

        external = [img for img in await self.all_images() if img.external_file_id]
        # oldest first so that on duplicates the newest record wins the index entry
        for record in reversed(external):
            await self._kv.set(f"{FILE_ID_KEY_PREFIX}{record.external_file_id}", record.id)
        await self._kv.sreplace(TELEGRAM_IMAGES_KEY, [img.id for img in external])

        LOGGER.info("Rebuilt reverse index with %d entries", len(external))
        return {"indexed": len(external), "removedKeys": len(stale_keys)}

    async def get_stats(self) -> Dict[str, int]:
        raw = await self._kv.hgetall(STATS_KEY)
        return {
            "totalImages": int(raw.get("totalImages", 0) or 0),
            "totalSize": int(raw.get("totalSize", 0) or 0),
        }

    async def recompute_stats(self) -> Dict[str, int]:
        """Replace the counters with the true count and byte sum of live records."""
        images = await self.all_images()
        stats = {
            "totalImages": len(images),
            "totalSize": sum(img.size or 0 for img in images),
        }
        await self._kv.hset(STATS_KEY, stats)
        return stats

    async def get_categories(self) -> List[str]:
        return [cat for cat in await self._kv.smembers(CATEGORIES_KEY) if cat]

    async def add_category(self, category: Optional[str]) -> None:
        if category:
            await self._kv.sadd(CATEGORIES_KEY, category)

    async def get_sync_cursor(self) -> Optional[int]:
        raw = await self._kv.get(SYNC_CURSOR_KEY)
        return int(raw) if raw else None

    async def set_sync_cursor(self, value: int) -> None:
        await self._kv.set(SYNC_CURSOR_KEY, str(int(value)))
