"""Build the list of images currently stored in the Telegram chat.

Two acquisition strategies exist:

- history scan: `getChat` followed by paginated `getChatHistory`; used for
  broadcast channels and the only strategy that sees the whole chat.
- update feed: `getUpdates` starting after the persisted sync cursor (or
  from the beginning on a forced full resync). Used for individual
  accounts and as the fallback when the history scan fails.

Individual accounts additionally contribute their profile photos.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dal.image_dal import ImageDAL
from models.sync_models import ExternalPhoto, FetchResult
from services.telegram.client import TelegramClient
from utils.errors import UpstreamError

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 100
MAX_HISTORY_MESSAGES = 1000
MAX_UPDATES = 1000

HASHTAG_RE = re.compile(r"#(\w+)")


def suggest_category(caption: Optional[str]) -> Optional[str]:
    """First `#hashtag` of a caption, lower-cased."""
    match = HASHTAG_RE.search(caption or "")
    return match.group(1).lower() if match else None


def extract_candidates(message: Dict[str, Any]) -> List[ExternalPhoto]:
    """Return the images carried by one message, without download URLs yet.

    A `photo` message contributes its largest size (the last entry); a
    `document` contributes itself when its MIME type is an image type.
    """
    candidates: List[ExternalPhoto] = []
    caption = message.get("caption") or ""
    common = {
        "message_id": message.get("message_id"),
        "date": message.get("date"),
        "caption": caption,
        "suggested_category": suggest_category(caption),
    }

    sizes = message.get("photo")
    if isinstance(sizes, list) and sizes:
        largest = sizes[-1]
        if largest.get("file_id"):
            candidates.append(ExternalPhoto(
                external_id=largest["file_id"],
                url="",
                kind="message_photo",
                size=largest.get("file_size"),
                **common,
            ))

    document = message.get("document") or {}
    mime_type = document.get("mime_type") or ""
    if document.get("file_id") and mime_type.startswith("image/"):
        candidates.append(ExternalPhoto(
            external_id=document["file_id"],
            url="",
            kind="document_image",
            size=document.get("file_size"),
            file_name=document.get("file_name") or "",
            mime_type=mime_type,
            **common,
        ))
    return candidates


def dedupe(photos: Iterable[ExternalPhoto]) -> List[ExternalPhoto]:
    """Keep the first entry for every external id."""
    seen = set()
    unique = []
    for photo in photos:
        if photo.external_id in seen:
            continue
        seen.add(photo.external_id)
        unique.append(photo)
    return unique


class MediaFetcher:
    """Collect the chat's current photos and resolve their download URLs.

    Args:
        client: Telegram client bound to the target chat.
        image_dal: Used to read and advance the sync cursor.
        page_size: Messages or updates requested per call.
        max_history_messages: Upper bound for the history scan.
        max_updates: Upper bound for one update-feed poll.
    """

    def __init__(
        self,
        client: TelegramClient,
        image_dal: ImageDAL,
        page_size: int = PAGE_SIZE,
        max_history_messages: int = MAX_HISTORY_MESSAGES,
        max_updates: int = MAX_UPDATES,
    ) -> None:
        self.client = client
        self.image_dal = image_dal
        self.page_size = page_size
        self.max_history_messages = max_history_messages
        self.max_updates = max_updates

    async def list_current_photos(self, force_full: bool = False) -> FetchResult:
        """Fetch the photos currently visible in the target chat.

        Args:
            force_full: Ignore the sync cursor and read the update feed from
                the beginning. The result then counts as authoritative.

        Raises:
            UpstreamError: If a listing call fails and no fallback applies.
        """
        profile: List[ExternalPhoto] = []
        if not self.client.is_channel:
            profile = await self._profile_photos()

        if self.client.is_channel:
            try:
                chat = await self._scan_history()
                strategy, authoritative = "history", True
            except UpstreamError as exc:
                LOGGER.warning("History scan unavailable (%s); falling back to the update feed", exc.detail)
                chat = await self._poll_updates(force_full)
                strategy, authoritative = "updates", force_full
        else:
            chat = await self._poll_updates(force_full)
            strategy, authoritative = "updates", force_full

        seen_ids = {candidate.external_id for candidate in profile + chat}
        profile = await self._resolve_all(profile)
        chat = await self._resolve_all(chat)
        photos = dedupe(profile + chat)
        LOGGER.info(
            "Fetched %d photos via %s (%d profile, %d chat, %d unresolved)",
            len(photos), strategy, len(profile), len(chat), len(seen_ids) - len(photos),
        )
        return FetchResult(
            photos=photos,
            strategy=strategy,
            authoritative=authoritative,
            profile_count=len(profile),
            chat_count=len(chat),
            seen_ids=seen_ids,
        )

    async def _resolve_all(self, candidates: Iterable[ExternalPhoto]) -> List[ExternalPhoto]:
        """Resolve download URLs, skipping photos whose lookup fails."""
        resolved = []
        for candidate in dedupe(candidates):
            try:
                url, info = await self.client.resolve_file_url(candidate.external_id)
            except UpstreamError as exc:
                LOGGER.warning("Skipping photo %s: %s", candidate.external_id, exc.detail)
                continue
            resolved.append(replace(
                candidate,
                url=url,
                file_path=info.get("file_path"),
                size=candidate.size or info.get("file_size"),
            ))
        return resolved

    async def _profile_photos(self) -> List[ExternalPhoto]:
        groups = await self.client.get_user_profile_photos(limit=self.page_size)
        candidates = []
        for group in groups:
            if not group or not group[-1].get("file_id"):
                continue
            largest = group[-1]
            candidates.append(ExternalPhoto(
                external_id=largest["file_id"],
                url="",
                kind="user_profile",
                size=largest.get("file_size"),
            ))
        return candidates

    async def _scan_history(self) -> List[ExternalPhoto]:
        await self.client.get_chat()

        candidates: List[ExternalPhoto] = []
        offset = 0
        fetched = 0
        while True:
            messages = await self.client.get_chat_history(offset=offset, limit=self.page_size)
            for message in messages:
                candidates.extend(extract_candidates(message))
            fetched += len(messages)
            if len(messages) < self.page_size or fetched >= self.max_history_messages:
                break
            offset = messages[-1].get("message_id", offset + self.page_size)
        return candidates

    def _belongs_to_target(self, message: Dict[str, Any]) -> bool:
        chat = message.get("chat")
        if not chat:
            return True
        target = self.client.chat_id
        if str(chat.get("id")) == target:
            return True
        username = chat.get("username")
        return bool(username) and f"@{username}".lower() == target.lower()

    async def _poll_updates(self, force_full: bool) -> List[ExternalPhoto]:
        stored_cursor = await self.image_dal.get_sync_cursor()
        offset = None if force_full or stored_cursor is None else stored_cursor + 1

        candidates, highest = await self._read_update_feed(offset)

        if highest is not None and (stored_cursor is None or highest > stored_cursor):
            await self.image_dal.set_sync_cursor(highest)
            LOGGER.info("Sync cursor advanced to %d", highest)
        return candidates

    async def _read_update_feed(self, offset: Optional[int]) -> Tuple[List[ExternalPhoto], Optional[int]]:
        candidates: List[ExternalPhoto] = []
        highest: Optional[int] = None
        total = 0
        while total < self.max_updates:
            updates = await self.client.get_updates(offset=offset, limit=self.page_size)
            if not updates:
                break
            total += len(updates)
            for update in updates:
                update_id = update.get("update_id")
                if isinstance(update_id, int) and (highest is None or update_id > highest):
                    highest = update_id
                message = update.get("message") or update.get("channel_post")
                if message and self._belongs_to_target(message):
                    candidates.extend(extract_candidates(message))
            if highest is None or len(updates) < self.page_size:
                break
            offset = highest + 1
        return candidates, highest
