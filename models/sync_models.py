"""Value objects exchanged between the Telegram fetcher, the reconciler and the upload relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set


@dataclass
class ExternalPhoto:
    """One image currently stored in the Telegram chat, with a resolved download URL."""

    external_id: str
    url: str
    kind: str  # user_profile, message_photo or document_image
    size: Optional[int] = None
    file_path: Optional[str] = None
    message_id: Optional[int] = None
    date: Optional[int] = None
    caption: str = ""
    file_name: str = ""
    mime_type: Optional[str] = None
    suggested_category: Optional[str] = None

    def metadata(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind}
        if self.message_id is not None:
            data["messageId"] = self.message_id
        if self.date is not None:
            data["date"] = self.date
        if self.caption:
            data["caption"] = self.caption
        if self.file_name:
            data["fileName"] = self.file_name
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data


@dataclass
class FetchResult:
    """Photos returned by one fetch.

    `authoritative` is True when the photos enumerate the whole chat, which
    is the only case where missing photos may be treated as deleted.
    `seen_ids` holds every file id listed, including those whose download
    URL could not be resolved and are therefore absent from `photos`.
    """

    photos: List[ExternalPhoto] = field(default_factory=list)
    strategy: str = "updates"
    authoritative: bool = False
    profile_count: int = 0
    chat_count: int = 0
    seen_ids: Set[str] = field(default_factory=set)

    def listed_ids(self) -> Set[str]:
        return self.seen_ids | {photo.external_id for photo in self.photos}


@dataclass
class SyncResult:
    inserted: int = 0
    skipped: int = 0
    deleted: int = 0
    total: int = 0
    profile_photos: int = 0
    chat_photos: int = 0
    strategy: str = "updates"
    authoritative: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "syncedCount": self.inserted,
            "skippedCount": self.skipped,
            "deletedCount": self.deleted,
            "updatedCount": 0,
            "totalPhotos": self.total,
            "profilePhotosCount": self.profile_photos,
            "chatPhotosCount": self.chat_photos,
            "strategy": self.strategy,
            "authoritative": self.authoritative,
            "targetFolderId": None,
        }


@dataclass
class UploadedImage:
    """A decoded multipart image upload."""

    filename: str
    content_type: str
    data: bytes
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.data)
