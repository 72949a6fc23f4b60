from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

SOURCE_TELEGRAM = "telegram"
SOURCE_UPLOAD = "upload"
SOURCE_MANUAL = "manual"

# Fields a client may change through the update endpoints.
MUTABLE_FIELDS = ("url", "filename", "category", "description", "folder_id")


@dataclass
class ImageRecord:
    """Metadata for one hosted image, stored as JSON under `imgbed:image:<id>`.

    Attributes:
        id: Timestamp-derived identifier (None until the record is created).
        url: Durable download URL pointing at the Telegram file store.
        filename: Display filename.
        category: Category name, also recorded in the category set.
        description: Free text; Telegram captions land here on sync.
        folder_id: Owning folder id, None for the root folder.
        upload_date: ISO-8601 creation time, fixed once set.
        external_file_id: Telegram `file_id` for images that live in the chat.
        size: Size in bytes when known.
        source: How the record was created (telegram, upload or manual).
        metadata: Extra details such as message id, MIME type or dimensions.
    """

    id: Optional[str]
    url: str
    filename: str
    category: str = "general"
    description: str = ""
    folder_id: Optional[str] = None
    upload_date: Optional[str] = None
    external_file_id: Optional[str] = None
    size: Optional[int] = None
    source: str = SOURCE_MANUAL
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys of the JSON API."""
        return {
            "id": self.id,
            "url": self.url,
            "filename": self.filename,
            "category": self.category,
            "description": self.description,
            "folderId": self.folder_id,
            "uploadDate": self.upload_date,
            "fileId": self.external_file_id,
            "size": self.size,
            "source": self.source,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageRecord":
        size = data.get("size")
        return cls(
            id=data.get("id"),
            url=data.get("url") or "",
            filename=data.get("filename") or "unknown",
            category=data.get("category") or "general",
            description=data.get("description") or "",
            folder_id=data.get("folderId"),
            upload_date=data.get("uploadDate"),
            external_file_id=data.get("fileId") or None,
            size=int(size) if size is not None else None,
            source=data.get("source") or SOURCE_MANUAL,
            metadata=dict(data.get("metadata") or {}),
        )
