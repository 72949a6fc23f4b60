"""Async data access layer for the folder tree."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import List, Optional

from dal.kv_store import KVStore
from models.folder import Folder
from utils.errors import NotFoundError, ValidationError

FOLDER_KEY_PREFIX = "imgbed:folder:"
FOLDERS_INDEX_KEY = "imgbed:folders"

BOOTSTRAP_FOLDERS = (
    Folder(id="avatar", name="Avatar"),
    Folder(id="chat", name="Chat"),
)


class FolderDAL:
    """Folders stored as JSON under `imgbed:folder:<id>`, ordered by creation time.

    Parents must exist and the tree may not contain cycles; both rules are
    checked on create and on update.
    """

    def __init__(self, kv: KVStore) -> None:
        self._kv = kv

    async def _write(self, folder: Folder) -> None:
        await self._kv.set(f"{FOLDER_KEY_PREFIX}{folder.id}", json.dumps(folder.to_dict()))

    async def get(self, folder_id: str) -> Optional[Folder]:
        raw = await self._kv.get(f"{FOLDER_KEY_PREFIX}{folder_id}")
        return Folder.from_dict(json.loads(raw)) if raw else None

    async def exists(self, folder_id: str) -> bool:
        return await self.get(folder_id) is not None

    async def list_folders(self) -> List[Folder]:
        ids = await self._kv.zrange(FOLDERS_INDEX_KEY, 0, -1)
        raws = await self._kv.mget([f"{FOLDER_KEY_PREFIX}{folder_id}" for folder_id in ids])
        return [Folder.from_dict(json.loads(raw)) for raw in raws if raw]

    async def _check_parent(self, folder_id: Optional[str], parent_id: Optional[str]) -> None:
        """Reject a parent that does not exist or that lies below `folder_id`."""
        if parent_id is None:
            return
        seen = set()
        current: Optional[str] = parent_id
        while current is not None:
            if current == folder_id:
                raise ValidationError("Folder cannot be moved into itself or one of its descendants")
            if current in seen:
                raise ValidationError(f"Folder tree already contains a cycle at {current}")
            seen.add(current)
            parent = await self.get(current)
            if parent is None:
                if current == parent_id:
                    raise ValidationError(f"Parent folder {parent_id} does not exist")
                break
            current = parent.parent_id

    async def create(self, name: str, parent_id: Optional[str] = None, folder_id: Optional[str] = None) -> Folder:
        """Create a folder. A fixed `folder_id` is used for bootstrap folders."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name is required")
        await self._check_parent(None, parent_id)

        folder = Folder(
            id=folder_id or f"folder_{time.time_ns()}",
            name=name,
            parent_id=parent_id,
            created_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )
        if await self.exists(folder.id):
            raise ValidationError(f"Folder {folder.id} already exists")

        await self._write(folder)
        await self._kv.zadd(FOLDERS_INDEX_KEY, folder.id, time.time_ns())
        return folder

    async def update(self, folder_id: str, name: Optional[str] = None, parent_id: Optional[str] = None,
                     move: bool = False) -> Folder:
        """Rename a folder and, when `move` is set, re-parent it (None = root)."""
        folder = await self.get(folder_id)
        if folder is None:
            raise NotFoundError("Folder not found")

        if name is not None:
            if not name.strip():
                raise ValidationError("Folder name is required")
            folder.name = name.strip()
        if move:
            await self._check_parent(folder_id, parent_id)
            folder.parent_id = parent_id

        await self._write(folder)
        return folder

    async def ensure_bootstrap_folders(self) -> List[Folder]:
        """Create the `avatar` and `chat` folders when missing. Returns the created ones."""
        created = []
        for required in BOOTSTRAP_FOLDERS:
            if not await self.exists(required.id):
                created.append(await self.create(required.name, required.parent_id, folder_id=required.id))
        return created
