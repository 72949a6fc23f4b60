"""Folder listing and management."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request

from controllers.app_state import get_folder_dal
from utils.errors import ValidationError


async def list_folders(request: Request) -> Dict[str, Any]:
    folders = await get_folder_dal(request).list_folders()
    return {"success": True, "folders": [folder.to_dict() for folder in folders]}


async def create_folder(request: Request, name: Optional[str], parent_id: Optional[str]) -> Dict[str, Any]:
    folder = await get_folder_dal(request).create(name or "", parent_id or None)
    return {"success": True, "message": "Folder created successfully", "folder": folder.to_dict()}


async def update_folder(request: Request, folder_id: Optional[str], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Rename and/or move a folder; `parent_id` is only applied when the client sent it."""
    if not folder_id:
        raise ValidationError("Folder ID is required")
    folder = await get_folder_dal(request).update(
        folder_id,
        name=changes.get("name"),
        parent_id=changes.get("parent_id") or None,
        move="parent_id" in changes,
    )
    return {"success": True, "message": "Folder updated successfully", "folder": folder.to_dict()}
