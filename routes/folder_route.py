"""FastAPI routes for folders."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.auth_controller import require_admin
from controllers.folder_controller import create_folder, list_folders, update_folder

router = APIRouter(prefix="/folders", tags=["folders"])


class FolderCreatePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	name: Optional[str] = None
	parent_id: Optional[str] = Field(None, alias="parentId")


class FolderUpdatePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	id: Optional[str] = None
	name: Optional[str] = None
	parent_id: Optional[str] = Field(None, alias="parentId")


@router.get("")
async def list_folders_route(request: Request):
	try:
		return await list_folders(request)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("", status_code=201)
async def create_folder_route(request: Request, payload: FolderCreatePayload):
	try:
		require_admin(request)
		return await create_folder(request, payload.name, payload.parent_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.put("")
async def update_folder_route(request: Request, payload: FolderUpdatePayload):
	"""Rename a folder or move it under another parent (`parentId: null` moves it to the root)."""
	try:
		require_admin(request)
		return await update_folder(request, payload.id, payload.model_dump(exclude_unset=True, exclude={"id"}))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc
