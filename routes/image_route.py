from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from controllers.auth_controller import require_admin
from controllers.image_controller import create_image, delete_image, get_image, list_images, update_image

router = APIRouter(tags=["images"])


class ImageCreatePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	url: Optional[str] = None
	filename: Optional[str] = None
	category: Optional[str] = None
	description: Optional[str] = None
	folder_id: Optional[str] = Field(None, alias="folderId")
	file_id: Optional[str] = Field(None, alias="fileId")
	size: Optional[int] = None


class ImageUpdatePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	id: Optional[str] = None
	url: Optional[str] = None
	filename: Optional[str] = None
	category: Optional[str] = None
	description: Optional[str] = None
	folder_id: Optional[str] = Field(None, alias="folderId")


class ImageDeletePayload(BaseModel):
	id: Optional[str] = None


def _changes(payload: ImageUpdatePayload) -> dict:
	return payload.model_dump(exclude_unset=True, exclude={"id"})


@router.get("/images")
async def list_images_route(
	request: Request,
	page: Optional[str] = None,
	limit: Optional[str] = None,
	category: Optional[str] = None,
	folder_id: Optional[str] = Query(None, alias="folderId"),
	stats: Optional[str] = None,
):
	"""List images newest first, optionally filtered by category or folder."""
	try:
		return await list_images(request, page, limit, category, folder_id, include_stats=stats == "true")
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/images", status_code=201)
async def create_image_route(request: Request, payload: ImageCreatePayload):
	try:
		require_admin(request)
		return await create_image(request, payload.model_dump())
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.put("/images")
async def update_image_route(request: Request, payload: ImageUpdatePayload):
	try:
		require_admin(request)
		return await update_image(request, payload.id, _changes(payload))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.delete("/images")
async def delete_image_route(request: Request, payload: ImageDeletePayload):
	try:
		require_admin(request)
		return await delete_image(request, payload.id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.get("/image")
async def get_image_route(request: Request, id: Optional[str] = None, serve: Optional[str] = None):
	"""Return one image record; `serve=true` redirects to the image itself."""
	try:
		return await get_image(request, id, serve=serve == "true")
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.put("/image")
async def update_single_image_route(request: Request, payload: ImageUpdatePayload, id: Optional[str] = None):
	try:
		require_admin(request)
		return await update_image(request, id, _changes(payload))
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.delete("/image")
async def delete_single_image_route(request: Request, id: Optional[str] = None):
	try:
		require_admin(request)
		return await delete_image(request, id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc
