"""FastAPI route for relaying image uploads."""

from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from controllers.upload_controller import upload_image

router = APIRouter(tags=["upload"])


@router.post("/upload", summary="Relay an image to the Telegram chat")
async def upload_route(
	request: Request,
	image: Optional[UploadFile] = File(None),
	category: Optional[str] = Form(None),
	folder_id: Optional[str] = Form(None, alias="folderId"),
):
	"""Handle a multipart upload (`image` file field, optional `category` and `folderId`).

	Anonymous uploads reach Telegram but are not indexed and get no URL back.
	"""
	try:
		return await upload_image(request, image, category, folder_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc)) from exc
