from fastapi import Request
from fastapi.responses import RedirectResponse
from typing import Dict, Any, Optional

from controllers.app_state import get_folder_dal, get_image_dal
from dal.image_dal import ANY_FOLDER
from models.image_record import SOURCE_MANUAL, ImageRecord
from utils.errors import NotFoundError, ValidationError

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


def _parse_positive_int(raw: Optional[str], default: int, name: str, upper: Optional[int] = None) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1 or (upper is not None and value > upper):
        bounds = f" (must be between 1 and {upper})" if upper else ""
        raise ValidationError(f"Invalid {name} parameter{bounds}")
    return value


async def _check_folder(request: Request, folder_id: Optional[str]) -> None:
    if folder_id is not None and not await get_folder_dal(request).exists(folder_id):
        raise ValidationError(f"Folder {folder_id} does not exist")


async def list_images(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    folder_id: Optional[str] = None,
    include_stats: bool = False,
) -> Dict[str, Any]:
    """Paginated listing, newest first.

    Args:
        request: FastAPI Request (used to reach the metadata store).
        page: 1-based page number as received in the query string.
        limit: Page size, 1..100.
        category: Optional category filter.
        folder_id: Optional folder filter; `root` selects images outside any folder.
        include_stats: Add the `stats` counters to the response.

    Returns:
        A dict with `images`, `pagination` and `categories`.
    """
    page_no = _parse_positive_int(page, 1, "page")
    page_size = _parse_positive_int(limit, DEFAULT_PAGE_SIZE, "limit", upper=MAX_PAGE_SIZE)

    folder_filter: Any = ANY_FOLDER
    if folder_id:
        folder_filter = None if folder_id == "root" else folder_id

    image_dal = get_image_dal(request)
    images, total = await image_dal.list_images(page_no, page_size, category or None, folder_filter)

    result: Dict[str, Any] = {
        "success": True,
        "images": [img.to_dict() for img in images],
        "pagination": {
            "page": page_no,
            "limit": page_size,
            "total": total,
            "totalPages": -(-total // page_size),
        },
        "categories": await image_dal.get_categories(),
    }
    if include_stats:
        result["stats"] = await image_dal.get_stats()
    return result


async def get_image(request: Request, image_id: Optional[str], serve: bool = False):
    """Return one record, or redirect to its stored URL when `serve` is set.

    Raises:
        ValidationError if the id is missing, NotFoundError if it is unknown.
    """
    if not image_id:
        raise ValidationError("Image ID is required")
    record = await get_image_dal(request).get(image_id)
    if record is None:
        raise NotFoundError("Image not found")
    if serve:
        return RedirectResponse(record.url, status_code=302)
    return {"success": True, "image": record.to_dict()}


async def create_image(request: Request, fields: Dict[str, Any]) -> Dict[str, Any]:
    """Index an image that already lives at `url`."""
    if not fields.get("url") or not fields.get("filename"):
        raise ValidationError("URL and filename are required")
    await _check_folder(request, fields.get("folder_id"))

    record = ImageRecord(
        id=None,
        url=fields["url"],
        filename=fields["filename"],
        category=fields.get("category") or "uncategorized",
        description=fields.get("description") or "",
        folder_id=fields.get("folder_id"),
        external_file_id=fields.get("file_id") or None,
        size=fields.get("size"),
        source=SOURCE_MANUAL,
    )
    created = await get_image_dal(request).create(record)
    return {"success": True, "message": "Image added successfully", "image": created.to_dict()}


async def update_image(request: Request, image_id: Optional[str], changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `changes` over an existing record; only keys the client sent are applied."""
    if not image_id:
        raise ValidationError("Image ID is required")
    if "folder_id" in changes:
        await _check_folder(request, changes["folder_id"])

    updated = await get_image_dal(request).update(image_id, changes)
    if updated is None:
        raise NotFoundError("Image not found")
    return {"success": True, "message": "Image updated successfully", "image": updated.to_dict()}


async def delete_image(request: Request, image_id: Optional[str]) -> Dict[str, Any]:
    if not image_id:
        raise ValidationError("Image ID is required")
    deleted = await get_image_dal(request).delete(image_id)
    if deleted is None:
        raise NotFoundError("Image not found")
    return {"success": True, "message": "Image deleted successfully", "deletedImage": deleted.to_dict()}
