"""Validation helpers for uploaded images."""

import io
from typing import Optional

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from models.sync_models import UploadedImage
from utils.errors import PayloadTooLargeError, ValidationError

EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
}


def _content_type(upload: UploadFile) -> Optional[str]:
    """Return the declared MIME type, guessing from the extension when it is missing."""
    if upload.content_type and upload.content_type != "application/octet-stream":
        return upload.content_type.lower().split(";", 1)[0].strip()
    name = (upload.filename or "").lower()
    for ext, mime in EXTENSION_TYPES.items():
        if name.endswith(ext):
            return mime
    return None


async def read_image_upload(upload: Optional[UploadFile], max_bytes: int) -> UploadedImage:
    """Read and validate a multipart image upload.

    At most `max_bytes + 1` bytes are read so an oversized body is rejected
    without buffering all of it.

    Raises:
        ValidationError: Missing file, empty body, non-image type or bytes
            Pillow cannot identify.
        PayloadTooLargeError: Body larger than `max_bytes`.
    """
    if upload is None:
        raise ValidationError("No image provided")

    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise PayloadTooLargeError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if not data:
        raise ValidationError("Uploaded image is empty.")

    content_type = _content_type(upload)
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError(f"Unsupported content type: {upload.content_type or 'unknown'}")

    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Uploaded file is not a supported image") from exc

    return UploadedImage(
        filename=upload.filename or "unknown",
        content_type=content_type,
        data=data,
        width=width,
        height=height,
    )
