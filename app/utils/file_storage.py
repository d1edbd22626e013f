"""
utils/file_storage.py

Saves identity-document images (ID front/back, selfie) to local disk.
Swap out `save_document_image` internals later for S3 / Cloudinary / etc.
without touching any router code.
"""

import logging
import uuid
import aiofiles
from fastapi import UploadFile
from pathlib import Path

from app.core.config import settings
from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

# ─── Config ───────────────────────────────────────────────────────────────────

DOCUMENTS_SUBDIR = "documents"

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_IMAGE_SIZE_MB = 10
MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024

_EXT_TO_CONTENT_TYPE = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}

_CONTENT_TYPE_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def documents_dir() -> Path:
    path = Path(settings.MEDIA_ROOT) / DOCUMENTS_SUBDIR
    path.mkdir(parents=True, exist_ok=True)
    return path


def _resolve_content_type(file: UploadFile) -> tuple[str, str]:
    """
    Return (content_type, extension) for the uploaded file.

    Mobile clients sometimes send 'application/octet-stream', so fall back
    to the filename extension.
    """
    content_type = (file.content_type or "").lower()

    if content_type in ALLOWED_IMAGE_TYPES:
        return content_type, _CONTENT_TYPE_TO_EXT[content_type]

    filename = file.filename or ""
    ext = Path(filename).suffix.lower()
    if ext in ALLOWED_EXTENSIONS:
        return _EXT_TO_CONTENT_TYPE[ext], ext if ext != ".jpeg" else ".jpg"

    raise ValidationError(
        f"Cannot determine image type for '{filename}' (content-type: '{content_type}'). "
        "Please upload a JPEG, PNG, or WebP image.",
        field="file",
    )


async def save_document_image(file: UploadFile) -> str:
    """Validate and save one uploaded image; return its public URL."""
    _content_type, ext = _resolve_content_type(file)

    contents = await file.read()
    if not contents:
        raise ValidationError(f"Image '{file.filename}' is empty.", field="file")
    if len(contents) > MAX_IMAGE_SIZE_BYTES:
        raise ValidationError(
            f"Image '{file.filename}' exceeds {MAX_IMAGE_SIZE_MB}MB limit.", field="file"
        )

    filename = f"{uuid.uuid4().hex}{ext}"
    file_path = documents_dir() / filename

    async with aiofiles.open(file_path, "wb") as out:
        await out.write(contents)

    logger.info(f"Stored identity document image {filename} ({len(contents)} bytes)")
    return f"{settings.BASE_URL}/media/{DOCUMENTS_SUBDIR}/{filename}"


def delete_document_image(image_url: str):
    """Delete an image file given its URL. Missing files are ignored."""
    filename = image_url.split(f"/media/{DOCUMENTS_SUBDIR}/")[-1]
    file_path = Path(settings.MEDIA_ROOT) / DOCUMENTS_SUBDIR / filename
    try:
        file_path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete document image {file_path}: {e}")
