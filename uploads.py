"""
Local file storage for uploaded avatars and announcement attachments.

Files land under UPLOAD_ROOT/uploads/<kind>/ and are referenced in the database
by their relative path ("uploads/<kind>/<file>").
"""
import logging
import os
import secrets
import time
from typing import Optional, Set

from fastapi import HTTPException, UploadFile

logger = logging.getLogger(__name__)

UPLOAD_ROOT = os.getenv("UPLOAD_ROOT", ".")
UPLOADS_DIR = "uploads"

IMAGE_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
PDF_EXTENSIONS = {".pdf"}

AVATAR_MAX_BYTES = 5 * 1024 * 1024
ATTACHMENT_MAX_BYTES = 10 * 1024 * 1024


def uploads_path() -> str:
    return os.path.join(UPLOAD_ROOT, UPLOADS_DIR)


def _extension(filename: str) -> str:
    return os.path.splitext(os.path.basename(filename or ""))[1].lower()


def is_image(upload: UploadFile) -> bool:
    return (upload.content_type or "").startswith("image/")


def validate_upload(upload: UploadFile, allowed_extensions: Set[str]) -> str:
    ext = _extension(upload.filename)
    content_type = upload.content_type or ""
    type_ok = content_type.startswith("image/") or content_type == "application/pdf"
    if ext not in allowed_extensions or not type_ok:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(allowed_extensions))}. Received: {content_type or 'unknown'}",
        )
    if content_type == "application/pdf" and ext not in PDF_EXTENSIONS:
        raise HTTPException(status_code=400, detail="File extension does not match its type")
    return ext


def save_upload(upload: UploadFile, kind: str, owner_id: str, allowed_extensions: Set[str], max_bytes: int) -> str:
    ext = validate_upload(upload, allowed_extensions)
    directory = os.path.join(uploads_path(), kind)
    os.makedirs(directory, exist_ok=True)
    filename = f"{owner_id}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"
    full_path = os.path.join(directory, filename)

    written = 0
    try:
        with open(full_path, "wb") as out:
            while True:
                chunk = upload.file.read(1024 * 1024)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise HTTPException(
                        status_code=400,
                        detail=f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
                    )
                out.write(chunk)
    except HTTPException:
        _remove(full_path)
        raise

    relative = f"{UPLOADS_DIR}/{kind}/{filename}"
    logger.info("Stored upload %s (%d bytes)", relative, written)
    return relative


def _remove(full_path: str) -> None:
    try:
        os.remove(full_path)
    except FileNotFoundError:
        pass


def delete_upload(relative_path: Optional[str]) -> None:
    """Remove a stored file by its relative path; missing files and foreign paths are ignored."""
    if not relative_path:
        return
    rel = relative_path.lstrip("/")
    if not rel.startswith(f"{UPLOADS_DIR}/"):
        return
    root = os.path.abspath(uploads_path())
    full = os.path.abspath(os.path.join(UPLOAD_ROOT, rel))
    if not full.startswith(root + os.sep):
        return
    try:
        os.remove(full)
        logger.info("Deleted upload %s", rel)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Could not delete upload %s: %s", rel, e)
