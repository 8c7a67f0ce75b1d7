"""
Upload validation and placement in the public bucket prefix.
"""

from __future__ import annotations

import uuid

from fastapi import HTTPException, UploadFile

from snapbox.config import Settings
from snapbox.storage import StorageClient

PUBLIC_PREFIX = "public"
READ_CHUNK_BYTES = 1024 * 1024


def _too_large(settings: Settings) -> HTTPException:
    return HTTPException(
        status_code=413,
        detail=f"File exceeds the {settings.max_upload_bytes // (1024 * 1024)}MB limit",
    )


def is_allowed_type(content_type: str | None, settings: Settings) -> bool:
    return bool(content_type) and content_type in settings.allowed_upload_types


def validate_upload(
    filename: str | None, content_type: str | None, size: int, settings: Settings
) -> None:
    if not filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not is_allowed_type(content_type, settings):
        raise HTTPException(status_code=400, detail=f"File type not allowed: {content_type}")
    if size > settings.max_upload_bytes:
        raise _too_large(settings)


async def read_upload(
    file: UploadFile, settings: Settings, chunk_size: int = READ_CHUNK_BYTES
) -> bytes:
    """Read ``file`` in chunks, failing with 413 as soon as the size limit is passed."""
    limit = settings.max_upload_bytes
    buffer = bytearray()
    while True:
        chunk = await file.read(min(chunk_size, limit + 1 - len(buffer)))
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > limit:
            raise _too_large(settings)
    return bytes(buffer)


def storage_path_for(filename: str) -> str:
    """``public/<uuid>.<ext>``; names without a dot get no extension."""
    name = uuid.uuid4()
    if "." in filename:
        ext = filename.rsplit(".", 1)[-1]
        if ext:
            return f"{PUBLIC_PREFIX}/{name}.{ext}"
    return f"{PUBLIC_PREFIX}/{name}"


def store_public_file(
    storage: StorageClient, filename: str, content_type: str, data: bytes
) -> tuple[str, str]:
    path = storage_path_for(filename)
    storage.upload_bytes(path, data, content_type, upsert=False)
    return path, storage.public_url(path)
