"""
Helpers for validating and storing multipart file uploads.
"""

from __future__ import annotations

import mimetypes
import os
import re
import uuid
from typing import Iterable, Optional

from fastapi import HTTPException, UploadFile

from shared.constants import FILE_TYPE_LABELS
from shared.types import AppSettings

PDF_CONTENT_TYPE = "application/pdf"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]+", re.UNICODE)


def safe_filename(filename: Optional[str], default: str = "upload") -> str:
    name = os.path.basename(filename or "").strip()
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name or default


def upload_content_type(upload: UploadFile) -> str:
    """The declared content type, or one guessed from the file name."""
    declared = (upload.content_type or "").split(";")[0].strip().lower()
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(upload.filename or "")
    return guessed or declared or "application/octet-stream"


def file_type_label(content_type: str) -> str:
    return FILE_TYPE_LABELS.get(content_type, content_type.split("/")[-1].upper())


def format_file_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size} B"


def make_storage_path(prefix: str, filename: str) -> str:
    return f"{prefix}/{uuid.uuid4().hex}/{safe_filename(filename)}"


async def read_upload(
    upload: Optional[UploadFile],
    app_settings: AppSettings,
    allowed_types: Optional[Iterable[str]] = None,
) -> tuple[bytes, str]:
    """
    Reads an uploaded file after checking its type and size.

    Args:
        upload: The uploaded file, or None when the form had no file.
        app_settings: Supplies the size limit and the default allowed types.
        allowed_types: Overrides app_settings.storage.allowed_types.

    Returns:
        The file bytes and its content type.

    Raises:
        HTTPException: 400 when missing or empty, 415 for a disallowed type,
            413 when larger than the configured limit.
    """
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail="A file is required")

    content_type = upload_content_type(upload)
    allowed = list(allowed_types or app_settings.storage.allowed_types)
    if content_type not in allowed:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type {content_type}; allowed: {', '.join(allowed)}",
        )

    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > app_settings.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {app_settings.storage.max_file_size} MB limit",
        )
    return data, content_type
