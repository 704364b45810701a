"""
Local file store for uploaded student certificates.
Only this module touches the disk; services receive a CertificateFile.
"""

import logging
import os
import secrets

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from coursehub.core.config import UPLOAD_DIR
from coursehub.core.errors import ValidationError
from coursehub.rewards.models import CertificateFile, FileType

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg", ".webp"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


def file_type_for(filename: str) -> FileType:
    _, ext = os.path.splitext(filename or "")
    return FileType.PDF if ext.lower() == ".pdf" else FileType.IMAGE


def _write(path: str, content: bytes):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(content)


async def save_upload(upload: UploadFile, student_id: str, upload_dir: str = UPLOAD_DIR) -> CertificateFile:
    filename = upload.filename or ""
    _, ext = os.path.splitext(filename)
    if ext.lower() not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type {ext or '(none)'} not allowed",
            errors=[{"loc": ["file"], "msg": "unsupported file type", "type": "value_error"}],
        )

    content = await upload.read()
    if not content:
        raise ValidationError(
            "No file uploaded",
            errors=[{"loc": ["file"], "msg": "empty file", "type": "value_error"}],
        )
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError(
            "File too large. Max 5MB allowed.",
            errors=[{"loc": ["file"], "msg": "file too large", "type": "value_error"}],
        )

    stored_name = f"{student_id}_{secrets.token_hex(8)}{ext.lower()}"
    path = os.path.join(upload_dir, stored_name)
    await run_in_threadpool(_write, path, content)
    logger.debug("Stored upload %s (%d bytes)", path, len(content))

    return CertificateFile(
        upload_url="/" + path.replace(os.sep, "/").lstrip("/"),
        file_name=filename,
        file_type=file_type_for(filename),
    )
