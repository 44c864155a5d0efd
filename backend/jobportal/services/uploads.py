"""
Upload storage for file-answer questions.

Enforces the file policy (PDF, DOC, DOCX, JPEG, PNG up to MAX_UPLOAD_MB)
and writes accepted files under UPLOAD_DIR with a generated name.
"""

import os
import uuid
from datetime import datetime, timezone

from jobportal import config
from jobportal.errors import ValidationError
from jobportal.logging_config import get_logger, log_with_context

logger = get_logger("uploads")


def check_upload_policy(mimetype: str, size: int):
    if mimetype not in config.ALLOWED_UPLOAD_TYPES:
        raise ValidationError("Invalid file type. Only PDF, DOC, DOCX, JPG, PNG are allowed")
    if size > config.MAX_UPLOAD_BYTES:
        raise ValidationError("File size too large. Maximum {}MB allowed".format(config.MAX_UPLOAD_MB))


def store_upload(content: bytes, original_name: str, mimetype: str) -> dict:
    """
    Write an uploaded answer file and return its metadata.

    The stored name is a fresh UUID plus the original extension, so
    candidate-supplied names never reach the filesystem.
    """
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    extension = os.path.splitext(original_name or "")[1].lower()
    file_name = "{}{}".format(uuid.uuid4().hex, extension)
    path = os.path.join(config.UPLOAD_DIR, file_name)

    with open(path, "wb") as f:
        f.write(content)

    log_with_context(logger, "INFO", "Stored upload {}".format(file_name),
                     extra_data={"size": len(content), "mimetype": mimetype})

    return {
        "filename": file_name,
        "original_name": original_name,
        "mimetype": mimetype,
        "size": len(content),
        "path": path,
        "uploaded_at": datetime.now(timezone.utc).replace(tzinfo=None),
    }


def discard_upload(path: str):
    """Remove a stored answer file; a file that is already gone is ignored."""
    try:
        os.remove(path)
    except FileNotFoundError:
        log_with_context(logger, "WARNING", "Upload already removed: {}".format(path))
        return
    log_with_context(logger, "INFO", "Discarded upload {}".format(os.path.basename(path)))
