from __future__ import annotations

import uuid
from pathlib import Path

from ctrltab.services.errors import ValidationError

ALLOWED_ICON_EXTENSIONS = {"png", "svg", "ico"}


def icon_extension(filename: str | None) -> str:
    _, dot, extension = (filename or "").rpartition(".")
    extension = extension.lower()
    if not dot or extension not in ALLOWED_ICON_EXTENSIONS:
        raise ValidationError("icon must be a png, svg or ico file")
    return extension


def store_icon(upload, folder: str, max_bytes: int) -> str:
    """Save an uploaded icon under a generated name and return that name."""
    if upload is None or not upload.filename:
        raise ValidationError("file field is required")
    extension = icon_extension(upload.filename)
    data = upload.read(max_bytes + 1)
    if not data:
        raise ValidationError("uploaded file is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"icon must be at most {max_bytes // 1024} KB")

    target_dir = Path(folder)
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{uuid.uuid4().hex}.{extension}"
    (target_dir / filename).write_bytes(data)
    return filename
