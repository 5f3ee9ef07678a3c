import re
import uuid
from typing import Optional

from studysync.config import settings
from studysync.core.errors import ValidationFailure


def object_key(group_id: str, filename: str) -> str:
    """Collision-resistant storage key: group-<id>/<uuid4>.<ext>"""
    name = uuid.uuid4().hex
    if "." in filename:
        extension = filename.rsplit(".", 1)[1].lower()
        if extension:
            return f"group-{group_id}/{name}.{extension}"
    return f"group-{group_id}/{name}"


def key_from_public_url(file_url: str, bucket: Optional[str] = None) -> Optional[str]:
    """Recover the object key from a Supabase public URL"""
    bucket = bucket or settings.storage_bucket
    match = re.search(rf"/storage/v1/object/public/{re.escape(bucket)}/(.+?)(?:\?.*)?$", file_url or "")
    return match.group(1) if match else None


def validate_upload(filename: str, content_type: str, size: int) -> None:
    """Reject files before anything is sent to the backend"""
    if not filename:
        raise ValidationFailure("A file name is required")
    if size <= 0:
        raise ValidationFailure("File is empty")
    if size > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise ValidationFailure(f"File too large. Maximum file size is {limit_mb}MB", code="file_too_large")
    if content_type not in settings.get_allowed_mime_types():
        raise ValidationFailure(
            "Unsupported file type. Please upload a PDF, image, or document file",
            code="unsupported_type",
        )
