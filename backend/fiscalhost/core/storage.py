import logging
import uuid
from pathlib import Path
from typing import Optional

from supabase import create_client

from fiscalhost.core.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Upload to object storage failed."""


def _file_extension(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return Path(filename).suffix.lower()


def build_object_path(prefix: str, filename: Optional[str]) -> str:
    stem = Path(filename).stem if filename else ""
    token = uuid.uuid4().hex[:6]
    ext = _file_extension(filename)
    name = f"{stem}.{token}{ext}" if stem else f"{token}{ext}"
    return f"{prefix}/{name}"


def get_storage_client():
    settings = get_settings()
    key = settings.supabase_service_role_key or settings.supabase_key
    if not settings.supabase_url or not key:
        raise StorageError("Supabase storage credentials are not configured")
    return create_client(settings.supabase_url, key)


def build_object_url(bucket: str, path: str) -> str:
    settings = get_settings()
    return f"{settings.supabase_url}/storage/v1/object/public/{bucket}/{path}"


def _upload_single(client, bucket: str, path: str, content: bytes, content_type: Optional[str]) -> str:
    """Upload a single file and return its public URL."""
    options = {"content-type": content_type} if content_type else None
    try:
        result = client.storage.from_(bucket).upload(path, content, options)
    except Exception as exc:  # pragma: no cover
        raise StorageError(f"Upload to {bucket} failed") from exc

    error = None
    if isinstance(result, dict):
        error = result.get("error")
    else:
        error = getattr(result, "error", None)

    if error:
        raise StorageError(f"Upload to {bucket} failed: {error}")

    return build_object_url(bucket, path)


def upload_expense_attachment(
    *,
    expense_prefix: str,
    filename: Optional[str],
    content: bytes,
    content_type: Optional[str],
) -> tuple[str, str]:
    settings = get_settings()
    path = build_object_path(expense_prefix, filename)
    url = _upload_single(get_storage_client(), settings.expense_attachments_bucket, path, content, content_type)
    logger.info("Uploaded expense attachment bucket=%s path=%s", settings.expense_attachments_bucket, path)
    return path, url
