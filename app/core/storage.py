"""
Object storage — uploads to Supabase storage buckets, returns public URLs.
"""

import logging
import secrets
import time

from app.core.database import get_supabase

logger = logging.getLogger(__name__)

MATERIAL_TYPES = {
    "pdf": {"pdf"},
    "doc": {"doc", "docx", "odt", "rtf", "txt"},
    "ppt": {"ppt", "pptx", "odp"},
    "image": {"png", "jpg", "jpeg", "gif", "webp", "svg"},
    "video": {"mp4", "mov", "avi", "mkv", "webm"},
}


def file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def detect_material_type(filename: str) -> str:
    ext = file_extension(filename)
    for material_type, extensions in MATERIAL_TYPES.items():
        if ext in extensions:
            return material_type
    return "other"


def build_object_path(prefix: str, filename: str) -> str:
    """prefix/{millis}-{random}.{ext}; keeps uploads from colliding."""
    ext = file_extension(filename) or "bin"
    name = f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.{ext}"
    return f"{prefix.strip('/')}/{name}" if prefix else name


def upload_file(bucket: str, path: str, content: bytes, content_type: str | None = None) -> str:
    """Upload bytes to `bucket/path` and return the public URL."""
    storage = get_supabase().storage.from_(bucket)
    storage.upload(
        path,
        content,
        {
            "content-type": content_type or "application/octet-stream",
            "cache-control": "3600",
            "upsert": "false",
        },
    )
    url = storage.get_public_url(path)
    logger.info("Uploaded %d bytes to %s/%s", len(content), bucket, path)
    return url


def remove_file(bucket: str, public_url: str) -> None:
    """Best-effort removal of an object given its public URL."""
    marker = f"/{bucket}/"
    if marker not in public_url:
        return
    path = public_url.split(marker, 1)[1].split("?", 1)[0]
    try:
        get_supabase().storage.from_(bucket).remove([path])
    except Exception as e:
        logger.warning("Could not remove %s from %s: %s", path, bucket, e)
