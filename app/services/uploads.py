from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import PurePosixPath

from app.core.config import Settings
from app.services.errors import ValidationError
from app.services.storage import AssetStore, StoredAsset


log = logging.getLogger(__name__)

# jpg and jpeg name the same format
_ALIASES = {"jpg": "jpeg"}


@dataclass(frozen=True)
class IncomingUpload:
    filename: str
    content_type: str
    data: bytes


def _canonical(subtype: str) -> str:
    subtype = subtype.lower().strip()
    return _ALIASES.get(subtype, subtype)


def _allowed_label(settings: Settings) -> str:
    return ", ".join(settings.allowed_image_types)


def validate_upload(upload: IncomingUpload, settings: Settings) -> str:
    """
    Check type and size of an uploaded image before anything is stored.

    The extension and the declared content type must both be in the
    allowed set and must name the same format. Returns the normalised
    file extension (without dot).
    """
    allowed = {_canonical(t) for t in settings.allowed_image_types}
    type_error = ValidationError(f"Only image files ({_allowed_label(settings)}) are allowed!")

    ext = PurePosixPath(upload.filename or "").suffix.lstrip(".").lower()
    if not ext or _canonical(ext) not in allowed:
        raise type_error

    major, _, subtype = (upload.content_type or "").partition("/")
    if major.lower() != "image" or _canonical(subtype) not in allowed:
        raise type_error

    if _canonical(ext) != _canonical(subtype):
        raise ValidationError(
            f"File extension .{ext} does not match content type {upload.content_type}",
        )

    if len(upload.data) > settings.max_upload_bytes:
        raise ValidationError(f"File size too large. Max {settings.max_upload_label} allowed.")

    if not upload.data:
        raise ValidationError("Uploaded file is empty")

    return ext


def generate_asset_name(prefix: str, ext: str) -> str:
    # millisecond timestamp plus random suffix: unique across concurrent uploads
    return f"{prefix}-{time.time_ns() // 1_000_000}-{secrets.token_hex(6)}.{ext}"


async def store_upload(
    store: AssetStore,
    upload: IncomingUpload,
    *,
    prefix: str,
    settings: Settings,
) -> StoredAsset:
    ext = validate_upload(upload, settings)
    name = generate_asset_name(prefix, ext)
    content_type = f"image/{_canonical(ext)}"
    asset = await store.store(upload.data, content_type, name)
    log.info("upload stored: backend=%s key=%s bytes=%d", asset.backend, asset.key, asset.bytes)
    return asset
