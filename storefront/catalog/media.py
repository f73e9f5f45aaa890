"""
Product Media Rules

Classifies uploads as image or video by MIME prefix, enforces per-kind size
limits and hands the bytes to a MediaStore that returns a public URL.
"""

import asyncio
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional

import structlog

from storefront.config import get_settings
from storefront.errors import ValidationFailedError

logger = structlog.get_logger(__name__)

IMAGE = "image"
VIDEO = "video"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def classify_media(content_type: Optional[str]) -> str:
    """Return "image" or "video" for the MIME type, reject anything else"""
    mime = (content_type or "").strip().lower()
    if mime.startswith("image/"):
        return IMAGE
    if mime.startswith("video/"):
        return VIDEO
    raise ValidationFailedError(
        "Only image and video files can be attached to a product",
        detail={"content_type": content_type},
    )


def validate_media(content_type: Optional[str], size: int) -> str:
    """
    Check type and size of an upload.

    Returns:
        The media kind ("image" or "video")
    """
    kind = classify_media(content_type)
    media = get_settings().media
    limit = media.max_image_bytes if kind == IMAGE else media.max_video_bytes
    if size <= 0:
        raise ValidationFailedError("Uploaded file is empty")
    if size > limit:
        raise ValidationFailedError(
            f"{kind.capitalize()} exceeds the {limit // (1024 * 1024)} MB limit",
            detail={"size": size, "limit": limit},
        )
    return kind


def media_path(product_id: uuid.UUID, filename: str) -> str:
    """Storage path for a product upload: products/<id>/<random>-<name>"""
    safe_name = _UNSAFE_CHARS.sub("-", PurePosixPath(filename or "upload").name).strip("-.") or "upload"
    return f"products/{product_id}/{uuid.uuid4().hex[:12]}-{safe_name}"


class MediaStore(ABC):
    """Object storage port"""

    @abstractmethod
    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Store content at path and return its public URL"""


class LocalMediaStore(MediaStore):
    """Writes media under a local directory served at a public prefix"""

    def __init__(self, root: Optional[str] = None, public_base_url: Optional[str] = None):
        media = get_settings().media
        self.root = Path(root or media.root_path)
        self.public_base_url = (public_base_url or media.public_base_url).rstrip("/")

    def _target(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise ValidationFailedError("Invalid media path", detail={"path": path})
        return target

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        target = self._target(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        await asyncio.to_thread(_write)
        logger.info("Media stored", path=path, content_type=content_type, size=len(content))
        return f"{self.public_base_url}/{path}"
