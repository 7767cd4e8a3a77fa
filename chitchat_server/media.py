"""Media uploads: data-URL parsing and the S3-backed object store."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from typing import Any, Optional

import boto3

from .errors import ValidationError

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/jpg")
VIDEO_TYPES = ("video/mp4", "video/webm", "video/ogg")
MEDIA_TYPES = IMAGE_TYPES + VIDEO_TYPES

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/ogg": "ogv",
}

DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+);base64,(?P<data>.*)$", re.DOTALL)


def parse_data_url(media: str, allowed: tuple[str, ...] = MEDIA_TYPES) -> tuple[str, str, bytes]:
    """Split a base64 data URL into (mime type, media kind, raw bytes).

    Raises:
        ValidationError: on a malformed URL or a MIME type outside `allowed`
    """
    match = DATA_URL_RE.match(media)
    if not match:
        raise ValidationError("Invalid media format")

    mime = match.group("mime").lower()
    if mime not in allowed:
        if allowed == IMAGE_TYPES:
            raise ValidationError("Only image files are allowed")
        raise ValidationError("Only image and video files are allowed")

    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Invalid media format")

    kind = "image" if mime.startswith("image") else "video"
    return mime, kind, data


class MediaStore:
    """Uploads objects to S3 and returns their public URL."""

    def __init__(
        self,
        bucket: Optional[str],
        region: str = "us-east-1",
        public_base_url: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url or (
            f"https://{bucket}.s3.{region}.amazonaws.com" if bucket else None
        )
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("s3", region_name=self.region)
        return self._client

    async def upload(self, data: bytes, mime: str, folder: str, name: str) -> str:
        """Store `data` under folder/name and return its URL."""
        if not self.bucket:
            raise RuntimeError("Media bucket not configured")

        key = f"{folder}/{name}.{EXTENSIONS.get(mime, 'bin')}"
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=mime,
        )
        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return f"{self.public_base_url}/{key}"
