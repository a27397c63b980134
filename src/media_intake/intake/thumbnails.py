"""Thumbnail images pinned next to the media they describe."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass

from ..entries.entry_models import Entry
from ..exceptions import ValidationError
from ..repositories.entry_repository import EntryRepository
from ..storage.storage_engine import StorageUploadEngine

logger = logging.getLogger(__name__)

DATA_URI_PATTERN = re.compile(r"^data:image/([a-z]+);base64,(.+)$", re.DOTALL)
MAX_THUMBNAIL_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class ThumbnailImage:
    data: bytes
    filename: str
    content_type: str


def decode_data_uri(value: str) -> ThumbnailImage:
    """Parse a ``data:image/<ext>;base64,...`` string."""
    match = DATA_URI_PATTERN.match(value.strip())
    if match is None:
        raise ValidationError("Invalid base64 image data format", field="thumbnail_base64")
    extension, encoded = match.groups()
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError("Invalid base64 image data format", field="thumbnail_base64") from exc
    return ThumbnailImage(data=data, filename=f"thumb.{extension}", content_type=f"image/{extension}")


@dataclass(slots=True)
class ThumbnailService:
    storage_engine: StorageUploadEngine
    entry_repo: EntryRepository
    max_bytes: int = MAX_THUMBNAIL_BYTES

    def check(self, image: ThumbnailImage) -> ThumbnailImage:
        if not image.content_type.startswith("image/"):
            raise ValidationError("Thumbnail must be an image", field="thumbnail")
        if not image.data:
            raise ValidationError("No thumbnail file provided", field="thumbnail")
        if len(image.data) > self.max_bytes:
            raise ValidationError(
                f"Thumbnail exceeds {self.max_bytes} bytes", field="thumbnail"
            )
        return image

    async def store(self, image: ThumbnailImage) -> str:
        """Pin the image and return its ``ipfs://`` URI."""
        image = self.check(image)
        result = await self.storage_engine.upload_thumbnail(
            image.data, image.filename, image.content_type
        )
        logger.info(
            "intake.thumbnail.stored",
            extra={"content_id": result.content_id, "origin": result.origin.value},
        )
        return result.stored.uri

    async def attach(self, entry_id: str, image: ThumbnailImage) -> Entry:
        """Pin the image and point an existing entry at it."""
        self.entry_repo.get(entry_id)
        uri = await self.store(image)
        entry = self.entry_repo.set_thumbnail(entry_id, uri)
        logger.info(
            "intake.thumbnail.attached",
            extra={"entry_id": entry_id, "owner": entry.owner, "thumbnail": uri},
        )
        return entry
