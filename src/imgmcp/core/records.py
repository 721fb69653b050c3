"""Image record model and identifier helpers.

An :class:`ImageRecord` describes one image produced by the server.  The
on-disk representation uses the camelCase field names of the metadata file
(``filePath``, ``type``, ``timestamp``, ...) while Python code uses the
snake_case attribute names.
"""

from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMAGE_URI_PREFIX = "img://image/"

ImageFormat = Literal["png", "jpeg", "webp"]
SUPPORTED_FORMATS: tuple[str, ...] = ("png", "jpeg", "webp")

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ImageKind(str, Enum):
    """How an image came to exist."""

    GENERATED = "generated"
    EDITED = "edited"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_image_id(now: datetime | None = None) -> str:
    """Create a time-derived identifier with a random suffix.

    Format: ``2026-10-17T07-13-02-123Z-k3x9qa`` (ISO timestamp with ``:`` and
    ``.`` replaced so the id is safe in file names).

    Args:
        now: Timestamp to derive the id from (defaults to the current time).

    Returns:
        New image id.
    """
    moment = (now or utc_now()).astimezone(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{stamp.replace(':', '-').replace('.', '-')}-{suffix}"


def image_uri(image_id: str) -> str:
    return f"{IMAGE_URI_PREFIX}{image_id}"


def parse_image_reference(reference: str) -> str:
    """Accept either a bare image id or an ``img://image/{id}`` URI."""
    reference = reference.strip()
    if reference.startswith(IMAGE_URI_PREFIX):
        return reference[len(IMAGE_URI_PREFIX) :]
    return reference


class ImageRecord(BaseModel):
    """Persisted description of one generated or edited image.

    Records are never modified after creation; an edit produces a new record
    whose ``parent_id`` points back at the source.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    storage_path: str = Field(..., alias="filePath")
    uri: str
    prompt: str
    kind: ImageKind = Field(..., alias="type")
    created_at: datetime = Field(default_factory=utc_now, alias="timestamp")
    model: str
    format: ImageFormat
    size_bytes: int = Field(..., alias="size", ge=0)
    reference_images: list[str] = Field(default_factory=list, alias="referenceImages")
    parent_id: str | None = Field(default=None, alias="parentImageId")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Timestamps written by older versions may be naive.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("reference_images", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    def to_json_dict(self) -> dict:
        """Serialise with the metadata-file field names."""
        return self.model_dump(mode="json", by_alias=True)

    def summary(self) -> dict:
        """Short listing form used by ``list_images`` and ``search_images``."""
        return {
            "id": self.id,
            "uri": self.uri,
            "prompt": self.prompt,
            "type": self.kind.value,
            "timestamp": self.created_at.isoformat(),
            "filePath": self.storage_path,
            "size": self.size_bytes,
            "model": self.model,
            "format": self.format,
        }
