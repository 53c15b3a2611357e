"""Stowage data models.

FileDescriptor is the metadata-only value returned by successful operations.
UploadOptions carries per-call upload settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stowage.mime import normalize_content_type

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"


class ReplaceStrategy(StrEnum):
    """Which existing objects are removed before an upload is written.

    BY_FILENAME: every object in the destination directory whose basename
        without extension equals the destination's.
    BY_FILENAME_AND_EXTENSION: only the exact destination key.
    """

    BY_FILENAME = "BY_FILENAME"
    BY_FILENAME_AND_EXTENSION = "BY_FILENAME_AND_EXTENSION"


@dataclass(frozen=True, slots=True)
class FileDescriptor:
    """Metadata for a stored object. Never carries bytes.

    Attributes:
        path: Full object key.
        url: Public URL (base URL + key).
        name: Basename including extension.
        extension: Extension without the dot, may be empty.
        content_type: MIME type, octet-stream when unknown.
        size: Size in bytes when known at upload time.
    """

    path: str
    url: str
    name: str
    extension: str
    content_type: str
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "url": self.url,
            "name": self.name,
            "extension": self.extension,
            "content_type": self.content_type,
            "size": self.size,
        }


class UploadOptions(BaseModel):
    """Per-call upload options.

    Attributes:
        content_type: Explicit content type. Inferred from the destination when None.
        replace: Replace strategy applied before writing, if any.
        cache_control: Cache-Control value passed to the adapter.
        public: Whether the adapter should make the object publicly readable.
        size: Declared payload size for streams of unknown length.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    content_type: str | None = None
    replace: ReplaceStrategy | None = None
    cache_control: str = DEFAULT_CACHE_CONTROL
    public: bool = True
    size: int | None = Field(default=None, ge=0)

    @field_validator("content_type")
    @classmethod
    def normalize_type(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return normalize_content_type(v)
