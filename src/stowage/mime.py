"""Content-type inference.

A small bidirectional table between MIME types and file extensions. It is
used in two directions:

- destination without an extension: infer the extension from a content type;
- payload without a content type: infer the content type from the extension.

The table is immutable; ``with_type`` returns an extended copy so callers can
register their own types at build time. No magic-byte sniffing is done.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from stowage.keys import get_extension

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# First extension is the preferred one when inferring an extension.
_DEFAULT_TYPES: dict[str, tuple[str, ...]] = {
    "image/png": ("png",),
    "image/jpeg": ("jpg", "jpeg"),
    "image/gif": ("gif",),
    "image/webp": ("webp",),
    "image/avif": ("avif",),
    "image/svg+xml": ("svg",),
    "image/x-icon": ("ico",),
    "image/bmp": ("bmp",),
    "image/tiff": ("tiff", "tif"),
    "image/heic": ("heic",),
    "video/mp4": ("mp4",),
    "video/webm": ("webm",),
    "video/quicktime": ("mov",),
    "video/x-msvideo": ("avi",),
    "audio/mpeg": ("mp3",),
    "audio/wav": ("wav",),
    "audio/ogg": ("ogg",),
    "audio/aac": ("aac",),
    "application/pdf": ("pdf",),
    "application/json": ("json",),
    "application/xml": ("xml",),
    "application/zip": ("zip",),
    "application/gzip": ("gz",),
    "application/msword": ("doc",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ("docx",),
    "application/vnd.ms-excel": ("xls",),
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ("xlsx",),
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ("pptx",),
    "text/plain": ("txt",),
    "text/csv": ("csv",),
    "text/html": ("html", "htm"),
    "text/css": ("css",),
    "text/markdown": ("md",),
    "text/javascript": ("js",),
    "font/woff": ("woff",),
    "font/woff2": ("woff2",),
}


def normalize_content_type(content_type: str) -> str:
    """Lowercase a content type and drop parameters (e.g. ``; charset=utf-8``)."""
    return content_type.split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class ContentTypeTable:
    """Immutable MIME type <-> extension table.

    Attributes:
        types: Mapping of normalized content type to its extensions, preferred first.
    """

    types: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType(dict(_DEFAULT_TYPES))
    )

    def __post_init__(self) -> None:
        by_extension: dict[str, str] = {}
        for content_type, extensions in self.types.items():
            for ext in extensions:
                by_extension.setdefault(ext, content_type)
        object.__setattr__(self, "_by_extension", MappingProxyType(by_extension))

    def with_type(self, content_type: str, *extensions: str) -> ContentTypeTable:
        """Return a copy of the table with content_type mapped to extensions.

        Extensions are given without the dot; a leading dot is tolerated.
        Extensions already claimed by another type are re-pointed to the new one.
        """
        normalized = normalize_content_type(content_type)
        cleaned = tuple(e.lstrip(".").lower() for e in extensions if e.strip("."))
        if not normalized or not cleaned:
            raise ValueError("content type and at least one extension are required")

        updated: dict[str, tuple[str, ...]] = {}
        for existing_type, existing_exts in self.types.items():
            kept = tuple(e for e in existing_exts if e not in cleaned)
            if kept and existing_type != normalized:
                updated[existing_type] = kept
        updated[normalized] = cleaned
        return ContentTypeTable(types=MappingProxyType(updated))

    def extension_for(self, content_type: str) -> str | None:
        """Preferred extension for a content type, or None if unknown."""
        extensions = self.types.get(normalize_content_type(content_type))
        return extensions[0] if extensions else None

    def content_type_for(self, filename: str) -> str | None:
        """Content type for a filename's extension, or None if unknown."""
        ext = get_extension(filename).lower()
        if not ext:
            return None
        by_extension: Mapping[str, str] = self._by_extension  # type: ignore[attr-defined]
        return by_extension.get(ext)

    def resolve(self, filename: str, explicit: str | None = None) -> str:
        """Pick the content type for an upload.

        An explicit content type wins; otherwise the filename's extension is
        looked up; otherwise the generic octet-stream type is returned.
        """
        if explicit:
            return normalize_content_type(explicit)
        return self.content_type_for(filename) or DEFAULT_CONTENT_TYPE

    @property
    def content_types(self) -> frozenset[str]:
        return frozenset(self.types)

