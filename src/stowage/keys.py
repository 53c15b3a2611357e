"""Storage key algebra.

Pure functions for normalizing, joining and deriving storage keys. A key is
always a ``/``-separated string with no leading, trailing or repeated
separators. Inputs to public storage calls may be either a bare path or an
absolute URL previously issued for the configured base URL; parse_location
tells them apart and resolve_key_from_input turns both into a key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from stowage.errors import ErrorCode, Operation, StorageError

if TYPE_CHECKING:
    from stowage.mime import ContentTypeTable

logger = logging.getLogger(__name__)

SEPARATOR = "/"

_URL_SCHEMES = frozenset({"http", "https"})


class InputKind(StrEnum):
    """Shape of a "path or URL" argument."""

    PATH = "path"
    URL = "url"


@dataclass(frozen=True, slots=True)
class KeyInput:
    """A classified "path or URL" argument.

    Attributes:
        kind: Whether the raw value is a bare path or an absolute URL.
        raw: The value as supplied by the caller.
    """

    kind: InputKind
    raw: str


@dataclass(frozen=True, slots=True)
class ResolvedDestination:
    """A fully resolved upload destination.

    Attributes:
        key: Final object key, including root and path context.
        basename: Last key segment including extension.
        name: Basename without extension.
        extension: Extension without the dot (may be empty).
    """

    key: str
    basename: str
    name: str
    extension: str


def normalize_key(raw: str) -> str:
    """Return a clean key: no leading/trailing or repeated separators.

    Backslashes are treated as separators. Applying the function to its own
    output returns the same value.
    """
    if not raw:
        return ""
    segments = raw.replace("\\", SEPARATOR).split(SEPARATOR)
    return SEPARATOR.join(s for s in segments if s)


def join_segments(*parts: str | None) -> str:
    """Join non-empty parts with a single separator and normalize."""
    return normalize_key(SEPARATOR.join(p for p in parts if p))


def split_key(key: str) -> tuple[str, str]:
    """Split a key into (directory, basename). Directory may be empty."""
    normalized = normalize_key(key)
    if SEPARATOR not in normalized:
        return "", normalized
    directory, _, base = normalized.rpartition(SEPARATOR)
    return directory, base


def get_basename(key: str) -> str:
    return split_key(key)[1]


def get_extension(filename: str) -> str:
    """Return the extension of a basename without the dot.

    Dotfiles such as ``.env`` and names ending in a dot have no extension.
    """
    base = get_basename(filename)
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem or not ext:
        return ""
    return ext


def strip_extension(filename: str) -> str:
    """Return the basename without its extension."""
    base = get_basename(filename)
    ext = get_extension(base)
    return base[: -(len(ext) + 1)] if ext else base


def is_absolute_url(value: str) -> bool:
    """Check whether value is an absolute http(s) URL with a host."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme.lower() in _URL_SCHEMES and bool(parts.netloc)


def parse_location(value: str) -> KeyInput:
    """Classify a "path or URL" argument."""
    kind = InputKind.URL if is_absolute_url(value) else InputKind.PATH
    return KeyInput(kind=kind, raw=value)


def _origin(parts: tuple[str, str | None, int | None]) -> tuple[str, str | None, int | None]:
    scheme, host, port = parts
    if port is None:
        port = 443 if scheme == "https" else 80
    return scheme, host, port


def strip_base_url(
    url: str,
    base_url: str,
    *,
    operation: Operation = Operation.PATH,
) -> str:
    """Strip base_url from an absolute URL and return the normalized key.

    Raises:
        StorageError: INVALID_PATH_HOST if the URL does not belong to base_url
            (different scheme, host, port or path prefix).
    """
    target = urlsplit(url)
    base = urlsplit(base_url)

    target_origin = _origin((target.scheme.lower(), target.hostname, target.port))
    base_origin = _origin((base.scheme.lower(), base.hostname, base.port))

    base_prefix = base.path.rstrip(SEPARATOR)
    path = target.path
    under_prefix = (
        not base_prefix or path == base_prefix or path.startswith(base_prefix + SEPARATOR)
    )

    if target_origin != base_origin or not under_prefix:
        raise StorageError(
            ErrorCode.INVALID_PATH_HOST,
            operation,
            f"URL does not belong to the configured base URL: {target.hostname}",
            data={"input": url, "expected_host": base.hostname},
        )

    return normalize_key(path[len(base_prefix) :])


def resolve_key_from_input(
    value: str,
    base_url: str,
    *,
    operation: Operation = Operation.PATH,
) -> str:
    """Resolve a "path or URL" argument into a key.

    Absolute URLs must share scheme, host and path prefix with base_url; the
    prefix is stripped. Bare paths are normalized as-is.
    """
    location = parse_location(value)
    if location.kind is InputKind.URL:
        return strip_base_url(location.raw, base_url, operation=operation)
    return normalize_key(location.raw)


def to_url(base_url: str, key: str) -> str:
    """Build the public URL for a key."""
    return f"{base_url.rstrip(SEPARATOR)}{SEPARATOR}{key}"


def resolve_destination_key(
    destination: str,
    content_type: str | None,
    table: ContentTypeTable,
    *,
    root: str = "",
    segments: tuple[str, ...] = (),
) -> ResolvedDestination:
    """Resolve an upload destination into its final key.

    The key is root + segments + destination. When the destination basename
    has no extension, one is inferred from content_type. Without a content
    type, or without a known extension for it, the trailing segment is taken
    as the complete name and nothing is appended.
    """
    joined = join_segments(root, *segments, destination)
    directory, base = split_key(joined)
    ext = get_extension(base)

    if not ext and content_type:
        inferred = table.extension_for(content_type)
        if inferred:
            logger.debug("Inferred extension %r for %r from %s", inferred, base, content_type)
            base = f"{base}.{inferred}"
            ext = inferred

    key = join_segments(directory, base)
    return ResolvedDestination(
        key=key,
        basename=base,
        name=strip_extension(base),
        extension=ext,
    )
