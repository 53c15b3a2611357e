"""Upload policy engine.

Validates a pending upload against the configured policies before any
adapter call. All violations are collected and reported together in a single
UPLOAD_POLICY_VIOLATION error so no partial write happens on rejection.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stowage.errors import ErrorCode, Operation, StorageError
from stowage.keys import get_extension
from stowage.mime import normalize_content_type

logger = logging.getLogger(__name__)


class ViolationReason(StrEnum):
    """Why an upload was rejected."""

    MAX_FILE_SIZE_EXCEEDED = "MAX_FILE_SIZE_EXCEEDED"
    MIME_TYPE_NOT_ALLOWED = "MIME_TYPE_NOT_ALLOWED"
    EXTENSION_NOT_ALLOWED = "EXTENSION_NOT_ALLOWED"


class PolicyViolation(BaseModel):
    """A single failed policy check."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    reason: ViolationReason
    message: str
    data: dict[str, object] = Field(default_factory=dict)


class UploadPolicies(BaseModel):
    """Upload policies applied to every upload path.

    Attributes:
        max_file_size: Maximum payload size in bytes. None disables the check.
        allowed_mime_types: Accepted content types. Empty allows everything.
        allowed_extensions: Accepted extensions without dot. Empty allows everything.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_file_size: int | None = Field(default=None, ge=0)
    allowed_mime_types: frozenset[str] = Field(default_factory=frozenset)
    allowed_extensions: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("allowed_mime_types")
    @classmethod
    def normalize_mime_types(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(normalize_content_type(m) for m in v if m.strip())

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(e.strip().lstrip(".").lower() for e in v if e.strip().strip("."))

    @property
    def is_empty(self) -> bool:
        return (
            self.max_file_size is None
            and not self.allowed_mime_types
            and not self.allowed_extensions
        )


def _size_violation(size: int, max_file_size: int) -> PolicyViolation:
    return PolicyViolation(
        reason=ViolationReason.MAX_FILE_SIZE_EXCEEDED,
        message=f"File size {size} exceeds max {max_file_size}",
        data={"size": size, "max_file_size": max_file_size},
    )


def _raise_violations(violations: list[PolicyViolation], key: str | None) -> None:
    reasons = ", ".join(v.reason.value for v in violations)
    logger.info("Upload rejected by policy: key=%s reasons=%s", key, reasons)
    raise StorageError(
        ErrorCode.UPLOAD_POLICY_VIOLATION,
        Operation.UPLOAD,
        f"File upload was rejected due to policy violations: {reasons}",
        data={"key": key, "violations": [v.model_dump() for v in violations]},
    )


def check_upload_policy(
    size: int | None,
    content_type: str,
    filename: str,
    policies: UploadPolicies,
    *,
    key: str | None = None,
) -> None:
    """Validate an upload against policies.

    Args:
        size: Payload size in bytes, or None when unknown (lazy streams).
        content_type: Resolved content type of the upload.
        filename: Destination basename (used for the extension check).
        policies: Policies to enforce.
        key: Resolved key, reported in the error data.

    Raises:
        StorageError: UPLOAD_POLICY_VIOLATION listing every failed check.
    """
    if policies.is_empty:
        return

    violations: list[PolicyViolation] = []

    if policies.max_file_size is not None and size is not None and size > policies.max_file_size:
        violations.append(_size_violation(size, policies.max_file_size))

    normalized_type = normalize_content_type(content_type)
    if policies.allowed_mime_types and normalized_type not in policies.allowed_mime_types:
        violations.append(
            PolicyViolation(
                reason=ViolationReason.MIME_TYPE_NOT_ALLOWED,
                message=f'Mime type "{normalized_type}" is not allowed',
                data={
                    "content_type": normalized_type,
                    "allowed": sorted(policies.allowed_mime_types),
                },
            )
        )

    ext = get_extension(filename).lower()
    if policies.allowed_extensions and ext and ext not in policies.allowed_extensions:
        violations.append(
            PolicyViolation(
                reason=ViolationReason.EXTENSION_NOT_ALLOWED,
                message=f'Extension ".{ext}" is not allowed',
                data={"extension": ext, "allowed": sorted(policies.allowed_extensions)},
            )
        )

    if violations:
        _raise_violations(violations, key)


async def enforce_stream_limit(
    chunks: AsyncIterator[bytes],
    max_file_size: int,
    *,
    key: str | None = None,
) -> AsyncIterator[bytes]:
    """Yield chunks, failing once the running total exceeds max_file_size.

    Used for lazy streams whose size is not known up front. The adapter
    receiving this iterator sees the StorageError and must discard the
    partial object.
    """
    total = 0
    async for chunk in chunks:
        total += len(chunk)
        if total > max_file_size:
            _raise_violations([_size_violation(total, max_file_size)], key)
        yield chunk
