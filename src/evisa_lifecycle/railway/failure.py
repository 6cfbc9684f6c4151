"""
Failure description — structured error information for the failure track.

Every recoverable condition the engine can report is an ErrorCode member.
The caller receives the code, a human message and a `details` mapping with
enough context to correct the request and retry (current status, missing
document types, the field that failed validation, ...).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Any


@unique
class ErrorCode(Enum):
    """
    Error codes of the failure track.

    Client-correctable kinds come first; infrastructure kinds follow and are
    only produced at adapter boundaries.
    """

    # --- Caller-correctable ---
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed or missing applicant field; state left unchanged (→ 400)."""

    FORBIDDEN = "FORBIDDEN"
    """Actor lacks ownership or role for the operation (→ 403)."""

    NOT_FOUND = "NOT_FOUND"
    """Referenced application, visa type or document does not exist (→ 404)."""

    INVALID_TRANSITION = "INVALID_TRANSITION"
    """Status change unreachable, guard unmet, or state forbids the edit (→ 409)."""

    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    """Compare-and-set on the stored record failed; caller should retry (→ 409)."""

    CONFLICT = "CONFLICT"
    """Duplicate application number or visa-type code/name (→ 409)."""

    # --- Infrastructure ---
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    TECHNICAL_ERROR = "TECHNICAL_ERROR"


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "Application not found")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    >>> desc.details
    {}
    """

    code: ErrorCode
    message: str
    details: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    exception: BaseException | None = field(default=None, repr=False, compare=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC), compare=False)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
