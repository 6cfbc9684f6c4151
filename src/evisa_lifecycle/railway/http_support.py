"""
HTTP integration — ErrorCode → HTTP status mapping and error bodies.

Used by the operational ASGI surface; the engine itself is transport agnostic.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from evisa_lifecycle.railway.failure import ErrorCode, FailureDescription


class HttpStatusMapper:
    """Maps ErrorCode values to HTTP status codes."""

    _CODE_TO_STATUS: dict[ErrorCode, int] = {
        ErrorCode.VALIDATION_ERROR: 400,
        ErrorCode.FORBIDDEN: 403,
        ErrorCode.NOT_FOUND: 404,
        ErrorCode.INVALID_TRANSITION: 409,
        ErrorCode.CONCURRENT_MODIFICATION: 409,
        ErrorCode.CONFLICT: 409,
        ErrorCode.DATABASE_ERROR: 500,
        ErrorCode.TECHNICAL_ERROR: 500,
        ErrorCode.EXTERNAL_SERVICE_ERROR: 502,
    }

    @classmethod
    def map_error_code(cls, code: ErrorCode) -> int:
        return cls._CODE_TO_STATUS.get(code, 500)

    @classmethod
    def map_failure(cls, failure: FailureDescription) -> int:
        return cls.map_error_code(failure.code)


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """
    Standardized error body.

        {
            "error_code": "INVALID_TRANSITION",
            "message": "Mandatory documents missing",
            "details": {"missing": ["bank_statement"]},
            "timestamp": "2026-02-17T10:30:00+00:00"
        }
    """

    error_code: str
    message: str
    details: dict[str, Any]
    timestamp: str

    @staticmethod
    def from_failure(failure: FailureDescription) -> ErrorResponse:
        return ErrorResponse(
            error_code=failure.code.value,
            message=failure.message,
            details=dict(failure.details),
            timestamp=failure.timestamp.isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
