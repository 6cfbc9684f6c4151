"""
Convenience factories for the engine's recurring failures.

    ResultFailures.not_found("Application", "EVISA2026000001")
    ResultFailures.invalid_transition(
        "Mandatory documents missing", current_status="draft", missing=["photo"]
    )
"""

from __future__ import annotations

from typing import Any

from evisa_lifecycle.railway.failure import ErrorCode
from evisa_lifecycle.railway.result import Result


class ResultFailures:
    """Factory methods for the failure kinds callers are expected to handle."""

    @staticmethod
    def validation_error(message: str, field: str | None = None, **details: Any) -> Result:
        """Malformed or missing applicant input."""
        if field is not None:
            details["field"] = field
        return Result.failure(ErrorCode.VALIDATION_ERROR, message, details)

    @staticmethod
    def forbidden(message: str, **details: Any) -> Result:
        return Result.failure(ErrorCode.FORBIDDEN, message, details)

    @staticmethod
    def not_found(resource_type: str, identifier: str) -> Result:
        return Result.failure(
            ErrorCode.NOT_FOUND,
            f"{resource_type} not found with identifier: {identifier}",
            {"resource": resource_type, "identifier": identifier},
        )

    @staticmethod
    def invalid_transition(message: str, **details: Any) -> Result:
        return Result.failure(ErrorCode.INVALID_TRANSITION, message, details)

    @staticmethod
    def concurrent_modification(message: str, **details: Any) -> Result:
        return Result.failure(ErrorCode.CONCURRENT_MODIFICATION, message, details)

    @staticmethod
    def conflict(message: str, **details: Any) -> Result:
        return Result.failure(ErrorCode.CONFLICT, message, details)

    @staticmethod
    def database_error(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.DATABASE_ERROR, message, exception=exception)
