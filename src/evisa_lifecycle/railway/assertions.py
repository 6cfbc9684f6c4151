"""
Test assertions for Result values.

    app = ResultAssertions.assert_success(service.create_application(actor, draft))
    ResultAssertions.assert_failure(result, ErrorCode.INVALID_TRANSITION)
    ResultAssertions.assert_failure_detail(result, "missing", ["bank_statement"])
"""

from __future__ import annotations

from typing import Any, TypeVar

from evisa_lifecycle.railway.failure import ErrorCode, FailureDescription
from evisa_lifecycle.railway.result import Result

T = TypeVar("T")


class ResultAssertions:
    """Expressive assertions with readable failure output."""

    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        context = f" — {message}" if message else ""
        assert result.is_success(), (
            f"Expected Success but got Failure("
            f"{result.error().code.value}: {result.error().message!r}, "
            f"details={dict(result.error().details)!r}){context}"
        )
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        context = f" — {message}" if message else ""
        assert result.is_failure(), f"Expected Failure but got Success({result.value()!r}){context}"
        error = result.error()
        if expected_code is not None:
            assert error.code == expected_code, (
                f"Expected error code {expected_code.value} "
                f"but got {error.code.value}: {error.message!r}{context}"
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        error = ResultAssertions.assert_failure(result)
        assert substring.lower() in error.message.lower(), (
            f"Expected failure message to contain {substring!r} but message was: {error.message!r}"
        )

    @staticmethod
    def assert_failure_detail(result: Result[T], key: str, expected: Any) -> None:
        """Assert the failure carries `details[key] == expected`."""
        error = ResultAssertions.assert_failure(result)
        assert key in error.details, (
            f"Expected failure detail {key!r}; details were {dict(error.details)!r}"
        )
        assert error.details[key] == expected, (
            f"Expected details[{key!r}] == {expected!r} but got {error.details[key]!r}"
        )
