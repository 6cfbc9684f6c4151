"""
Railway-Oriented Programming primitives for the lifecycle engine.

Explicit, composable error handling — no exceptions in business logic.

    from evisa_lifecycle.railway import ErrorCode, Result

    def ensure_draft(app: Application) -> Result[Application]:
        if app.status is not ApplicationStatus.DRAFT:
            return Result.failure(ErrorCode.INVALID_TRANSITION, "Only drafts may be deleted")
        return Result.success(app)
"""

from evisa_lifecycle.railway.assertions import ResultAssertions
from evisa_lifecycle.railway.execution import LoggingExecutionContext
from evisa_lifecycle.railway.failure import ErrorCode, FailureDescription
from evisa_lifecycle.railway.result import Failure, Result, Success
from evisa_lifecycle.railway.result_failures import ResultFailures

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "LoggingExecutionContext",
    "ResultFailures",
    "ResultAssertions",
]
