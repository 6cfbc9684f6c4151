"""
Execution contexts — separate WHAT (a Result-returning computation) from
HOW it runs (timing and outcome logging).

    ctx = LoggingExecutionContext(operation="StatisticsRefresh")
    result = ctx.execute(aggregator.recompute_all)
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

from evisa_lifecycle.railway.failure import ErrorCode, FailureDescription
from evisa_lifecycle.railway.result import Failure, Result

T = TypeVar("T")
log = structlog.get_logger()


class LoggingExecutionContext:
    """
    Logs start, duration and outcome of a computation.

    An exception escaping the computation is converted into a
    TECHNICAL_ERROR failure instead of propagating.
    """

    def __init__(self, operation: str = "unknown") -> None:
        self._operation = operation

    def execute(self, computation: Callable[[], Result[T]]) -> Result[T]:
        log.info("execution.started", operation=self._operation)
        start = time.monotonic()
        try:
            result = computation()
        except Exception as e:
            log.error(
                "execution.crashed",
                operation=self._operation,
                elapsed_seconds=round(time.monotonic() - start, 3),
                error=str(e),
            )
            return Failure(
                FailureDescription(ErrorCode.TECHNICAL_ERROR, f"Execution failed: {e}", exception=e)
            )

        log.info(
            "execution.completed",
            operation=self._operation,
            elapsed_seconds=round(time.monotonic() - start, 3),
            outcome="SUCCESS" if result.is_success() else "FAILURE",
        )
        return result
