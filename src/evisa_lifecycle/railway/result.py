"""
Result monad — the success/failure railway every engine operation runs on.

A Result[T] is either Success(value) or Failure(FailureDescription).
Operations chain with .flat_map(); the first failure short-circuits the rest
of the chain, so guards read as a straight sequence:

    load(number)
      .flat_map(ensure_owner)
      .flat_map(ensure_editable)
      .flat_map(apply_edit)
      .flat_map(save)

Success never wraps None: operations with nothing meaningful to return hand
back the identifier or record they acted on.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from evisa_lifecycle.railway.failure import ErrorCode, FailureDescription

T = TypeVar("T")
U = TypeVar("U")


class Result(Generic[T]):
    """
    Railway-Oriented Programming Result.

        >>> Result.success(21).map(lambda x: x * 2).value()
        42
        >>> Result.failure(ErrorCode.NOT_FOUND, "missing").map(lambda x: x).is_failure()
        True
    """

    # ──────────────────────── Introspection ────────────────────────

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def value(self) -> T:
        """Success value; raises ValueError on a Failure."""
        match self:
            case Success(v):
                return v
            case Failure(err):
                raise ValueError(f"Cannot get value from a Failure: {err.message}")
        raise TypeError("unreachable")  # pragma: no cover

    def error(self) -> FailureDescription:
        """Failure description; raises ValueError on a Success."""
        match self:
            case Failure(err):
                return err
            case Success(v):
                raise ValueError(f"Cannot get error from a Success: {v!r}")
        raise TypeError("unreachable")  # pragma: no cover

    # ──────────────────────── Transformations ────────────────────────

    def map(self, mapper: Callable[[T], U]) -> Result[U]:
        match self:
            case Success(v):
                return Success(mapper(v))
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def flat_map(self, mapper: Callable[[T], Result[U]]) -> Result[U]:
        """Chain a Result-returning step. Short-circuits on failure."""
        match self:
            case Success(v):
                return mapper(v)
            case Failure(err):
                return Failure(err)
        raise TypeError("unreachable")  # pragma: no cover

    def ensure(
        self,
        predicate: Callable[[T], bool],
        code: ErrorCode,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> Result[T]:
        """Keep the value if predicate holds, otherwise switch to the failure track."""
        return self.flat_map(
            lambda v: Success(v) if predicate(v) else Result.failure(code, message, details)
        )

    # ──────────────────────── Side effects ────────────────────────

    def peek(self, action: Callable[[T], Any]) -> Result[T]:
        match self:
            case Success(v):
                action(v)
        return self

    def peek_failure(self, action: Callable[[FailureDescription], Any]) -> Result[T]:
        match self:
            case Failure(err):
                action(err)
        return self

    # ──────────────────────── Factories ────────────────────────

    @staticmethod
    def success(value: T) -> Result[T]:
        return Success(value)

    @staticmethod
    def failure(
        code: ErrorCode,
        message: str,
        details: Mapping[str, Any] | None = None,
        exception: BaseException | None = None,
    ) -> Result[T]:
        """
        Failure with code, message and optional context.

            Result.failure(ErrorCode.NOT_FOUND, "Visa type not found", {"code": "TOURIST"})
        """
        return Failure(
            FailureDescription(
                code=code,
                message=message,
                details=dict(details or {}),
                exception=exception,
            )
        )

    @staticmethod
    def from_computation(
        computation: Callable[[], T],
        error_code: ErrorCode,
        error_message: str,
    ) -> Result[T]:
        """Run a computation that may raise; exceptions land on the failure track."""
        try:
            return Success(computation())
        except Exception as e:
            return Result.failure(error_code, error_message, {"cause": str(e)}, e)

    @staticmethod
    def all_of(results: Iterable[Result[T]]) -> Result[list[T]]:
        """Collect results into one; the first failure wins."""
        values: list[T] = []
        for r in results:
            match r:
                case Success(v):
                    values.append(v)
                case Failure(err):
                    return Failure(err)
        return Success(values)

    # ──────────────────────── Dunder ────────────────────────

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Result):
            return NotImplemented
        match (self, other):
            case (Success(a), Success(b)):
                return a == b
            case (Failure(a), Failure(b)):
                return a.code == b.code and a.message == b.message
        return False

    def __hash__(self) -> int:
        match self:
            case Success(v):
                return hash(("Success", v))
            case Failure(err):
                return hash(("Failure", err.code, err.message))
        raise TypeError("unreachable")  # pragma: no cover


class Success(Result[T]):
    """The success track."""

    __slots__ = ("_value",)
    __match_args__ = ("_value",)

    def __init__(self, value: T) -> None:
        if value is None:
            raise TypeError("Success value must not be None")
        self._value = value

    def __repr__(self) -> str:
        return f"Success({self._value!r})"


class Failure(Result[T]):
    """The failure track."""

    __slots__ = ("_error",)
    __match_args__ = ("_error",)

    def __init__(self, error: FailureDescription) -> None:
        if error is None:
            raise TypeError("Failure error must not be None")
        self._error = error

    def __repr__(self) -> str:
        return f"Failure({self._error.code.value}: {self._error.message!r})"
