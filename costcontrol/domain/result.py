"""
Result - success/failure outcome returned by every fallible domain operation.

Factories and mutators never raise for expected business failures; they
return Result.fail(...) carrying a DomainError. Callers that treat a failure
as a programming error call unwrap(), which re-raises the carried error.
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from .exceptions import DomainError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a domain operation.

    Attributes:
        success: True when the operation succeeded
        value: Produced value (None on failure or for void operations)
        error: DomainError describing the failure (None on success)
    """

    success: bool
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: Union[DomainError, str]) -> "Result[T]":
        if isinstance(error, str):
            error = DomainError(error)
        return cls(success=False, error=error)

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    @property
    def message(self) -> Optional[str]:
        """Human-readable failure message, None on success."""
        return self.error.message if self.error else None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error else None

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if not self.success:
            raise self.error
        return self.value
