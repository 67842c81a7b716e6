"""Result type returned across packaging component boundaries.

Every public packaging operation returns a :class:`Result` rather than
raising, so callers such as the admin console can report a failure without
wrapping each call in an exception handler.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from vellum.utils.exceptions import PackagingError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success value or a typed packaging error.

    Attributes:
        value: The success value (may legitimately be None)
        error: The error on failure, None on success
    """

    value: Optional[T] = None
    error: Optional[PackagingError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: PackagingError) -> Result[T]:
        if error is None:
            raise ValueError("A failed Result requires an error")
        return cls(error=error)

    @property
    def ok(self) -> bool:
        """True when the operation succeeded."""
        return self.error is None

    @property
    def message(self) -> str:
        """The error message, or an empty string on success."""
        return str(self.error) if self.error is not None else ""

    def unwrap(self) -> T:
        """Return the success value or raise the carried error.

        Raises:
            PackagingError: The carried error if the Result is a failure
        """
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def __bool__(self) -> bool:
        return self.ok
