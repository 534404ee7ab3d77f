"""
Result type for explicit error handling.

Expected failures (a batch that could not be translated, a response that
could not be parsed) travel as ``Err`` values instead of exceptions, so they
never escape the batch boundary by accident.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union, Callable

T = TypeVar('T')  # Success type
E = TypeVar('E')  # Error type
R = TypeVar('R')  # Return type for map


@dataclass
class Ok(Generic[T]):
    """Successful result.

    Attributes:
        value: The successful value
    """
    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value (safe for Ok)."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, func: Callable[[T], R]) -> 'Union[Ok[R], Err]':
        """Map function over Ok value."""
        return Ok(func(self.value))


@dataclass
class Err(Generic[E]):
    """Error result.

    Attributes:
        error: The error value
    """
    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> None:
        """Raises ValueError (unsafe for Err)."""
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, func: Callable) -> 'Err[E]':
        """No-op for Err."""
        return self


# Type alias for Result
Result = Union[Ok[T], Err[E]]
