"""
LLM-specific exceptions.

Every backend adapter converts transport and protocol failures into one of
these types so the retry controller can tell transient failures from a
credential that will never work.
"""

from typing import Optional, Dict, Any


class LLMError(Exception):
    """Base exception for all backend errors.

    Attributes:
        message: Human-readable error message
        context: Additional context about the error (provider, status, ...)
        recoverable: Whether retrying the same request may succeed
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"{self.__class__.__name__}: {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" (context: {context_str})"
        return base


class LLMAuthenticationError(LLMError):
    """Invalid or expired credential (HTTP 401). Never retried."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)


class LLMRateLimitOrServerError(LLMError):
    """Non-success HTTP status other than an authentication failure.

    Attributes:
        status_code: HTTP status returned by the backend
    """

    def __init__(self, message: str, status_code: int, context: Optional[Dict[str, Any]] = None):
        context = dict(context or {})
        context.setdefault('status_code', status_code)
        super().__init__(message, context, recoverable=True)
        self.status_code = status_code


class LLMTimeoutError(LLMError):
    """The request exceeded its deadline."""
    pass


class LLMConnectionError(LLMError):
    """The backend could not be reached (DNS, refused connection, reset)."""
    pass


class MalformedResponseError(LLMError):
    """The backend answered, but with an empty or unparseable completion."""
    pass
