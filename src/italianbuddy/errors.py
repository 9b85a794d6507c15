"""Exception types raised by ItalianBuddy.

Every error derives from BuddyError so callers (the CLI, or an HTTP layer)
can catch one type and render it with ``to_dict()``.
"""

from typing import Any, Dict, Optional


class BuddyError(Exception):
    """Base exception for all ItalianBuddy errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
        status_code: HTTP status code an API layer should return.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
    ):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Converts the exception to a dictionary for JSON responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(BuddyError):
    """Raised when no usable provider credential (or workflow file) is configured."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, status_code=500)


class UpstreamProviderError(BuddyError):
    """Raised when the chat-completion provider call fails.

    The upstream message is kept verbatim in ``message``.
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 502,
    ):
        self.provider = provider
        super().__init__(
            message,
            details={"provider": provider, **(details or {})},
            status_code=status_code,
        )


class ProviderTimeoutError(UpstreamProviderError):
    """Raised when the provider did not answer within the request timeout."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, provider=provider, status_code=504)


class ValidationError(BuddyError):
    """Raised when caller input fails a precondition."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={"field": field}, status_code=400)


class NotFoundError(BuddyError):
    """Raised when a vocabulary item or scenario does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, status_code=404)


class PersistenceError(BuddyError):
    """Raised when the store fails to read or write."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details, status_code=500)
