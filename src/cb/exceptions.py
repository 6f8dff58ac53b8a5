"""
Custom exception hierarchy for the cache.

All exceptions inherit from CBError, which provides optional context
for structured error handling and logging. A cache miss is not an
exception; it is represented by None.
"""

from __future__ import annotations

from typing import Any


class CBError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(CBError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(CBError):
    """Raised when a key, store name or value is rejected.

    Context should include:
        - field: The field that failed validation
        - value: The invalid value
        - expected: Description of what was expected
    """

    pass


class StorageUnavailableError(CBError):
    """Raised when the persistent store cannot be opened or used.

    Examples:
        - Cache directory not writable
        - Database file corrupt or locked
        - Disk full

    Context should include:
        - store: The store being accessed
        - key: The key being accessed
        - operation: get, put, delete or open
    """

    pass


class FetchFailedError(CBError):
    """Raised when fetching a remote image fails.

    Context should include:
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
    """

    pass


class EncodeFailedError(CBError):
    """Raised when image bytes cannot be converted to a data URL."""

    pass
