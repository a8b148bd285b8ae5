"""
Exception classes for the domain watcher system.

All exceptions inherit from DomainWatcherError and provide structured
error information with codes, messages, and optional details. Provider
errors additionally carry an HTTP-like status for the calling layer.
"""

from typing import Optional


class DomainWatcherError(Exception):
    """Base exception for all domain watcher errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainWatcherError):
    """Raised when a domain name, id, or settings field is malformed."""

    pass


class ProviderError(DomainWatcherError):
    """Raised when the lookup provider call fails."""

    http_status = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
        http_status: Optional[int] = None,
    ) -> None:
        super().__init__(code, message, details)
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["http_status"] = self.http_status
        return data


class NetworkError(ProviderError):
    """Raised when the provider cannot be reached or times out."""

    http_status = 502


class AuthError(ProviderError):
    """Raised when the provider rejects the API key."""

    http_status = 401


class RateLimitError(ProviderError):
    """Raised when the provider rate limit is exceeded (HTTP 429)."""

    http_status = 429


class ProviderValidationError(ProviderError):
    """Raised when the provider rejects the domain as invalid or unknown."""

    http_status = 400


class ServerError(ProviderError):
    """Raised for unclassified provider failures."""

    http_status = 500


class StorageError(DomainWatcherError):
    """Raised when a store read or write fails."""

    pass
