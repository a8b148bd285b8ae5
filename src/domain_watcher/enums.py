"""
Enumeration types for the domain watcher system.

These enums provide type-safe constants for domain states, channel kinds,
error codes, and tick outcomes throughout the system.
"""

from enum import Enum


class DomainStatus(Enum):
    """Stored status of a watchlist domain."""

    NOT_CHECKED = "not_checked"
    AVAILABLE = "available"
    REGISTERED = "registered"
    ERROR = "error"


class ConnectionStatus(Enum):
    """Connection state of a notification channel's settings."""

    SETUP_REQUIRED = "setup_required"
    READY = "ready"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ApiKeyStatus(Enum):
    """Outcome of the last connection test of the stored lookup API key."""

    NOT_CONFIGURED = "not_configured"
    VALID = "valid"
    INVALID = "invalid"
    ERROR = "error"


class ChannelKind(Enum):
    """Known notification channel kinds."""

    SLACK = "slack"
    RESEND = "resend"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class ProviderErrorCode(Enum):
    """Error codes for lookup provider failures."""

    NETWORK_ERROR = "network_error"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    VALIDATION_ERROR = "validation_error"
    SERVER_ERROR = "server_error"


class DomainValidationErrorCode(Enum):
    """Error codes for domain name and id validation failures."""

    EMPTY_INPUT = "empty_input"
    HAS_SCHEME = "has_scheme"
    HAS_PATH = "has_path"
    HAS_PORT = "has_port"
    INVALID_FORMAT = "invalid_format"
    INVALID_TLD = "invalid_tld"
    TOO_LONG = "too_long"
    IDNA_ERROR = "idna_error"
    INVALID_ID = "invalid_id"


class TickAction(Enum):
    """Outcome of a scheduler tick."""

    SKIPPED = "skipped"
    EXECUTED = "executed"
