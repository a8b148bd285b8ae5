"""
Domain Watcher - scheduled availability and expiry monitoring for a domain watchlist.

This package re-checks watched domains against a lookup provider, sorts them
into available, expiring and expired-but-still-registered buckets, and sends
a report to every notification channel scheduled for the current minute.
"""

__version__ = "1.0.0"
__author__ = "Domain Watcher Team"

from domain_watcher.exceptions import (
    DomainWatcherError,
    ValidationError,
    ProviderError,
    NetworkError,
    AuthError,
    RateLimitError,
    ProviderValidationError,
    ServerError,
    StorageError,
)
from domain_watcher.enums import (
    ApiKeyStatus,
    ChannelKind,
    ConnectionStatus,
    DomainStatus,
    DomainValidationErrorCode,
    LogLevel,
    ProviderErrorCode,
    TickAction,
)
from domain_watcher.domain_validator import (
    DomainValidator,
    DomainValidationResult,
    DomainValidationError,
    validate_domain_id,
)
from domain_watcher.config import (
    BatchConfig,
    VerificationConfig,
    LookupConfig,
    RetryConfig,
    StoreConfig,
    LoggingConfig,
    SystemConfig,
    create_default_config,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
)
from domain_watcher.models import (
    DomainRecord,
    SettingsRow,
    VerificationResult,
    BatchVerificationResult,
    CategorizedWatchlist,
    DomainReport,
    DomainCheckSummary,
    SendResult,
    DispatchSummary,
    TickResult,
    ServiceResult,
)
from domain_watcher.audit_logger import (
    AuditLogger,
    LogEntry,
)
from domain_watcher.store import (
    DomainStore,
    SQLiteDomainStore,
)
from domain_watcher.retry_manager import (
    RetryManager,
    RetryResult,
)
from domain_watcher.lookup_client import (
    AvailabilityLookup,
    LookupProvider,
    WhoisJsonClient,
    classify_provider_error,
)
from domain_watcher.verification import (
    VerificationEngine,
)
from domain_watcher.categorizer import (
    DomainCategorizer,
)
from domain_watcher.settings import (
    ChannelSettings,
    SlackSettings,
    ResendSettings,
    ChannelSettingsService,
    migrate_settings,
)
from domain_watcher.api_key import (
    ApiKeySettings,
    ApiKeyService,
    mask_api_key,
)
from domain_watcher.notifications import (
    NotificationChannel,
    SlackChannel,
    ResendChannel,
    create_channels,
)
from domain_watcher.scheduler import (
    MinuteTrigger,
    current_local_time,
)
from domain_watcher.orchestrator import (
    TickOrchestrator,
    DueChannel,
)
from domain_watcher.service import (
    DomainService,
)
from domain_watcher.cli import (
    main as cli_main,
    create_parser,
    build_runtime,
)

__all__ = [
    # Exceptions
    "DomainWatcherError",
    "ValidationError",
    "ProviderError",
    "NetworkError",
    "AuthError",
    "RateLimitError",
    "ProviderValidationError",
    "ServerError",
    "StorageError",
    # Enums
    "ApiKeyStatus",
    "ChannelKind",
    "ConnectionStatus",
    "DomainStatus",
    "DomainValidationErrorCode",
    "LogLevel",
    "ProviderErrorCode",
    "TickAction",
    # Domain Validator
    "DomainValidator",
    "DomainValidationResult",
    "DomainValidationError",
    "validate_domain_id",
    # Configuration
    "BatchConfig",
    "VerificationConfig",
    "LookupConfig",
    "RetryConfig",
    "StoreConfig",
    "LoggingConfig",
    "SystemConfig",
    "create_default_config",
    "load_config_from_env",
    "load_config_from_file",
    "save_config_to_file",
    # Models
    "DomainRecord",
    "SettingsRow",
    "VerificationResult",
    "BatchVerificationResult",
    "CategorizedWatchlist",
    "DomainReport",
    "DomainCheckSummary",
    "SendResult",
    "DispatchSummary",
    "TickResult",
    "ServiceResult",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # Store
    "DomainStore",
    "SQLiteDomainStore",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Lookup Client
    "AvailabilityLookup",
    "LookupProvider",
    "WhoisJsonClient",
    "classify_provider_error",
    # Verification
    "VerificationEngine",
    # Categorizer
    "DomainCategorizer",
    # Settings
    "ChannelSettings",
    "SlackSettings",
    "ResendSettings",
    "ChannelSettingsService",
    "migrate_settings",
    # API key
    "ApiKeySettings",
    "ApiKeyService",
    "mask_api_key",
    # Notifications
    "NotificationChannel",
    "SlackChannel",
    "ResendChannel",
    "create_channels",
    # Scheduler
    "MinuteTrigger",
    "current_local_time",
    # Orchestrator
    "TickOrchestrator",
    "DueChannel",
    # Service
    "DomainService",
    # CLI
    "cli_main",
    "create_parser",
    "build_runtime",
]
