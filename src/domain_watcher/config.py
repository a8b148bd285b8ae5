"""
Configuration dataclasses for the domain watcher system.

This module defines all configuration structures used throughout the system
(batching, lookup provider access, retry logic, storage, and logging) along
with helpers that build a configuration from defaults, a JSON file, or the
process environment.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_CONFIG_PATH = Path.home() / ".domain_watcher" / "config.json"
DEFAULT_DATABASE_PATH = Path.home() / ".domain_watcher" / "watchlist.db"
DEFAULT_LOOKUP_BASE_URL = "https://whoisjson.com/api/v1"


@dataclass
class BatchConfig:
    """Chunk size and inter-chunk delay for one verification sweep."""

    batch_size: int = 5
    delay_seconds: float = 0.1


@dataclass
class VerificationConfig:
    """Verification and categorization settings."""

    routine: BatchConfig = field(default_factory=BatchConfig)
    expired: BatchConfig = field(default_factory=BatchConfig)
    manual_limit: int = 20
    expiring_window_days: int = 30


@dataclass
class LookupConfig:
    """Lookup provider access."""

    api_key: Optional[str] = None
    base_url: str = DEFAULT_LOOKUP_BASE_URL
    timeout_seconds: float = 15.0


@dataclass
class RetryConfig:
    """Retry behavior configuration."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    retryable_errors: list[str] = field(
        default_factory=lambda: ["network_error", "rate_limited", "server_error"]
    )


@dataclass
class StoreConfig:
    """Watchlist database location."""

    database_path: Path = DEFAULT_DATABASE_PATH


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    verification: VerificationConfig = field(default_factory=VerificationConfig)
    lookup: LookupConfig = field(default_factory=LookupConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    timezone: str = "UTC"
    demo_mode: bool = False
    simulation_mode: bool = False


def create_default_config(
    simulation_mode: bool = False,
    database_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        simulation_mode: Enable simulation mode (no real network requests)
        database_path: Path to the SQLite watchlist database

    Returns:
        SystemConfig with default settings
    """
    return SystemConfig(
        store=StoreConfig(database_path=database_path or DEFAULT_DATABASE_PATH),
        simulation_mode=simulation_mode,
    )


def _batch_from_dict(data: dict) -> BatchConfig:
    return BatchConfig(
        batch_size=int(data.get("batch_size", 5)),
        delay_seconds=float(data.get("delay_seconds", 0.1)),
    )


def config_from_dict(data: dict) -> SystemConfig:
    """
    Build a SystemConfig from a parsed JSON document.

    Missing sections and keys fall back to their defaults.

    Raises:
        KeyError, TypeError, ValueError: If a value has the wrong shape
    """
    verification_data = data.get("verification", {})
    verification = VerificationConfig(
        routine=_batch_from_dict(verification_data.get("routine", {})),
        expired=_batch_from_dict(verification_data.get("expired", {})),
        manual_limit=int(verification_data.get("manual_limit", 20)),
        expiring_window_days=int(verification_data.get("expiring_window_days", 30)),
    )

    lookup_data = data.get("lookup", {})
    lookup = LookupConfig(
        api_key=lookup_data.get("api_key"),
        base_url=lookup_data.get("base_url", DEFAULT_LOOKUP_BASE_URL),
        timeout_seconds=float(lookup_data.get("timeout_seconds", 15.0)),
    )

    retry_data = data.get("retry", {})
    retry = RetryConfig(
        max_retries=int(retry_data.get("max_retries", 2)),
        base_delay_seconds=float(retry_data.get("base_delay_seconds", 1.0)),
        max_delay_seconds=float(retry_data.get("max_delay_seconds", 30.0)),
        retryable_errors=list(retry_data.get("retryable_errors", RetryConfig().retryable_errors)),
    )

    store_data = data.get("store", {})
    database_path = store_data.get("database_path")
    store = StoreConfig(
        database_path=Path(database_path) if database_path else DEFAULT_DATABASE_PATH,
    )

    logging_data = data.get("logging", {})
    logging_config = LoggingConfig(
        level=logging_data.get("level", "info"),
        output_format=logging_data.get("output_format", "text"),
    )

    return SystemConfig(
        verification=verification,
        lookup=lookup,
        retry=retry,
        store=store,
        logging=logging_config,
        timezone=data.get("timezone", "UTC"),
        demo_mode=bool(data.get("demo_mode", False)),
        simulation_mode=bool(data.get("simulation_mode", False)),
    )


def config_to_dict(config: SystemConfig) -> dict:
    """Serialize a SystemConfig into a JSON-compatible dictionary."""
    verification = config.verification
    return {
        "verification": {
            "routine": {
                "batch_size": verification.routine.batch_size,
                "delay_seconds": verification.routine.delay_seconds,
            },
            "expired": {
                "batch_size": verification.expired.batch_size,
                "delay_seconds": verification.expired.delay_seconds,
            },
            "manual_limit": verification.manual_limit,
            "expiring_window_days": verification.expiring_window_days,
        },
        "lookup": {
            "api_key": config.lookup.api_key,
            "base_url": config.lookup.base_url,
            "timeout_seconds": config.lookup.timeout_seconds,
        },
        "retry": {
            "max_retries": config.retry.max_retries,
            "base_delay_seconds": config.retry.base_delay_seconds,
            "max_delay_seconds": config.retry.max_delay_seconds,
            "retryable_errors": list(config.retry.retryable_errors),
        },
        "store": {
            "database_path": str(config.store.database_path),
        },
        "logging": {
            "level": config.logging.level,
            "output_format": config.logging.output_format,
        },
        "timezone": config.timezone,
        "demo_mode": config.demo_mode,
        "simulation_mode": config.simulation_mode,
    }


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return config_from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(config_to_dict(config), f, indent=2, ensure_ascii=False)
        return True
    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _batch_from_env(batch: BatchConfig) -> BatchConfig:
    return BatchConfig(
        batch_size=_int_env("BATCH_SIZE", batch.batch_size),
        delay_seconds=_float_env("BATCH_DELAY_SECONDS", batch.delay_seconds),
    )


def load_config_from_env(
    base: Optional[SystemConfig] = None,
    dotenv_path: Optional[Path] = None,
) -> SystemConfig:
    """
    Overlay environment variables (and a .env file, if present) on a config.

    Recognized variables: DOMAIN_WATCHER_DB, WHOIS_API_KEY, WHOIS_BASE_URL,
    TIMEZONE, ENVIRONMENT (``demo`` enables demo mode), SIMULATION_MODE,
    BATCH_SIZE, BATCH_DELAY_SECONDS, MANUAL_CHECK_LIMIT, LOG_LEVEL, LOG_FORMAT.

    Args:
        base: Configuration to start from (defaults to create_default_config())
        dotenv_path: Explicit .env file; by default one is searched for

    Returns:
        New SystemConfig with environment overrides applied
    """
    load_dotenv(dotenv_path=dotenv_path)
    config = base or create_default_config()

    database_path = os.getenv("DOMAIN_WATCHER_DB", "").strip()
    if database_path:
        config.store.database_path = Path(database_path)

    api_key = os.getenv("WHOIS_API_KEY", "").strip()
    if api_key:
        config.lookup.api_key = api_key
    base_url = os.getenv("WHOIS_BASE_URL", "").strip()
    if base_url:
        config.lookup.base_url = base_url

    config.timezone = (os.getenv("TIMEZONE", config.timezone) or "UTC").strip()
    if os.getenv("ENVIRONMENT", "").strip().lower() == "demo":
        config.demo_mode = True
    if os.getenv("SIMULATION_MODE", "0") == "1":
        config.simulation_mode = True

    # BATCH_* apply to both sweeps; unset or invalid values keep each sweep's own setting.
    verification = config.verification
    verification.routine = _batch_from_env(verification.routine)
    verification.expired = _batch_from_env(verification.expired)
    config.verification.manual_limit = _int_env(
        "MANUAL_CHECK_LIMIT", config.verification.manual_limit
    )

    config.logging.level = os.getenv("LOG_LEVEL", config.logging.level).lower()
    config.logging.output_format = os.getenv("LOG_FORMAT", config.logging.output_format)

    return config
