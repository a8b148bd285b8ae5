"""
Data models for the domain watcher system.

This module defines the stored domain and settings records plus the
ephemeral results produced while verifying, categorizing and reporting
on the watchlist.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional

from .enums import DomainStatus, TickAction


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a stored or provider-supplied timestamp into an aware datetime.

    Accepts datetimes, dates, ISO 8601 strings (with or without a trailing
    'Z') and SQLite's 'YYYY-MM-DD HH:MM:SS' form. Naive values are taken
    as UTC.

    Args:
        value: The raw timestamp value

    Returns:
        Aware datetime, or None if the value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            try:
                dt = datetime.strptime(text[:10], "%Y-%m-%d")
            except ValueError:
                return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize an aware datetime as ISO 8601 in UTC."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


@dataclass
class DomainRecord:
    """A single watchlist entry as held by the store."""

    id: int
    name: str
    status: DomainStatus = DomainStatus.NOT_CHECKED
    expires: Optional[datetime] = None
    last_checked: Optional[datetime] = None
    raw_data: Optional[dict] = None
    raw_ns_data: Optional[dict] = None
    raw_ssl_data: Optional[dict] = None
    error_message: Optional[str] = None
    check_count: int = 0
    created_at: Optional[datetime] = None

    def is_expired_registered(self, now: datetime) -> bool:
        """Registered with an expiry strictly before now."""
        return (
            self.status == DomainStatus.REGISTERED
            and self.expires is not None
            and self.expires < now
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "expires": format_timestamp(self.expires),
            "last_checked": format_timestamp(self.last_checked),
            "error_message": self.error_message,
            "check_count": self.check_count,
        }


@dataclass
class SettingsRow:
    """Raw settings row for one channel kind."""

    kind: str
    settings_json: str
    enabled: bool
    updated_at: Optional[datetime] = None


@dataclass
class VerificationResult:
    """Outcome of checking one domain against the lookup provider."""

    success: bool
    domain: str
    status: Optional[DomainStatus] = None
    was_available: bool = False
    is_still_registered: bool = False
    expires: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict = {"success": self.success, "domain": self.domain}
        if self.success:
            data["status"] = self.status.value if self.status else None
            data["was_available"] = self.was_available
            data["is_still_registered"] = self.is_still_registered
            data["expires"] = format_timestamp(self.expires)
        else:
            data["error"] = self.error
        return data


@dataclass
class BatchVerificationResult:
    """Aggregate of one verify_batch run."""

    checked: int = 0
    available: list[DomainRecord] = field(default_factory=list)
    still_registered: list[DomainRecord] = field(default_factory=list)
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "BatchVerificationResult":
        return cls()

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "available": [d.name for d in self.available],
            "still_registered": [d.name for d in self.still_registered],
            "errors": self.errors,
            "error_messages": list(self.error_messages),
        }


@dataclass
class CategorizedWatchlist:
    """Watchlist partition computed from one `now` snapshot."""

    needing_verification: list[DomainRecord] = field(default_factory=list)
    expired_registered: list[DomainRecord] = field(default_factory=list)
    expiring: list[DomainRecord] = field(default_factory=list)


@dataclass
class DomainReport:
    """Categorized domain lists handed to notification channels."""

    available: list[DomainRecord] = field(default_factory=list)
    expiring: list[DomainRecord] = field(default_factory=list)
    expired: list[DomainRecord] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.available) + len(self.expiring) + len(self.expired)


@dataclass
class DomainCheckSummary:
    """Merged verification outcome of a tick."""

    checked: int
    report: DomainReport
    error_messages: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "available": len(self.report.available),
            "expiring": len(self.report.expiring),
            "expired": len(self.report.expired),
        }


@dataclass
class SendResult:
    """Outcome of one channel send."""

    success: bool
    message: str
    data: Optional[dict] = None


@dataclass
class DispatchSummary:
    """Aggregate of dispatching one report to all due channels."""

    sent: int = 0
    providers: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {"sent": self.sent, "providers": list(self.providers)}
        if self.errors:
            data["errors"] = [dict(e) for e in self.errors]
        return data


@dataclass
class TickResult:
    """Result of one orchestrator tick."""

    timestamp: str
    timestamp_local: str
    action: TickAction
    reason: Optional[str] = None
    domains: Optional[DomainCheckSummary] = None
    notifications: Optional[DispatchSummary] = None

    def to_dict(self) -> dict:
        data: dict = {
            "timestamp": self.timestamp,
            "timestamp_local": self.timestamp_local,
            "action": self.action.value,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.domains is not None:
            data["domains"] = self.domains.to_dict()
        if self.notifications is not None:
            data["notifications"] = self.notifications.to_dict()
        return data


@dataclass
class ServiceResult:
    """Structured response of a manual operation."""

    status: int
    message: str
    data: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_dict(self) -> dict:
        result: dict = {"status": self.status, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result
