"""
Versioned notification channel settings.

Each channel kind stores one settings record. Records are explicit
dataclasses; stored JSON is migrated step by step from older shapes to
SETTINGS_VERSION before it is turned into a dataclass. The
ChannelSettingsService implements the manual settings operations: load,
save, toggle, and test send.
"""

import json
import re
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Type, TypeVar

from .audit_logger import AuditLogger
from .enums import ChannelKind, ConnectionStatus, LogLevel
from .exceptions import StorageError, ValidationError
from .models import ServiceResult, format_timestamp
from .scheduler import is_valid_notification_time, normalize_notification_time
from .store import DomainStore, utc_now

if TYPE_CHECKING:
    from .notifications import NotificationChannel


SETTINGS_VERSION = 1
DEFAULT_NOTIFICATION_TIME = "09:00"
SLACK_WEBHOOK_PREFIX = "https://hooks.slack.com"
MAX_FIELD_LENGTH = 253
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEMO_MODE_MESSAGE = "Demo mode: Look but don't touch"

S = TypeVar("S", bound="ChannelSettings")


@dataclass
class ChannelSettings:
    """Fields shared by every channel kind."""

    enabled: bool = False
    notification_time: str = DEFAULT_NOTIFICATION_TIME
    connection_status: ConnectionStatus = ConnectionStatus.SETUP_REQUIRED
    connection_verified_at: Optional[str] = None
    version: int = SETTINGS_VERSION

    def to_dict(self) -> dict:
        data = asdict(self)
        data["connection_status"] = self.connection_status.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls: Type[S], data: dict) -> S:
        """
        Build settings from a dictionary already at SETTINGS_VERSION.

        Unknown keys are ignored; missing keys take their defaults.
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        status = values.get("connection_status")
        if status is not None and not isinstance(status, ConnectionStatus):
            try:
                values["connection_status"] = ConnectionStatus(status)
            except ValueError:
                values["connection_status"] = ConnectionStatus.SETUP_REQUIRED
        return cls(**values)


@dataclass
class SlackSettings(ChannelSettings):
    """Chat webhook channel settings."""

    webhook_url: str = ""


@dataclass
class ResendSettings(ChannelSettings):
    """Transactional email channel settings."""

    api_key: str = ""
    from_email: str = ""
    to_email: str = ""


_V0_KEY_MAP = {
    "webhook": "webhook_url",
    "webhookUrl": "webhook_url",
    "apiKey": "api_key",
    "fromEmail": "from_email",
    "toEmail": "to_email",
    "notificationTime": "notification_time",
    "connectionStatus": "connection_status",
    "connectionVerifiedAt": "connection_verified_at",
}


def _migrate_v0_to_v1(data: dict) -> dict:
    """Version 0 used camelCase keys and had no version field."""
    migrated = {}
    for key, value in data.items():
        migrated[_V0_KEY_MAP.get(key, key)] = value
    migrated["version"] = 1
    return migrated


MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    0: _migrate_v0_to_v1,
}


def migrate_settings(data: dict) -> dict:
    """
    Bring stored settings up to SETTINGS_VERSION.

    Args:
        data: Parsed settings JSON of any known version

    Returns:
        New dictionary at SETTINGS_VERSION

    Raises:
        ValidationError: If the version is newer than this code understands
    """
    current = dict(data)
    version = current.get("version", 0)
    if not isinstance(version, int) or version < 0:
        version = 0

    if version > SETTINGS_VERSION:
        raise ValidationError(
            code="unsupported_settings_version",
            message=f"Settings version {version} is newer than supported version {SETTINGS_VERSION}",
            details={"version": version},
        )

    while version < SETTINGS_VERSION:
        current = MIGRATIONS[version](current)
        version = current["version"]

    return current


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and len(value) <= MAX_FIELD_LENGTH and bool(EMAIL_PATTERN.match(value))


def _require(condition: bool, code: str, message: str, field_name: str) -> None:
    if not condition:
        raise ValidationError(code=code, message=message, details={"field": field_name})


def validate_notification_time(value: str) -> str:
    _require(
        is_valid_notification_time(value),
        "invalid_time",
        "Time must be in HH:MM format (e.g., 14:30)",
        "notification_time",
    )
    return normalize_notification_time(value)


class ChannelSettingsService:
    """
    Manual operations on channel settings.

    Writes are refused in demo mode. connection_status moves past `ready`
    only through send_test.
    """

    def __init__(
        self,
        store: DomainStore,
        channels: Sequence["NotificationChannel"],
        demo_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._channels = {channel.kind: channel for channel in channels}
        self._demo_mode = demo_mode
        self._logger = logger
        self._clock = clock

    def channel(self, kind: ChannelKind) -> "NotificationChannel":
        try:
            return self._channels[kind]
        except KeyError:
            raise ValidationError(
                code="unknown_channel",
                message=f"No channel registered for kind '{kind.value}'",
                details={"kind": kind.value},
            ) from None

    async def load(self, kind: ChannelKind) -> ChannelSettings:
        """
        Load the settings of one channel kind.

        A missing row yields disabled defaults; unreadable JSON is treated
        like a missing row and logged.

        Raises:
            StorageError: If the store read fails
            ValidationError: If the stored version is unsupported
        """
        settings_type = self.channel(kind).settings_type
        row = await self._store.select_settings(kind.value)
        if row is None:
            return settings_type()

        try:
            data = json.loads(row.settings_json) if row.settings_json else {}
        except json.JSONDecodeError as e:
            self._log_error(f"Stored {kind.value} settings are not valid JSON", e)
            data = {}
        if not isinstance(data, dict):
            data = {}

        settings = settings_type.from_dict(migrate_settings(data))
        settings.enabled = row.enabled
        return settings

    async def _persist(self, kind: ChannelKind, settings: ChannelSettings) -> None:
        applied = await self._store.upsert_settings(kind.value, settings.to_json(), settings.enabled)
        if not applied:
            raise StorageError(
                code="settings_not_saved",
                message=f"Saving {kind.value} settings had no effect",
                details={"kind": kind.value},
            )

    def _demo_guard(self) -> Optional[ServiceResult]:
        if self._demo_mode:
            return ServiceResult(status=403, message=DEMO_MODE_MESSAGE)
        return None

    async def save_slack(
        self,
        webhook_url: str,
        notification_time: str,
        send_test_message: bool = False,
    ) -> ServiceResult:
        """Validate and store chat webhook settings, optionally sending a test."""
        denied = self._demo_guard()
        if denied:
            return denied

        try:
            webhook_url = (webhook_url or "").strip()
            _require(bool(webhook_url), "required", "Slack Webhook is required", "webhook_url")
            _require(
                webhook_url.startswith(SLACK_WEBHOOK_PREFIX),
                "invalid_webhook",
                "Must be a valid Slack webhook URL",
                "webhook_url",
            )
            _require(
                len(webhook_url) <= MAX_FIELD_LENGTH,
                "too_long",
                "Slack Webhook too long",
                "webhook_url",
            )
            time_value = validate_notification_time(notification_time)
        except ValidationError as e:
            return ServiceResult(status=400, message=e.message, data=e.details)

        current = await self.load(ChannelKind.SLACK)
        settings = SlackSettings(
            enabled=current.enabled,
            notification_time=time_value,
            connection_status=ConnectionStatus.READY,
            webhook_url=webhook_url,
        )
        return await self._save(ChannelKind.SLACK, settings, send_test_message)

    async def save_resend(
        self,
        api_key: str,
        from_email: str,
        to_email: str,
        notification_time: str,
        send_test_message: bool = False,
    ) -> ServiceResult:
        """Validate and store transactional email settings, optionally sending a test."""
        denied = self._demo_guard()
        if denied:
            return denied

        try:
            api_key = (api_key or "").strip()
            _require(bool(api_key), "required", "API key is required", "api_key")
            _require(len(api_key) <= MAX_FIELD_LENGTH, "too_long", "API key too long", "api_key")
            _require(is_valid_email(from_email), "invalid_email",
                     "From email must be a valid email address", "from_email")
            _require(is_valid_email(to_email), "invalid_email",
                     "To email must be a valid email address", "to_email")
            time_value = validate_notification_time(notification_time)
        except ValidationError as e:
            return ServiceResult(status=400, message=e.message, data=e.details)

        current = await self.load(ChannelKind.RESEND)
        settings = ResendSettings(
            enabled=current.enabled,
            notification_time=time_value,
            connection_status=ConnectionStatus.READY,
            api_key=api_key,
            from_email=from_email.strip(),
            to_email=to_email.strip(),
        )
        return await self._save(ChannelKind.RESEND, settings, send_test_message)

    async def _save(
        self, kind: ChannelKind, settings: ChannelSettings, send_test_message: bool
    ) -> ServiceResult:
        await self._persist(kind, settings)
        self._log(LogLevel.INFO, f"{kind.value} settings saved", {"kind": kind.value})

        if send_test_message:
            test = await self.send_test(kind)
            return ServiceResult(
                status=201 if test.ok else test.status,
                message=f"Settings saved. {test.message}",
                data=test.data,
            )
        return ServiceResult(status=201, message=f"{self.channel(kind).name} settings saved")

    async def set_enabled(self, kind: ChannelKind, enabled: bool) -> ServiceResult:
        """
        Toggle a channel on or off.

        The first toggle of a kind with no stored row creates it with defaults.
        """
        denied = self._demo_guard()
        if denied:
            return denied

        applied = await self._store.update_settings_enabled(kind.value, enabled)
        if not applied:
            settings = await self.load(kind)
            settings.enabled = enabled
            await self._persist(kind, settings)

        state = "enabled" if enabled else "disabled"
        self._log(LogLevel.INFO, f"{kind.value} notifications {state}", {"kind": kind.value})
        return ServiceResult(
            status=200,
            message=f"{self.channel(kind).name} notifications {state}",
            data={"enabled": enabled},
        )

    async def send_test(self, kind: ChannelKind) -> ServiceResult:
        """
        Send a test message and record the connection outcome.

        Success sets `connected`, a failed send sets `disconnected`, and an
        unexpected exception sets `error`. connection_verified_at is stamped
        in every case.
        """
        denied = self._demo_guard()
        if denied:
            return denied

        channel = self.channel(kind)
        settings = await self.load(kind)
        if not channel.validate(settings):
            return ServiceResult(
                status=400,
                message=f"{channel.name} is not configured yet",
            )

        try:
            outcome = await channel.send_test(settings)
        except Exception as e:
            self._log_error(f"{channel.name} test send raised", e)
            settings.connection_status = ConnectionStatus.ERROR
            settings.connection_verified_at = format_timestamp(self._clock())
            await self._persist(kind, settings)
            return ServiceResult(status=500, message=f"Test failed: {e}")

        settings.connection_status = (
            ConnectionStatus.CONNECTED if outcome.success else ConnectionStatus.DISCONNECTED
        )
        settings.connection_verified_at = format_timestamp(self._clock())
        await self._persist(kind, settings)

        return ServiceResult(
            status=200 if outcome.success else 502,
            message=outcome.message,
            data={"connection_status": settings.connection_status.value, **(outcome.data or {})},
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ChannelSettingsService", message, data)

    def _log_error(self, message: str, error: BaseException) -> None:
        if self._logger:
            self._logger.log_error("ChannelSettingsService", message, error)
