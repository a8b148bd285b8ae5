"""
Stored lookup provider API key.

The key is kept in the settings table under API_KEY_SETTINGS_KIND, next to
the channel settings, together with the outcome of the connection test
run when it was saved. A key from the configuration or the environment
takes precedence; the stored key fills in only when none is configured.
"""

import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Callable, Optional, Protocol

from .audit_logger import AuditLogger
from .config import LookupConfig
from .enums import ApiKeyStatus, LogLevel
from .exceptions import StorageError
from .models import ServiceResult, format_timestamp
from .settings import DEMO_MODE_MESSAGE, SETTINGS_VERSION
from .store import DomainStore, utc_now


API_KEY_SETTINGS_KIND = "lookup_api_key"
MASK_VISIBLE_CHARS = 6
MASK_MAX_STARS = 20


class ConnectionTester(Protocol):
    """Anything that can check an API key against the lookup provider."""

    async def test_connection(self, api_key: Optional[str] = None) -> ServiceResult:
        ...


def mask_api_key(api_key: Optional[str], visible_chars: int = MASK_VISIBLE_CHARS) -> Optional[str]:
    """
    Hide all but the first characters of a key.

    Keys no longer than `visible_chars` are returned unchanged; at most
    MASK_MAX_STARS asterisks are appended.
    """
    if not api_key or len(api_key) <= visible_chars:
        return api_key
    hidden = min(len(api_key) - visible_chars, MASK_MAX_STARS)
    return api_key[:visible_chars] + "*" * hidden


def status_for_test(status: int) -> ApiKeyStatus:
    """Map a connection test status to the stored key status."""
    if status == 200:
        return ApiKeyStatus.VALID
    if 400 <= status < 500 and status != 429:
        return ApiKeyStatus.INVALID
    return ApiKeyStatus.ERROR


@dataclass
class ApiKeySettings:
    api_key: Optional[str] = None
    connection_status: ApiKeyStatus = ApiKeyStatus.NOT_CONFIGURED
    connection_verified_at: Optional[str] = None
    version: int = SETTINGS_VERSION

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def to_dict(self, masked: bool = False) -> dict:
        data = asdict(self)
        data["connection_status"] = self.connection_status.value
        if masked:
            data["api_key"] = mask_api_key(self.api_key)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict) -> "ApiKeySettings":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        try:
            values["connection_status"] = ApiKeyStatus(
                values.get("connection_status", ApiKeyStatus.NOT_CONFIGURED.value)
            )
        except ValueError:
            values["connection_status"] = ApiKeyStatus.NOT_CONFIGURED
        if not isinstance(values.get("api_key"), str):
            values["api_key"] = None
        return cls(**values)


class ApiKeyService:
    """Save, show and apply the lookup provider API key."""

    def __init__(
        self,
        store: DomainStore,
        tester: ConnectionTester,
        lookup_config: LookupConfig,
        demo_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._tester = tester
        self._lookup_config = lookup_config
        self._demo_mode = demo_mode
        self._logger = logger
        self._clock = clock

    async def load(self) -> ApiKeySettings:
        """Load the stored key; a missing or unreadable row yields the unconfigured default."""
        row = await self._store.select_settings(API_KEY_SETTINGS_KIND)
        if row is None or not row.settings_json:
            return ApiKeySettings()
        try:
            data = json.loads(row.settings_json)
        except json.JSONDecodeError as e:
            self._log_error("Stored API key settings are not valid JSON", e)
            return ApiKeySettings()
        if not isinstance(data, dict):
            return ApiKeySettings()
        return ApiKeySettings.from_dict(data)

    async def show(self) -> ServiceResult:
        """Return the stored key masked, with its last connection status."""
        settings = await self.load()
        data = settings.to_dict(masked=True)
        data["configured"] = settings.configured
        message = "API key configured" if settings.configured else "No API key configured"
        return ServiceResult(status=200, message=message, data=data)

    async def save(self, api_key: Optional[str]) -> ServiceResult:
        """
        Test a key against the provider, then store it with the outcome.

        The key is stored even when the test fails, marked `invalid` or
        `error`, and the test's status and message are returned.

        Returns:
            201 when the key works, 403 in demo mode, 400 for an empty key,
            otherwise the connection test's status
        """
        if self._demo_mode:
            return ServiceResult(status=403, message=DEMO_MODE_MESSAGE)
        if not isinstance(api_key, str) or not api_key.strip():
            return ServiceResult(status=400, message="API key can't be empty")

        key = api_key.strip()
        test = await self._tester.test_connection(key)
        settings = ApiKeySettings(
            api_key=key,
            connection_status=status_for_test(test.status),
            connection_verified_at=format_timestamp(self._clock()),
        )

        applied = await self._store.upsert_settings(API_KEY_SETTINGS_KIND, settings.to_json(), True)
        if not applied:
            raise StorageError(
                code="settings_not_saved",
                message="Saving the API key had no effect",
                details={"kind": API_KEY_SETTINGS_KIND},
            )

        data = settings.to_dict(masked=True)
        self._log(LogLevel.INFO, "API key saved", {"connection_status": data["connection_status"]})
        if test.status != 200:
            return ServiceResult(status=test.status, message=test.message, data=data)
        return ServiceResult(status=201, message="API key confirmed! You're all set!", data=data)

    async def apply_stored_key(self) -> bool:
        """
        Fill in the lookup config's key from the store when none is configured.

        Returns:
            True if the stored key is now in use
        """
        if self._lookup_config.api_key:
            return False
        settings = await self.load()
        if not settings.configured:
            return False
        self._lookup_config.api_key = settings.api_key
        self._log(
            LogLevel.DEBUG,
            "Using stored lookup API key",
            {"connection_status": settings.connection_status.value},
        )
        return True

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ApiKeyService", message, data)

    def _log_error(self, message: str, error: BaseException) -> None:
        if self._logger:
            self._logger.log_error("ApiKeyService", message, error)
