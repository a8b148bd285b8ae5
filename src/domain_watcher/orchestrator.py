"""
Tick Orchestrator for the domain watcher system.

One tick resolves which channels are due at the current local minute,
short-circuits when none are, and otherwise verifies the watchlist and
fans the resulting report out to every due channel:

1. Resolve due channels (enabled and scheduled for this minute, or forced)
2. Skip without touching the watchlist when nothing is due
3. Categorize once, then verify the expired-registered and routine
   batches concurrently, each with its own batch settings
4. Send the merged report to every due channel concurrently, even when
   it is empty; one channel's failure never affects another
5. Aggregate the per-channel outcomes

Store failures abort the tick and propagate to the trigger.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence

from .audit_logger import AuditLogger
from .categorizer import DomainCategorizer
from .config import SystemConfig
from .enums import LogLevel, TickAction
from .exceptions import ValidationError
from .models import (
    DispatchSummary,
    DomainCheckSummary,
    DomainReport,
    SendResult,
    TickResult,
    format_timestamp,
)
from .notifications import NotificationChannel
from .scheduler import current_local_time, normalize_notification_time
from .settings import ChannelSettings, ChannelSettingsService
from .store import utc_now
from .verification import VerificationEngine


NO_CHANNELS_DUE_REASON = "No channels scheduled"


@dataclass
class DueChannel:
    """A channel selected for dispatch together with the settings it was selected with."""

    channel: NotificationChannel
    settings: ChannelSettings


class TickOrchestrator:
    """
    Entry point for scheduled and forced ticks.

    Holds no state between ticks; each tick re-derives its plan from the
    stored domains and channel settings.
    """

    def __init__(
        self,
        engine: VerificationEngine,
        categorizer: DomainCategorizer,
        settings_service: ChannelSettingsService,
        channels: Sequence[NotificationChannel],
        config: SystemConfig,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            engine: Verification engine used for both batches
            categorizer: Watchlist categorizer
            settings_service: Loads channel settings
            channels: Registered notification channels
            config: System configuration (timezone and batch settings)
            logger: Optional audit logger
            clock: Source of the tick time
        """
        self._engine = engine
        self._categorizer = categorizer
        self._settings_service = settings_service
        self._channels = list(channels)
        self._config = config
        self._logger = logger
        self._clock = clock

    async def run_tick(self, force: bool = False) -> TickResult:
        """
        Run one tick.

        Args:
            force: Dispatch every enabled channel regardless of its time

        Returns:
            TickResult; action is `skipped` when no channel was due

        Raises:
            StorageError: If reading the watchlist or settings fails
        """
        now = self._clock()
        local_time = current_local_time(now, self._config.timezone)
        timestamp = format_timestamp(now) or ""

        due_channels = await self.resolve_due_channels(local_time, force)
        if not due_channels:
            self._log(
                LogLevel.DEBUG,
                "No channels due, skipping tick",
                {"local_time": local_time, "force": force},
            )
            return TickResult(
                timestamp=timestamp,
                timestamp_local=local_time,
                action=TickAction.SKIPPED,
                reason=NO_CHANNELS_DUE_REASON,
            )

        self._log(
            LogLevel.INFO,
            "Tick started",
            {
                "local_time": local_time,
                "force": force,
                "channels": [due.channel.kind.value for due in due_channels],
            },
        )

        summary = await self.check_domains(now)
        notifications = await self.dispatch(due_channels, summary.report)

        self._log(
            LogLevel.INFO,
            "Tick completed",
            {"domains": summary.to_dict(), "notifications": notifications.to_dict()},
        )

        return TickResult(
            timestamp=timestamp,
            timestamp_local=local_time,
            action=TickAction.EXECUTED,
            domains=summary,
            notifications=notifications,
        )

    async def resolve_due_channels(self, current_time: str, force: bool) -> list[DueChannel]:
        """
        Select enabled channels scheduled for `current_time` (or all enabled when forced).

        Raises:
            StorageError: If a settings read fails
        """
        due: list[DueChannel] = []
        for channel in self._channels:
            try:
                settings = await self._settings_service.load(channel.kind)
            except ValidationError as e:
                self._log_error(f"Unreadable {channel.name} settings", e, channel.kind.value)
                continue
            if not settings.enabled:
                continue
            if force or self._is_scheduled(settings, current_time):
                due.append(DueChannel(channel=channel, settings=settings))
        return due

    @staticmethod
    def _is_scheduled(settings: ChannelSettings, current_time: str) -> bool:
        try:
            return normalize_notification_time(settings.notification_time) == current_time
        except ValueError:
            return False

    async def check_domains(self, now: Optional[datetime] = None) -> DomainCheckSummary:
        """
        Categorize the watchlist and verify the two priority groups concurrently.

        The expiring bucket is reported as categorized, without verification.

        Raises:
            StorageError: If the watchlist cannot be read
        """
        categorized = await self._categorizer.categorize(now or self._clock())
        verification = self._config.verification

        expired_batch, routine_batch = await asyncio.gather(
            self._engine.verify_batch(
                categorized.expired_registered,
                verification.expired.batch_size,
                verification.expired.delay_seconds,
            ),
            self._engine.verify_batch(
                categorized.needing_verification,
                verification.routine.batch_size,
                verification.routine.delay_seconds,
            ),
        )

        report = DomainReport(
            available=expired_batch.available + routine_batch.available,
            expiring=list(categorized.expiring),
            expired=list(expired_batch.still_registered),
        )
        return DomainCheckSummary(
            checked=expired_batch.checked + routine_batch.checked,
            report=report,
            error_messages=expired_batch.error_messages + routine_batch.error_messages,
        )

    async def dispatch(
        self, due_channels: Sequence[DueChannel], report: DomainReport
    ) -> DispatchSummary:
        """
        Send the report to every due channel concurrently.

        Channels whose settings fail validation are skipped and logged, not
        counted as errors. A channel that raises, during validation or send,
        or reports failure becomes one entry in `errors`.
        """
        summary = DispatchSummary()
        sendable: list[DueChannel] = []
        for due in due_channels:
            key = due.channel.kind.value
            try:
                valid = due.channel.validate(due.settings)
            except Exception as e:
                self._log_error(f"{due.channel.name} raised during validation", e, key)
                summary.errors.append({"channel": key, "error": str(e) or type(e).__name__})
                continue
            if valid:
                sendable.append(due)
            else:
                self._log(
                    LogLevel.WARN,
                    f"Skipping {due.channel.name}: settings incomplete",
                    {"channel": key},
                )

        outcomes = await asyncio.gather(
            *(due.channel.send_report(due.settings, report) for due in sendable),
            return_exceptions=True,
        )

        for due, outcome in zip(sendable, outcomes):
            key = due.channel.kind.value
            if isinstance(outcome, BaseException):
                self._log_error(f"{due.channel.name} raised during send", outcome, key)
                summary.errors.append({"channel": key, "error": str(outcome) or type(outcome).__name__})
            elif isinstance(outcome, SendResult) and outcome.success:
                summary.sent += 1
                summary.providers.append(key)
            else:
                message = outcome.message if isinstance(outcome, SendResult) else "Unexpected send result"
                self._log(LogLevel.ERROR, f"{due.channel.name} send failed", {"channel": key, "reason": message})
                summary.errors.append({"channel": key, "error": message})

        return summary

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "TickOrchestrator", message, data)

    def _log_error(self, message: str, error: BaseException, channel: str) -> None:
        if self._logger:
            self._logger.log_error("TickOrchestrator", message, error, {"channel": channel})
