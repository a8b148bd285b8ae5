"""
Time-of-day helpers and the minute trigger for scheduled ticks.

Channels are scheduled by a local "HH:MM" time. The orchestrator compares
that value against the current minute in the configured timezone; the
MinuteTrigger is the external driver that invokes a tick once per
wall-clock minute.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .audit_logger import AuditLogger
from .enums import LogLevel


NOTIFICATION_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to UTC when unknown.
    """
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def current_local_time(now: datetime, tz_name: Optional[str] = "UTC") -> str:
    """
    Format `now` as zero-padded "HH:MM" in the given timezone.

    Naive datetimes are taken as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(resolve_timezone(tz_name)).strftime("%H:%M")


def is_valid_notification_time(value: Optional[str]) -> bool:
    """Accept H:MM or HH:MM with hours 0-23 and minutes 0-59."""
    return bool(value) and bool(NOTIFICATION_TIME_PATTERN.match(value))


def normalize_notification_time(value: str) -> str:
    """
    Zero-pad a valid notification time ("9:05" -> "09:05").

    Raises:
        ValueError: If the value is not a valid time
    """
    if not is_valid_notification_time(value):
        raise ValueError(f"Time must be in HH:MM format (e.g., 14:30): {value!r}")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


class MinuteTrigger:
    """
    Calls an async tick callback once per wall-clock minute.

    A failing tick is logged and the loop keeps running; only stop() or the
    stop event ends it.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[object]],
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the trigger.

        Args:
            callback: Async function invoked once per minute
            logger: Optional audit logger for tick failures
            clock: Source of the current time
            sleep: Awaitable used to wait for the next minute
        """
        self._callback = callback
        self._logger = logger
        self._clock = clock
        self._sleep = sleep
        self._running = False
        self._last_minute: Optional[datetime] = None
        self._ticks = 0

    @property
    def ticks(self) -> int:
        """Number of callback invocations so far."""
        return self._ticks

    def seconds_until_next_minute(self) -> float:
        now = self._clock()
        return max(0.0, 60.0 - now.second - now.microsecond / 1_000_000)

    async def run_once(self) -> bool:
        """
        Invoke the callback if this minute has not fired yet.

        Returns:
            True if the callback was invoked
        """
        minute = self._clock().replace(second=0, microsecond=0)
        if self._last_minute is not None and minute <= self._last_minute:
            return False

        self._last_minute = minute
        self._ticks += 1
        try:
            await self._callback()
        except Exception as e:
            if self._logger:
                self._logger.log_error(
                    "MinuteTrigger", "Scheduled tick failed", e,
                    {"minute": minute.isoformat()},
                )
        return True

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """
        Run the trigger loop until stopped.

        Args:
            stop_event: Optional event to signal the loop to stop
        """
        self._running = True
        if self._logger:
            self._logger.log(LogLevel.INFO, "MinuteTrigger", "Trigger started", {})

        while self._running:
            await self.run_once()

            if stop_event is not None and stop_event.is_set():
                break

            await self._sleep(self.seconds_until_next_minute())

            if stop_event is not None and stop_event.is_set():
                break

        self._running = False

    def stop(self) -> None:
        """Signal the trigger to stop."""
        self._running = False

    def is_running(self) -> bool:
        return self._running
