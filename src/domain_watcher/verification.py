"""
Verification engine for watchlist domains.

verify_one checks a single domain against the lookup provider and records
the outcome with exactly one store write. verify_batch runs verify_one over
many domains in sequential chunks: members of a chunk run concurrently
under a semaphore of the chunk size, a failing member never disturbs its
siblings, and an explicit sleep between chunks spaces out provider bursts.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from .audit_logger import AuditLogger
from .config import BatchConfig
from .enums import DomainStatus, LogLevel
from .exceptions import DomainWatcherError, StorageError
from .lookup_client import LookupProvider
from .models import BatchVerificationResult, DomainRecord, VerificationResult
from .store import DomainStore, utc_now


def describe_error(error: BaseException) -> str:
    """Human-readable reason for a failed check."""
    if isinstance(error, DomainWatcherError):
        return error.message
    return str(error) or type(error).__name__


class VerificationEngine:
    """Checks domains against the lookup provider and persists the outcome."""

    def __init__(
        self,
        store: DomainStore,
        provider: LookupProvider,
        batch_config: Optional[BatchConfig] = None,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Store gateway receiving one write per check
            provider: Lookup provider used for availability checks
            batch_config: Default chunk size and inter-chunk delay
            logger: Optional audit logger
            clock: Source of the `now` used to judge expiry in a batch
            sleep: Awaitable used for the inter-chunk delay
        """
        self._store = store
        self._provider = provider
        self._batch_config = batch_config or BatchConfig()
        self._logger = logger
        self._clock = clock
        self._sleep = sleep

    @property
    def batch_config(self) -> BatchConfig:
        return self._batch_config

    async def verify_one(self, domain: DomainRecord) -> VerificationResult:
        """
        Check one domain and persist the outcome.

        A provider failure of any kind marks the domain as error with the
        failure message. A successful lookup overwrites status, expiry and
        raw data even when nothing changed.

        Args:
            domain: The stored record to check

        Returns:
            VerificationResult describing the outcome

        Raises:
            StorageError: If the single store write fails
        """
        try:
            lookup = await self._provider.check_availability(domain.name)
        except Exception as e:
            message = describe_error(e)
            applied = await self._store.update_error(domain.id, message)
            self._log_error(
                f"Verification failed for {domain.name}",
                e,
                {"domain": domain.name, "domain_id": domain.id, "row_updated": applied},
            )
            return VerificationResult(success=False, domain=domain.name, error=message)

        applied = await self._store.update_status(
            domain.id, lookup.status, lookup.expires, lookup.raw
        )
        if not applied:
            self._log(
                LogLevel.WARN,
                f"Domain {domain.name} vanished before its result was stored",
                {"domain_id": domain.id},
            )

        return VerificationResult(
            success=True,
            domain=domain.name,
            status=lookup.status,
            was_available=lookup.status == DomainStatus.AVAILABLE,
            is_still_registered=lookup.status == DomainStatus.REGISTERED,
            expires=lookup.expires,
        )

    async def verify_batch(
        self,
        domains: Sequence[DomainRecord],
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> BatchVerificationResult:
        """
        Check many domains as rate-limited chunks.

        Chunks run strictly in order; members of a chunk run concurrently.
        Exceptions raised by a member (including storage errors) are counted
        as that member's failure. The delay is applied only between chunks.

        Args:
            domains: Records to check, in priority order
            batch_size: Chunk size (defaults to the engine's BatchConfig)
            delay_seconds: Pause between chunks (defaults to the engine's BatchConfig)

        Returns:
            BatchVerificationResult aggregating every outcome
        """
        if not domains:
            return BatchVerificationResult.empty()

        size = max(1, batch_size if batch_size is not None else self._batch_config.batch_size)
        delay = delay_seconds if delay_seconds is not None else self._batch_config.delay_seconds
        now = self._clock()
        total = len(domains)
        semaphore = asyncio.Semaphore(size)
        result = BatchVerificationResult()

        self._log(
            LogLevel.INFO,
            f"Verifying {total} domains",
            {"batch_size": size, "delay_seconds": delay},
        )

        async def bounded(domain: DomainRecord) -> VerificationResult:
            async with semaphore:
                return await self.verify_one(domain)

        for start in range(0, total, size):
            chunk = domains[start:start + size]
            outcomes = await asyncio.gather(
                *(bounded(domain) for domain in chunk),
                return_exceptions=True,
            )

            for domain, outcome in zip(chunk, outcomes):
                result.checked += 1
                if isinstance(outcome, BaseException):
                    result.errors += 1
                    result.error_messages.append(f"{domain.name}: {describe_error(outcome)}")
                    if isinstance(outcome, StorageError):
                        self._log_error(
                            f"Storing result for {domain.name} failed", outcome,
                            {"domain_id": domain.id},
                        )
                elif not outcome.success:
                    result.errors += 1
                    result.error_messages.append(f"{domain.name}: {outcome.error}")
                elif outcome.was_available:
                    result.available.append(domain)
                elif outcome.is_still_registered and domain.expires is not None and domain.expires < now:
                    result.still_registered.append(domain)

            self._log(
                LogLevel.DEBUG,
                f"[{result.checked}/{total}] chunk complete",
                {"errors": result.errors},
            )

            if delay > 0 and start + size < total:
                await self._sleep(delay)

        self._log(
            LogLevel.INFO,
            "Verification complete",
            {
                "checked": result.checked,
                "available": len(result.available),
                "still_registered": len(result.still_registered),
                "errors": result.errors,
            },
        )
        return result

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "VerificationEngine", message, data)

    def _log_error(self, message: str, error: BaseException, data: dict) -> None:
        if self._logger:
            self._logger.log_error("VerificationEngine", message, error, data)
