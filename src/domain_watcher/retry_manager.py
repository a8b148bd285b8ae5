"""
Retry Manager for lookup provider calls.

Transient provider failures (network trouble, rate limiting, server errors)
are retried with exponential backoff. Authentication and validation
failures are final and surface immediately.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .enums import ProviderErrorCode
from .exceptions import ProviderError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """Runs an async operation until it succeeds, fails finally, or runs out of attempts."""

    TRANSIENT_ERROR_CODES = frozenset({
        ProviderErrorCode.NETWORK_ERROR.value,
        ProviderErrorCode.RATE_LIMITED.value,
        ProviderErrorCode.SERVER_ERROR.value,
    })

    def __init__(
        self,
        config: RetryConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries, delays, and retryable errors
            sleep: Awaitable used for backoff waits
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        delay(n) = base_delay * 2^n, capped at max_delay.

        Args:
            attempt: The current attempt number (0-indexed)
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def is_retryable_error(self, error_code) -> bool:
        """
        Check if an error code indicates a transient error.

        Args:
            error_code: String code or ProviderErrorCode member
        """
        code = error_code.value if isinstance(error_code, ProviderErrorCode) else str(error_code)
        return code in self._config.retryable_errors and code in self.TRANSIENT_ERROR_CODES

    def is_retryable_exception(self, error: Exception) -> bool:
        """Only classified provider errors with a transient code are retried."""
        return isinstance(error, ProviderError) and self.is_retryable_error(error.code)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Decides whether an exception is retried; defaults to
                          is_retryable_exception

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        check = is_retryable or self.is_retryable_exception
        last_error: Optional[Exception] = None
        attempts = 0
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

                if not check(e) or attempts >= max_attempts:
                    break

                await self._sleep(self._calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> T:
        """
        Like execute_with_retry, but returns the value or re-raises the last error.
        """
        outcome = await self.execute_with_retry(operation, is_retryable)
        if outcome.success:
            return outcome.result  # type: ignore[return-value]
        assert outcome.last_error is not None
        raise outcome.last_error
