"""
Lookup provider client for availability, nameserver and SSL checks.

This module defines the LookupProvider protocol the verification engine
depends on and WhoisJsonClient, an async httpx implementation against the
WhoisJSON REST API. Every failure is raised as a classified ProviderError
carrying an HTTP-like status for the calling layer.
"""

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger
from .config import LookupConfig, RetryConfig
from .enums import DomainStatus, LogLevel, ProviderErrorCode
from .exceptions import (
    AuthError,
    NetworkError,
    ProviderError,
    ProviderValidationError,
    RateLimitError,
    ServerError,
)
from .models import ServiceResult, parse_timestamp
from .retry_manager import RetryManager


TEST_DOMAIN = "example.com"


@dataclass
class AvailabilityLookup:
    """Classified availability answer for one domain."""

    status: DomainStatus
    expires: Optional[datetime] = None
    registrar: Optional[str] = None
    raw: dict = field(default_factory=dict)


@runtime_checkable
class LookupProvider(Protocol):
    """Calls the watcher makes against the external lookup service."""

    @abstractmethod
    async def check_availability(self, name: str) -> AvailabilityLookup:
        ...

    @abstractmethod
    async def check_ns(self, name: str) -> dict:
        ...

    @abstractmethod
    async def check_ssl(self, name: str) -> dict:
        ...


def classify_provider_error(
    message: Optional[str],
    details: Optional[dict] = None,
) -> ProviderError:
    """
    Map a free-form provider error message onto the error taxonomy.

    Keyword order matters: network problems win over auth, auth over rate
    limiting, and rate limiting over validation. Anything unrecognized is
    a server error.

    Args:
        message: Error text reported by the provider or transport
        details: Optional context attached to the resulting error

    Returns:
        A ProviderError subclass instance (not raised)
    """
    text = message or "Unknown error occurred"
    lower = text.lower()

    if any(k in lower for k in ("network", "timeout", "connection", "ssl connection failed")):
        return NetworkError(ProviderErrorCode.NETWORK_ERROR.value, text, details)
    if any(k in lower for k in ("api key", "authentication", "unauthorized")):
        return AuthError(ProviderErrorCode.AUTH_ERROR.value, text, details)
    if any(k in lower for k in ("rate limit", "too many requests")):
        return RateLimitError(ProviderErrorCode.RATE_LIMITED.value, text, details)
    if any(
        k in lower
        for k in (
            "domain name parameter",
            "invalid domain",
            "parameter has not been filled",
            "not found",
        )
    ):
        return ProviderValidationError(ProviderErrorCode.VALIDATION_ERROR.value, text, details)
    return ServerError(ProviderErrorCode.SERVER_ERROR.value, text, details)


def _error_for_status(status_code: int, message: str, details: dict) -> ProviderError:
    if status_code in (401, 403):
        return AuthError(ProviderErrorCode.AUTH_ERROR.value, message, details)
    if status_code == 429:
        return RateLimitError(ProviderErrorCode.RATE_LIMITED.value, message, details)
    if status_code in (400, 404, 422):
        return ProviderValidationError(ProviderErrorCode.VALIDATION_ERROR.value, message, details)
    if status_code >= 500:
        return ServerError(ProviderErrorCode.SERVER_ERROR.value, message, details)
    return classify_provider_error(message, details)


class WhoisJsonClient:
    """
    Async client for the WhoisJSON API.

    Transient failures are retried by a RetryManager; every request carries
    the configured timeout so a stuck call fails in bounded time.
    """

    AVAILABILITY_PATH = "/domain-availability"
    WHOIS_PATH = "/whois"
    NS_PATH = "/nslookup"
    SSL_PATH = "/ssl-cert-check"

    def __init__(
        self,
        config: LookupConfig,
        retry_config: Optional[RetryConfig] = None,
        simulation_mode: bool = False,
        logger: Optional[AuditLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_manager: Optional[RetryManager] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: API key, base URL and timeout
            retry_config: Backoff policy for transient errors
            simulation_mode: If True, no real network requests are made
            logger: Optional audit logger
            transport: Optional httpx transport (used by tests)
            retry_manager: Optional pre-built retry manager
        """
        self._config = config
        self._simulation_mode = simulation_mode
        self._logger = logger
        self._transport = transport
        self._retry = retry_manager or RetryManager(retry_config or RetryConfig())
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "WhoisJsonClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def has_api_key(self) -> bool:
        return bool(self._config.api_key)

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                timeout=httpx.Timeout(self._config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    async def _get(self, path: str, domain: str, api_key: Optional[str] = None) -> Any:
        key = api_key or self._config.api_key
        if not key:
            raise AuthError(
                ProviderErrorCode.AUTH_ERROR.value,
                "WHOIS API key not configured. Please configure API settings first.",
                {"domain": domain},
            )

        client = self._ensure_client()
        details = {"domain": domain, "path": path}

        async def request() -> Any:
            try:
                response = await client.get(
                    path,
                    params={"domain": domain},
                    headers={"Authorization": f"Token={key}", "Accept": "application/json"},
                )
            except httpx.TimeoutException as e:
                raise NetworkError(
                    ProviderErrorCode.NETWORK_ERROR.value, f"Request timeout: {e}", details
                ) from e
            except httpx.TransportError as e:
                raise NetworkError(
                    ProviderErrorCode.NETWORK_ERROR.value, f"Connection failed: {e}", details
                ) from e

            if response.status_code >= 400:
                message = self._extract_error_message(response)
                raise _error_for_status(
                    response.status_code,
                    message,
                    {**details, "http_status_code": response.status_code},
                )

            try:
                return response.json()
            except ValueError as e:
                raise ServerError(
                    ProviderErrorCode.SERVER_ERROR.value,
                    f"Invalid JSON from provider: {e}",
                    details,
                ) from e

        return await self._retry.call(request)

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in ("message", "error", "detail"):
                if isinstance(body.get(key), str) and body[key]:
                    return body[key]
        text = response.text.strip()
        return text or f"Provider returned HTTP {response.status_code}"

    async def check_availability(
        self, name: str, api_key: Optional[str] = None
    ) -> AvailabilityLookup:
        """
        Check whether a domain is available for registration.

        Registered domains get a follow-up WHOIS lookup for the expiry date
        and registrar; a failing follow-up is logged and tolerated.

        Raises:
            ProviderError: If the availability call fails
        """
        if self._simulation_mode:
            return self._simulated_availability(name)

        availability = await self._get(self.AVAILABILITY_PATH, name, api_key)
        available = bool(isinstance(availability, dict) and availability.get("available"))

        whois_data: Optional[dict] = None
        try:
            data = await self._get(self.WHOIS_PATH, name, api_key)
            whois_data = data if isinstance(data, dict) else None
        except ProviderError as e:
            self._log(
                LogLevel.DEBUG,
                f"WHOIS lookup failed for {name}, likely available",
                {"domain": name, "error": e.message},
            )

        raw = whois_data or (availability if isinstance(availability, dict) else {})
        return AvailabilityLookup(
            status=DomainStatus.AVAILABLE if available else DomainStatus.REGISTERED,
            expires=parse_timestamp((whois_data or {}).get("expires")),
            registrar=self._registrar_name(whois_data),
            raw=raw,
        )

    @staticmethod
    def _registrar_name(whois_data: Optional[dict]) -> Optional[str]:
        if not whois_data:
            return None
        registrar = whois_data.get("registrar")
        if isinstance(registrar, dict):
            return registrar.get("name")
        return registrar

    async def check_ns(self, name: str, api_key: Optional[str] = None) -> dict:
        """Nameserver/DNS lookup. Raises ProviderError on failure."""
        if self._simulation_mode:
            return {"domain": name, "simulated": True, "NS": [f"ns1.{name}", f"ns2.{name}"]}
        data = await self._get(self.NS_PATH, name, api_key)
        return data if isinstance(data, dict) else {"result": data}

    async def check_ssl(self, name: str, api_key: Optional[str] = None) -> dict:
        """SSL certificate lookup. Raises ProviderError on failure."""
        if self._simulation_mode:
            return {"domain": name, "simulated": True, "valid": True}
        data = await self._get(self.SSL_PATH, name, api_key)
        return data if isinstance(data, dict) else {"result": data}

    async def test_connection(
        self, api_key: Optional[str] = None, test_domain: str = TEST_DOMAIN
    ) -> ServiceResult:
        """
        Verify an API key by running one availability check.

        Returns:
            ServiceResult with 200 on success or the classified error status
        """
        key = api_key or self._config.api_key
        if not key or not isinstance(key, str):
            return ServiceResult(status=400, message="API key is required for testing")

        try:
            await self.check_availability(test_domain, api_key=key)
        except ProviderError as e:
            return ServiceResult(status=e.http_status, message=e.message)
        return ServiceResult(status=200, message="API key is working correctly")

    def _simulated_availability(self, name: str) -> AvailabilityLookup:
        expires = datetime.now(timezone.utc) + timedelta(days=365)
        return AvailabilityLookup(
            status=DomainStatus.REGISTERED,
            expires=expires,
            registrar="Simulation Registrar",
            raw={"domain": name, "simulated": True, "expires": expires.isoformat()},
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "WhoisJsonClient", message, data)
