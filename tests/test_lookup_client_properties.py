"""
Property-based tests for the WhoisJSON lookup client.

The provider API is replaced with httpx.MockTransport; retries use a
no-op sleep so backoff does not slow the suite.
"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.config import LookupConfig, RetryConfig
from domain_watcher.enums import DomainStatus
from domain_watcher.exceptions import (
    AuthError,
    NetworkError,
    ProviderError,
    ProviderValidationError,
    RateLimitError,
    ServerError,
)
from domain_watcher.lookup_client import LookupProvider, WhoisJsonClient, classify_provider_error
from domain_watcher.retry_manager import RetryManager

from doubles import no_sleep


class FakeProviderApi:
    """Routes requests by endpoint to scripted responses and records them."""

    def __init__(self, routes: dict) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        route = self.routes.get(endpoint, httpx.Response(404, json={"message": "Not found"}))
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if isinstance(route, Exception):
            raise route
        return route

    def paths(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


def make_client(api: FakeProviderApi, api_key="test-key", max_retries=2, simulation_mode=False):
    return WhoisJsonClient(
        LookupConfig(api_key=api_key, base_url="https://whois.test/api/v1", timeout_seconds=5.0),
        simulation_mode=simulation_mode,
        transport=httpx.MockTransport(api),
        retry_manager=RetryManager(RetryConfig(max_retries=max_retries), sleep=no_sleep),
    )


def run_with(client, call):
    async def runner():
        async with client:
            return await call(client)

    return asyncio.run(runner())


class TestAvailabilityProperty:
    def test_registered_domain_reads_whois_expiry(self) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(200, json={"available": False}),
            "whois": httpx.Response(200, json={
                "expires": "2026-01-15T00:00:00Z",
                "registrar": {"name": "Example Registrar"},
            }),
        })

        result = run_with(make_client(api), lambda c: c.check_availability("example.com"))

        assert result.status == DomainStatus.REGISTERED
        assert result.expires == datetime(2026, 1, 15, tzinfo=timezone.utc)
        assert result.registrar == "Example Registrar"
        assert result.raw["registrar"] == {"name": "Example Registrar"}
        assert api.paths() == ["domain-availability", "whois"]
        assert api.requests[0].url.params["domain"] == "example.com"
        assert api.requests[0].headers["Authorization"] == "Token=test-key"

    def test_available_domain_tolerates_whois_failure(self) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(200, json={"available": True}),
            "whois": httpx.Response(404, json={"message": "Domain not found"}),
        })

        result = run_with(make_client(api), lambda c: c.check_availability("free-name.io"))

        assert result.status == DomainStatus.AVAILABLE
        assert result.expires is None
        assert result.raw == {"available": True}

    def test_missing_api_key_fails_without_request(self) -> None:
        api = FakeProviderApi({})

        with pytest.raises(AuthError):
            run_with(make_client(api, api_key=None), lambda c: c.check_availability("example.com"))

        assert api.requests == []

    def test_simulation_mode_makes_no_request(self) -> None:
        api = FakeProviderApi({})
        client = make_client(api, api_key=None, simulation_mode=True)

        result = run_with(client, lambda c: c.check_availability("example.com"))

        assert result.status == DomainStatus.REGISTERED
        assert result.raw["simulated"] is True
        assert api.requests == []

    def test_client_satisfies_provider_protocol(self) -> None:
        assert isinstance(make_client(FakeProviderApi({})), LookupProvider)


class TestErrorMappingProperty:
    """
    Property: HTTP failures map onto the provider error taxonomy.
    """

    @pytest.mark.parametrize(
        "status_code, error_type, http_status",
        [
            (401, AuthError, 401),
            (403, AuthError, 401),
            (429, RateLimitError, 429),
            (400, ProviderValidationError, 400),
            (422, ProviderValidationError, 400),
            (500, ServerError, 500),
            (503, ServerError, 500),
        ],
    )
    def test_status_codes(self, status_code, error_type, http_status) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(status_code, json={"message": "rejected"}),
        })

        with pytest.raises(error_type) as exc_info:
            run_with(make_client(api, max_retries=0), lambda c: c.check_availability("example.com"))

        assert exc_info.value.http_status == http_status
        assert exc_info.value.message == "rejected"

    def test_final_errors_are_not_retried(self) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(401, json={"message": "Invalid API key"}),
        })

        with pytest.raises(AuthError):
            run_with(make_client(api, max_retries=3), lambda c: c.check_availability("example.com"))

        assert len(api.requests) == 1

    def test_transient_errors_are_retried(self) -> None:
        api = FakeProviderApi({
            "domain-availability": [
                httpx.Response(503, text="unavailable"),
                httpx.Response(200, json={"available": True}),
            ],
        })

        result = run_with(make_client(api, max_retries=2), lambda c: c.check_availability("example.com"))

        assert result.status == DomainStatus.AVAILABLE
        assert api.paths()[:2] == ["domain-availability", "domain-availability"]

    @given(max_retries=st.integers(min_value=0, max_value=4))
    @settings(max_examples=10)
    def test_connection_errors_exhaust_retries(self, max_retries) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.ConnectError("connection refused"),
        })

        with pytest.raises(NetworkError) as exc_info:
            run_with(make_client(api, max_retries=max_retries), lambda c: c.check_availability("example.com"))

        assert len(api.requests) == max_retries + 1
        assert exc_info.value.http_status == 502

    def test_timeouts_become_network_errors(self) -> None:
        api = FakeProviderApi({"nslookup": httpx.ReadTimeout("read timed out")})

        with pytest.raises(NetworkError) as exc_info:
            run_with(make_client(api, max_retries=0), lambda c: c.check_ns("example.com"))

        assert "timeout" in exc_info.value.message.lower()


class TestClassificationProperty:
    """
    Property: free-form provider messages classify by keyword, in priority order.
    """

    @pytest.mark.parametrize(
        "message, error_type",
        [
            ("Network unreachable", NetworkError),
            ("Request timeout", NetworkError),
            ("SSL connection failed", NetworkError),
            ("Invalid API key", AuthError),
            ("Unauthorized", AuthError),
            ("Rate limit exceeded", RateLimitError),
            ("Too many requests", RateLimitError),
            ("Invalid domain", ProviderValidationError),
            ("The domain name parameter has not been filled", ProviderValidationError),
            ("Not found", ProviderValidationError),
            ("Something broke", ServerError),
            (None, ServerError),
        ],
    )
    def test_keywords(self, message, error_type) -> None:
        assert type(classify_provider_error(message)) is error_type

    def test_network_wins_over_auth(self) -> None:
        assert isinstance(classify_provider_error("API key check timeout"), NetworkError)

    @given(message=st.text(max_size=60))
    @settings(max_examples=100)
    def test_always_classifies(self, message) -> None:
        error = classify_provider_error(message)

        assert isinstance(error, ProviderError)
        assert error.http_status in (400, 401, 429, 500, 502)


class TestAuxiliaryLookups:
    def test_ns_and_ssl_return_raw_payloads(self) -> None:
        api = FakeProviderApi({
            "nslookup": httpx.Response(200, json={"NS": ["ns1.example.com"]}),
            "ssl-cert-check": httpx.Response(200, json=["not", "a", "dict"]),
        })

        async def both(client):
            return await client.check_ns("example.com"), await client.check_ssl("example.com")

        ns, ssl = run_with(make_client(api), both)

        assert ns == {"NS": ["ns1.example.com"]}
        assert ssl == {"result": ["not", "a", "dict"]}

    def test_connection_check(self) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(200, json={"available": False}),
            "whois": httpx.Response(200, json={}),
        })

        ok = run_with(make_client(api), lambda c: c.test_connection("key-1"))

        assert ok.status == 200
        assert api.requests[0].headers["Authorization"] == "Token=key-1"
        assert api.requests[0].url.params["domain"] == "example.com"

    def test_connection_check_requires_key(self) -> None:
        result = run_with(make_client(FakeProviderApi({}), api_key=None), lambda c: c.test_connection())

        assert result.status == 400

    def test_connection_check_reports_provider_status(self) -> None:
        api = FakeProviderApi({
            "domain-availability": httpx.Response(401, json={"message": "Invalid API key"}),
        })

        result = run_with(make_client(api), lambda c: c.test_connection("bad"))

        assert result.status == 401
        assert result.message == "Invalid API key"
