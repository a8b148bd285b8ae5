"""
Property-based tests for the manual domain operations.

Every operation answers with a status-like code: validation and policy
refusals happen before any store or provider I/O.
"""

import asyncio
from datetime import timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.categorizer import DomainCategorizer
from domain_watcher.config import BatchConfig, SystemConfig
from domain_watcher.enums import DomainStatus
from domain_watcher.exceptions import AuthError, RateLimitError
from domain_watcher.service import DomainService
from domain_watcher.verification import VerificationEngine

from doubles import FIXED_NOW, FakeLookupProvider, InMemoryStore, fixed_clock, no_sleep


def make_service(store=None, provider=None, api_key="key", demo_mode=False, simulation_mode=False):
    store = store or InMemoryStore()
    provider = provider or FakeLookupProvider()
    config = SystemConfig(demo_mode=demo_mode, simulation_mode=simulation_mode)
    config.lookup.api_key = api_key
    config.verification.manual_limit = 20
    engine = VerificationEngine(
        store, provider, BatchConfig(batch_size=3, delay_seconds=0.0), clock=fixed_clock(), sleep=no_sleep
    )
    categorizer = DomainCategorizer(store, clock=fixed_clock())
    return store, provider, DomainService(store, engine, categorizer, provider, config)


class TestWatchlistEdits:
    def test_add_domain(self) -> None:
        store, _, service = make_service()

        created = asyncio.run(service.add_domain("  Example.COM "))
        duplicate = asyncio.run(service.add_domain("example.com"))

        assert created.status == 201 and created.data == {"domain": "example.com"}
        assert duplicate.status == 409
        assert [d.name for d in asyncio.run(store.select_all())] == ["example.com"]

    def test_invalid_name_is_rejected_before_io(self) -> None:
        store, _, service = make_service()

        result = asyncio.run(service.add_domain("https://example.com"))

        assert result.status == 400
        assert result.data == {"code": "has_scheme"}
        assert asyncio.run(store.select_all()) == []

    def test_remove_domain(self) -> None:
        store, _, service = make_service()
        domain = store.add("gone.com")

        assert asyncio.run(service.remove_domain(domain.id)).status == 200
        assert asyncio.run(service.remove_domain(domain.id)).status == 404
        assert asyncio.run(service.remove_domain("abc")).status == 400

    def test_demo_mode_refuses_edits(self) -> None:
        store, _, service = make_service(demo_mode=True)
        domain = store.add("keep.com")

        assert asyncio.run(service.add_domain("new.com")).status == 403
        assert asyncio.run(service.remove_domain(domain.id)).status == 403
        assert [d.name for d in asyncio.run(store.select_all())] == ["keep.com"]

    def test_list_domains_with_filter(self) -> None:
        store, _, service = make_service()
        store.add("a.com", DomainStatus.AVAILABLE)
        store.add("b.com", DomainStatus.REGISTERED)

        everything = asyncio.run(service.list_domains())
        available = asyncio.run(service.list_domains(DomainStatus.AVAILABLE))

        assert [d["name"] for d in everything.data["domains"]] == ["a.com", "b.com"]
        assert [d["name"] for d in available.data["domains"]] == ["a.com"]


class TestVerifySingle:
    def test_success(self) -> None:
        store, provider, service = make_service()
        domain = store.add("example.com")
        provider.set_available("example.com")

        result = asyncio.run(service.verify_single(str(domain.id)))

        assert result.status == 200
        assert result.data["status"] == "available"
        assert store.get(domain.id).status == DomainStatus.AVAILABLE

    def test_unknown_id(self) -> None:
        _, provider, service = make_service()

        assert asyncio.run(service.verify_single(99)).status == 404
        assert provider.calls == []

    def test_provider_failure_returns_message(self) -> None:
        store, provider, service = make_service()
        domain = store.add("example.com")
        provider.set_failure("example.com", RateLimitError("rate_limited", "Too many requests"))

        result = asyncio.run(service.verify_single(domain.id))

        assert result.status == 500
        assert result.message == "Too many requests"
        assert store.get(domain.id).error_message == "Too many requests"

    def test_missing_api_key_is_refused_before_io(self) -> None:
        store, provider, service = make_service(api_key=None)
        domain = store.add("example.com")

        result = asyncio.run(service.verify_single(domain.id))

        assert result.status == 400
        assert provider.calls == []
        assert store.writes == []

    def test_simulation_mode_does_not_need_api_key(self) -> None:
        store, _, service = make_service(api_key=None, simulation_mode=True)
        domain = store.add("example.com")

        assert asyncio.run(service.verify_single(domain.id)).status == 200

    def test_invalid_id_wins_over_policy(self) -> None:
        _, _, service = make_service(demo_mode=True)

        assert asyncio.run(service.verify_single(0)).status == 400


class TestVerifyAllDueProperty:
    """
    Property: the response code reflects the success rate of the capped batch.
    """

    def test_nothing_due(self) -> None:
        store, _, service = make_service()
        store.add("fine.com", DomainStatus.REGISTERED, FIXED_NOW + timedelta(days=200))

        assert asyncio.run(service.verify_all_due()).status == 204

    def test_non_positive_limit(self) -> None:
        _, _, service = make_service()

        assert asyncio.run(service.verify_all_due(0)).status == 400

    @given(
        total=st.integers(min_value=1, max_value=12),
        failures=st.integers(min_value=0, max_value=12),
        limit=st.integers(min_value=1, max_value=12),
    )
    @settings(max_examples=100)
    def test_status_matches_success_rate(self, total, failures, limit) -> None:
        failures = min(failures, total)
        store, provider, service = make_service()
        for i in range(total):
            name = f"due{i:02d}.com"
            store.add(name)
            if i < failures:
                provider.set_failure(name)

        result = asyncio.run(service.verify_all_due(limit))

        processed = min(total, limit)
        failed = min(failures, processed)
        assert len(provider.calls) == processed
        assert result.data["checked"] == processed
        assert result.data["errors"] == failed
        assert result.data["remaining"] == total - processed
        if failed == 0:
            assert result.status == 200
        elif (processed - failed) / processed >= 0.5:
            assert result.status == 207
        else:
            assert result.status == 422

    def test_only_due_domains_are_checked(self) -> None:
        store, provider, service = make_service()
        store.add("new.com")
        store.add("err.com", DomainStatus.ERROR)
        store.add("ok.com", DomainStatus.REGISTERED, FIXED_NOW + timedelta(days=300))
        store.add("lapsed.com", DomainStatus.REGISTERED, FIXED_NOW - timedelta(days=1))

        asyncio.run(service.verify_all_due())

        assert sorted(provider.calls) == ["err.com", "new.com"]


class TestAuxiliaryLookups:
    def test_ns_lookup_is_stored(self) -> None:
        store, provider, service = make_service()
        domain = store.add("example.com")

        result = asyncio.run(service.lookup_ns(domain.id))

        assert result.status == 200
        assert store.get(domain.id).raw_ns_data == {"NS": ["ns1.example.com"]}
        assert provider.ns_calls == ["example.com"]

    def test_ssl_lookup_is_stored(self) -> None:
        store, _, service = make_service()
        domain = store.add("example.com")

        asyncio.run(service.lookup_ssl(domain.id))

        assert store.get(domain.id).raw_ssl_data == {"valid": True}

    def test_provider_error_maps_to_its_status(self) -> None:
        store, provider, service = make_service()
        domain = store.add("example.com")
        provider.set_failure("example.com", AuthError("auth_error", "Invalid API key"))

        result = asyncio.run(service.lookup_ssl(domain.id))

        assert result.status == 401
        assert result.message == "Invalid API key"
        assert store.get(domain.id).raw_ssl_data is None
