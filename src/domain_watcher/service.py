"""
Manual domain operations.

Every method returns a ServiceResult with an HTTP-like status for expected
conditions: malformed input is rejected with 400 before any I/O, demo
mode with 403, a missing lookup API key with 400, and provider errors
carry their classified status. Store failures are not expected conditions
and propagate as StorageError.
"""

from typing import Any, Optional

from .audit_logger import AuditLogger
from .categorizer import DomainCategorizer
from .config import SystemConfig
from .domain_validator import DomainValidator, validate_domain_id
from .enums import DomainStatus, LogLevel
from .exceptions import ProviderError, ValidationError
from .lookup_client import LookupProvider
from .models import ServiceResult
from .settings import DEMO_MODE_MESSAGE
from .store import DomainStore
from .verification import VerificationEngine


MISSING_API_KEY_MESSAGE = (
    "No API key configured. Add your lookup provider API key first, then try again."
)
PARTIAL_SUCCESS_THRESHOLD = 0.5


class DomainService:
    """Ad-hoc operations on the watchlist: list, add, remove, verify, NS and SSL lookups."""

    def __init__(
        self,
        store: DomainStore,
        engine: VerificationEngine,
        categorizer: DomainCategorizer,
        provider: LookupProvider,
        config: SystemConfig,
        logger: Optional[AuditLogger] = None,
        validator: Optional[DomainValidator] = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._categorizer = categorizer
        self._provider = provider
        self._config = config
        self._logger = logger
        self._validator = validator or DomainValidator()

    def _check_access(self, needs_provider: bool = True) -> Optional[ServiceResult]:
        if self._config.demo_mode:
            return ServiceResult(status=403, message=DEMO_MODE_MESSAGE)
        if needs_provider and not self._config.simulation_mode and not self._config.lookup.api_key:
            return ServiceResult(status=400, message=MISSING_API_KEY_MESSAGE)
        return None

    @staticmethod
    def _invalid(error: ValidationError) -> ServiceResult:
        return ServiceResult(status=400, message=error.message, data={"code": error.code})

    async def list_domains(self, status: Optional[DomainStatus] = None) -> ServiceResult:
        """List the watchlist, optionally filtered by status."""
        if status is None:
            domains = await self._store.select_all()
        else:
            domains = await self._store.select_where([status])
        return ServiceResult(
            status=200,
            message=f"{len(domains)} domains",
            data={"domains": [domain.to_dict() for domain in domains]},
        )

    async def add_domain(self, raw_name: str) -> ServiceResult:
        """Add a domain to the watchlist (201), or report that it already exists (409)."""
        try:
            name = self._validator.require_valid(raw_name)
        except ValidationError as e:
            return self._invalid(e)

        denied = self._check_access(needs_provider=False)
        if denied:
            return denied

        if not await self._store.insert_if_not_exists(name):
            return ServiceResult(status=409, message=f"{name} is already on the watchlist")

        self._log(LogLevel.INFO, f"Domain added: {name}", {"domain": name})
        return ServiceResult(status=201, message=f"{name} added", data={"domain": name})

    async def remove_domain(self, domain_id: Any) -> ServiceResult:
        """Remove a domain by id (200), or 404 when no such domain exists."""
        try:
            valid_id = validate_domain_id(domain_id)
        except ValidationError as e:
            return self._invalid(e)

        denied = self._check_access(needs_provider=False)
        if denied:
            return denied

        if not await self._store.delete_by_id(valid_id):
            return ServiceResult(status=404, message=f"Domain {valid_id} not found")

        self._log(LogLevel.INFO, "Domain removed", {"domain_id": valid_id})
        return ServiceResult(status=200, message=f"Domain {valid_id} removed")

    async def verify_single(self, domain_id: Any) -> ServiceResult:
        """
        Re-check one domain now.

        Returns:
            200 with the new status, 404 for an unknown id, or 500 with the
            provider's message when the check failed
        """
        try:
            valid_id = validate_domain_id(domain_id)
        except ValidationError as e:
            return self._invalid(e)

        denied = self._check_access()
        if denied:
            return denied

        domain = await self._store.select_by_id(valid_id)
        if domain is None:
            return ServiceResult(status=404, message=f"Domain {valid_id} not found")

        result = await self._engine.verify_one(domain)
        if not result.success:
            return ServiceResult(status=500, message=result.error or "Verification failed",
                                 data=result.to_dict())

        assert result.status is not None
        return ServiceResult(
            status=200,
            message=f"{domain.name} is {result.status.value}",
            data=result.to_dict(),
        )

    async def verify_all_due(self, limit: Optional[int] = None) -> ServiceResult:
        """
        Verify up to `limit` domains that need verification.

        Returns:
            204 when nothing is due, 200 when every check succeeded, 207 for
            partial success, or 422 when fewer than half succeeded
        """
        cap = limit if limit is not None else self._config.verification.manual_limit
        if cap <= 0:
            return ServiceResult(status=400, message="Limit must be a positive number")

        denied = self._check_access()
        if denied:
            return denied

        due = await self._categorizer.needing_verification()
        if not due:
            return ServiceResult(status=204, message="All domains are up to date")

        batch = await self._engine.verify_batch(due[:cap])
        data = batch.to_dict()
        data["remaining"] = max(0, len(due) - cap)

        if batch.errors == 0:
            return ServiceResult(
                status=200,
                message=f"Checked {batch.checked} domains",
                data=data,
            )

        success_rate = (batch.checked - batch.errors) / batch.checked
        data["success_rate"] = round(success_rate, 2)
        status = 207 if success_rate >= PARTIAL_SUCCESS_THRESHOLD else 422
        return ServiceResult(
            status=status,
            message=(
                f"Checked {batch.checked} domains with {batch.errors} errors "
                f"({round(success_rate * 100)}% succeeded)"
            ),
            data=data,
        )

    async def lookup_ns(self, domain_id: Any) -> ServiceResult:
        """Fetch and store nameserver data for one domain."""
        return await self._lookup(domain_id, "ns")

    async def lookup_ssl(self, domain_id: Any) -> ServiceResult:
        """Fetch and store SSL certificate data for one domain."""
        return await self._lookup(domain_id, "ssl")

    async def _lookup(self, domain_id: Any, kind: str) -> ServiceResult:
        try:
            valid_id = validate_domain_id(domain_id)
        except ValidationError as e:
            return self._invalid(e)

        denied = self._check_access()
        if denied:
            return denied

        domain = await self._store.select_by_id(valid_id)
        if domain is None:
            return ServiceResult(status=404, message=f"Domain {valid_id} not found")

        try:
            if kind == "ns":
                raw = await self._provider.check_ns(domain.name)
            else:
                raw = await self._provider.check_ssl(domain.name)
        except ProviderError as e:
            self._log_error(f"{kind.upper()} lookup failed for {domain.name}", e)
            return ServiceResult(status=e.http_status, message=e.message)

        if kind == "ns":
            await self._store.update_ns(valid_id, raw)
        else:
            await self._store.update_ssl(valid_id, raw)

        return ServiceResult(
            status=200,
            message=f"{kind.upper()} lookup for {domain.name} completed",
            data={"domain": domain.name, "raw": raw},
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "DomainService", message, data)

    def _log_error(self, message: str, error: BaseException) -> None:
        if self._logger:
            self._logger.log_error("DomainService", message, error)
