"""
Domain name and id validation.

Watchlist entries are stored in canonical form: trimmed, lowercase and
IDNA-encoded, with no scheme, path or port. Domain ids accepted from
callers must be positive integers no larger than MAX_DOMAIN_ID.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

import idna

from .enums import DomainValidationErrorCode
from .exceptions import ValidationError


MAX_DOMAIN_LENGTH = 253
MAX_DOMAIN_ID = 9_999_999

# One or more LDH labels of up to 63 characters, separated by dots
DOMAIN_PATTERN = re.compile(
    r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)*$"
)


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]


def _reject(
    code: DomainValidationErrorCode, message: str, raw: Any
) -> DomainValidationResult:
    return DomainValidationResult(
        valid=False,
        canonical_domain=None,
        error=DomainValidationError(
            code=code, message=message, details={"raw_input": raw}
        ),
    )


class DomainValidator:
    """Validates and normalizes domain names before they reach the store."""

    def validate(self, raw_domain: Optional[str]) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with canonical form or error
        """
        if not raw_domain or not raw_domain.strip():
            return _reject(
                DomainValidationErrorCode.EMPTY_INPUT, "Domain name is required", raw_domain
            )

        domain = raw_domain.strip().lower()

        if "http://" in domain or "https://" in domain:
            return _reject(
                DomainValidationErrorCode.HAS_SCHEME,
                "Do not include http:// or https:// in domain name",
                raw_domain,
            )
        if "/" in domain:
            return _reject(
                DomainValidationErrorCode.HAS_PATH,
                "Do not include paths (/) in domain name",
                raw_domain,
            )
        if ":" in domain:
            return _reject(
                DomainValidationErrorCode.HAS_PORT,
                "Do not include port (:) in domain name",
                raw_domain,
            )

        try:
            canonical = self.normalize_to_canonical(domain)
        except ValidationError as e:
            return DomainValidationResult(
                valid=False,
                canonical_domain=None,
                error=DomainValidationError(
                    code=DomainValidationErrorCode.IDNA_ERROR,
                    message=e.message,
                    details=e.details,
                ),
            )

        if len(canonical) > MAX_DOMAIN_LENGTH:
            return _reject(
                DomainValidationErrorCode.TOO_LONG, "Domain name too long", raw_domain
            )
        if not DOMAIN_PATTERN.match(canonical):
            return _reject(
                DomainValidationErrorCode.INVALID_FORMAT, "Invalid domain format", raw_domain
            )
        if "." not in canonical:
            return _reject(
                DomainValidationErrorCode.INVALID_FORMAT,
                "Domain must have at least one dot (e.g., example.com)",
                raw_domain,
            )

        tld = canonical.rsplit(".", 1)[-1]
        if len(tld) < 2:
            return _reject(
                DomainValidationErrorCode.INVALID_TLD,
                "Top-level domain must be at least 2 characters",
                raw_domain,
            )

        return DomainValidationResult(valid=True, canonical_domain=canonical, error=None)

    def normalize_to_canonical(self, domain: str) -> str:
        """
        Convert domain to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.lower()

        if all(ord(c) < 128 for c in domain_lower):
            return domain_lower

        try:
            return idna.encode(domain_lower, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code=DomainValidationErrorCode.IDNA_ERROR.value,
                message=f"IDNA encoding failed: {e}",
                details={"domain": domain, "idna_error": str(e)},
            ) from e

    def require_valid(self, raw_domain: Optional[str]) -> str:
        """
        Return the canonical domain or raise.

        Raises:
            ValidationError: If the domain is invalid
        """
        result = self.validate(raw_domain)
        if not result.valid:
            assert result.error is not None
            raise ValidationError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        assert result.canonical_domain is not None
        return result.canonical_domain


def validate_domain_id(value: Any) -> int:
    """
    Coerce and check a domain id supplied by a caller.

    Raises:
        ValidationError: If the value is not an integer in 1..MAX_DOMAIN_ID
    """
    if isinstance(value, bool):
        value = None
    try:
        if isinstance(value, str):
            value = value.strip()
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            code=DomainValidationErrorCode.INVALID_ID.value,
            message="Domain id must be a number",
            details={"value": value},
        )

    if not number.is_integer():
        raise ValidationError(
            code=DomainValidationErrorCode.INVALID_ID.value,
            message="Domain id must be a whole number",
            details={"value": value},
        )
    domain_id = int(number)
    if domain_id <= 0:
        raise ValidationError(
            code=DomainValidationErrorCode.INVALID_ID.value,
            message="Domain id must be positive",
            details={"value": value},
        )
    if domain_id > MAX_DOMAIN_ID:
        raise ValidationError(
            code=DomainValidationErrorCode.INVALID_ID.value,
            message=f"Domain id must not exceed {MAX_DOMAIN_ID}",
            details={"value": value},
        )
    return domain_id
