"""
Read-only categorization of the watchlist.

All three buckets come from one store read and one `now` snapshot, so a
domain cannot flicker between buckets within a single call.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from .enums import DomainStatus
from .models import CategorizedWatchlist
from .store import DomainStore, utc_now


VERIFIABLE_STATUSES = frozenset({
    DomainStatus.AVAILABLE,
    DomainStatus.ERROR,
    DomainStatus.NOT_CHECKED,
})


class DomainCategorizer:
    """Partitions the watchlist into needing-verification, expired-registered and expiring."""

    def __init__(
        self,
        store: DomainStore,
        expiring_window_days: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._window = timedelta(days=expiring_window_days)
        self._clock = clock

    async def categorize(self, now: Optional[datetime] = None) -> CategorizedWatchlist:
        """
        Read the watchlist once and split it into report buckets.

        - needing_verification: status available/error/not_checked, excluding
          anything already counted as expired-registered
        - expired_registered: registered with expires < now
        - expiring: registered with now < expires <= now + window

        Raises:
            StorageError: If the watchlist cannot be read
        """
        now = now or self._clock()
        horizon = now + self._window
        domains = await self._store.select_all()
        result = CategorizedWatchlist()

        for domain in domains:
            expired_registered = domain.is_expired_registered(now)
            if expired_registered:
                result.expired_registered.append(domain)
            elif domain.status in VERIFIABLE_STATUSES:
                result.needing_verification.append(domain)
            elif (
                domain.status == DomainStatus.REGISTERED
                and domain.expires is not None
                and now < domain.expires <= horizon
            ):
                result.expiring.append(domain)

        return result

    async def needing_verification(self, now: Optional[datetime] = None) -> list:
        return (await self.categorize(now)).needing_verification

    async def expired_registered(self, now: Optional[datetime] = None) -> list:
        return (await self.categorize(now)).expired_registered

    async def expiring(self, now: Optional[datetime] = None) -> list:
        return (await self.categorize(now)).expiring
