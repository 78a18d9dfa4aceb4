"""
Quota Ledger
============
Per-account, per-month usage checks against tier limits.

Checking never charges usage. The caller increments only after the gated
operation has actually started, and every store failure propagates as
``QuotaStoreError`` so the caller rejects the request.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from ..core.logging_config import get_logger
from ..storage.repositories import UsageRepository
from .tiers import UsageField, current_period, get_tier_profile, normalize_tier

logger = get_logger(__name__)


@dataclass(frozen=True)
class QuotaCheck:
    """Outcome of a quota check."""

    allowed: bool
    limit: Optional[int]  # None = unlimited
    current: int
    tier: str
    period: str

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.current, 0)


def is_allowed(limit: Optional[int], current: int) -> bool:
    """A limit of 0 always denies; a limit of N denies once current >= N."""
    if limit is None:
        return True
    if limit == 0:
        return False
    return current < limit


class QuotaLedger:
    """
    Reads usage counters and compares them with tier limits.

    Args:
        usage: Usage counter repository
        clock: Returns "now"; injectable so tests can pin the period
    """

    def __init__(
        self,
        usage: UsageRepository,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.usage = usage
        self._clock = clock

    def period(self) -> str:
        return current_period(self._clock() if self._clock else None)

    async def check_and_reserve(
        self,
        account_id: str,
        tier: str,
        field: UsageField,
    ) -> QuotaCheck:
        """
        Check whether ``account_id`` may use one more unit of ``field``.

        No side effects. Raises ``QuotaStoreError`` on store failure.
        """
        field = UsageField(field)
        tier = normalize_tier(tier)
        period = self.period()
        limit = get_tier_profile(tier).limit_for(field)

        current = await self.usage.get_count(account_id, period, field.value)
        allowed = is_allowed(limit, current)

        if not allowed:
            logger.info(
                f"Quota denied for {account_id}: {field.value} {current}/{limit} ({tier})"
            )

        return QuotaCheck(
            allowed=allowed,
            limit=limit,
            current=current,
            tier=tier,
            period=period,
        )

    async def increment(
        self,
        account_id: str,
        field: UsageField,
        period: Optional[str] = None,
    ) -> int:
        """Atomically charge one unit; returns the new count."""
        field = UsageField(field)
        return await self.usage.increment(account_id, period or self.period(), field.value)

    async def snapshot(self, account_id: str, tier: str) -> Dict[str, Dict[str, Optional[int]]]:
        """Current count and limit for every usage field this period."""
        tier = normalize_tier(tier)
        profile = get_tier_profile(tier)
        counts = await self.usage.get_counts(account_id, self.period())
        return {
            field.value: {
                "current": counts.get(field.value, 0),
                "limit": profile.limit_for(field),
            }
            for field in UsageField
        }
