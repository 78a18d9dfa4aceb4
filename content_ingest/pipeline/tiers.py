"""
Tier Profiles
=============
Static per-tier limits and feature flags.

A limit of ``None`` means unlimited; a limit of ``0`` means the feature is
not available on the tier.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class UsageField(str, Enum):
    ANALYSES = "analyses_count"
    CHAT_MESSAGES = "chat_messages_count"
    SHARE_LINKS = "share_links_count"
    EXPORTS = "exports_count"
    BOOKMARKS = "bookmarks_count"


@dataclass(frozen=True)
class TierFeatures:
    share_links: bool = False
    exports: bool = False
    weekly_digest: bool = False
    claim_tracking: bool = False
    priority_processing: bool = False


@dataclass(frozen=True)
class TierProfile:
    """Numeric limits and feature flags for one subscription tier."""

    name: str
    monthly_limits: Dict[UsageField, Optional[int]]
    batch_size: int
    features: TierFeatures = field(default_factory=TierFeatures)

    def limit_for(self, usage_field: UsageField) -> Optional[int]:
        return self.monthly_limits.get(UsageField(usage_field), 0)


TIER_PROFILES: Dict[str, TierProfile] = {
    "free": TierProfile(
        name="free",
        monthly_limits={
            UsageField.ANALYSES: 5,
            UsageField.CHAT_MESSAGES: 10,
            UsageField.SHARE_LINKS: 0,
            UsageField.EXPORTS: 0,
            UsageField.BOOKMARKS: 5,
        },
        batch_size=3,
    ),
    "starter": TierProfile(
        name="starter",
        monthly_limits={
            UsageField.ANALYSES: 50,
            UsageField.CHAT_MESSAGES: None,
            UsageField.SHARE_LINKS: 10,
            UsageField.EXPORTS: 50,
            UsageField.BOOKMARKS: 50,
        },
        batch_size=10,
        features=TierFeatures(
            share_links=True,
            exports=True,
            weekly_digest=True,
            claim_tracking=True,
        ),
    ),
    "pro": TierProfile(
        name="pro",
        monthly_limits={
            UsageField.ANALYSES: None,
            UsageField.CHAT_MESSAGES: None,
            UsageField.SHARE_LINKS: None,
            UsageField.EXPORTS: None,
            UsageField.BOOKMARKS: None,
        },
        batch_size=15,
        features=TierFeatures(
            share_links=True,
            exports=True,
            weekly_digest=True,
            claim_tracking=True,
            priority_processing=True,
        ),
    ),
}

DEFAULT_TIER = "free"


def normalize_tier(tier: Optional[str]) -> str:
    """Map an arbitrary stored tier string onto a known tier name."""
    if tier in TIER_PROFILES:
        return tier
    return DEFAULT_TIER


def get_tier_profile(tier: Optional[str]) -> TierProfile:
    return TIER_PROFILES[normalize_tier(tier)]


def current_period(now: Optional[datetime] = None) -> str:
    """Calendar-month period key in UTC, e.g. ``2026-10``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"
