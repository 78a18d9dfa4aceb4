"""
Storage Module
==============
Database integration and storage logic.
"""

from .database import DatabaseManager
from .models import (
    Base,
    Account,
    Content,
    Summary,
    ModerationFlag,
    UsageCounter,
    ContentType,
    ContentStatus,
    SummaryStatus,
    FlagSource,
    FlagSeverity,
    FlagCategory,
    ReviewStatus,
)
from .repositories import (
    AccountRepository,
    ContentRepository,
    ModerationFlagRepository,
    SummaryRepository,
    UsageCharge,
    UsageRepository,
)

__all__ = [
    "DatabaseManager",
    "Base",
    "Account",
    "Content",
    "Summary",
    "ModerationFlag",
    "UsageCounter",
    "ContentType",
    "ContentStatus",
    "SummaryStatus",
    "FlagSource",
    "FlagSeverity",
    "FlagCategory",
    "ReviewStatus",
    "AccountRepository",
    "ContentRepository",
    "ModerationFlagRepository",
    "SummaryRepository",
    "UsageCharge",
    "UsageRepository",
]
