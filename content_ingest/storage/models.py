"""
Database Models
===============
SQLAlchemy ORM models and shared enumerations for the ingestion store.
"""

from datetime import datetime, timezone
from enum import Enum
import uuid

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    JSON,
    DateTime,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ContentType(str, Enum):
    YOUTUBE = "youtube"
    ARTICLE = "article"
    PODCAST = "podcast"
    X_POST = "x_post"
    PDF = "pdf"


class ContentStatus(str, Enum):
    """Processing status of a content row."""

    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"
    BLOCKED = "blocked"


class SummaryStatus(str, Enum):
    """Status written on the per-language summary row."""

    PENDING = "pending"
    ERROR = "error"
    REFUSED = "refused"
    COMPLETE = "complete"


class FlagSource(str, Enum):
    URL_SCREENING = "url_screening"
    KEYWORD_SCREENING = "keyword_screening"
    AI_REFUSAL = "ai_refusal"


class FlagSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class FlagCategory(str, Enum):
    CSAM = "csam"
    TERRORISM = "terrorism"
    WEAPONS = "weapons"
    TRAFFICKING = "trafficking"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    REPORTED = "reported"
    DISMISSED = "dismissed"


class Account(Base):
    """
    Account tier lookup.

    Written by the billing side of the product; read-only here.
    """
    __tablename__ = "accounts"

    id = Column(String, primary_key=True, default=_uuid)
    tier = Column(String, nullable=False, default="free")

    def __repr__(self):
        return f"<Account(id={self.id}, tier={self.tier})>"


class Content(Base):
    """
    One submitted item and its processing status.
    """
    __tablename__ = "content"
    __table_args__ = (
        Index("ix_content_url_account", "url", "account_id"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    account_id = Column(String, index=True, nullable=True)  # null for system rows

    url = Column(String(2048), nullable=False)
    type = Column(String, nullable=False, default=ContentType.ARTICLE.value)
    title = Column(String, nullable=True)
    full_text = Column(Text, nullable=True)

    transcript_id = Column(String(100), index=True, nullable=True)  # vendor correlation ID
    status = Column(String, index=True, nullable=False, default=ContentStatus.PENDING.value)
    duration = Column(Integer, nullable=True)  # seconds
    speaker_count = Column(Integer, nullable=True)
    analysis_language = Column(String, nullable=False, default="en")

    date_added = Column(DateTime(timezone=True), default=_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Content(id={self.id}, type={self.type}, status={self.status})>"


class Summary(Base):
    """
    Per-language outcome row shown to the end user.

    The analyzer fills in the body on success; this service writes only
    terminal failure and refusal rows.
    """
    __tablename__ = "summaries"
    __table_args__ = (
        UniqueConstraint("content_id", "language", name="uq_summaries_content_language"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    content_id = Column(String, index=True, nullable=False)
    account_id = Column(String, nullable=True)
    language = Column(String, nullable=False, default="en")

    processing_status = Column(String, nullable=False, default=SummaryStatus.PENDING.value)
    error_code = Column(String, nullable=True)
    brief_overview = Column(Text, nullable=True)

    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Summary(content_id={self.content_id}, status={self.processing_status})>"


class ModerationFlag(Base):
    """
    One detection event, kept for human review and reporting.
    """
    __tablename__ = "moderation_flags"

    id = Column(String, primary_key=True, default=_uuid)
    content_id = Column(String, index=True, nullable=True)  # URL screening may precede the row
    account_id = Column(String, nullable=True)
    url = Column(String(2048), nullable=False)
    content_type = Column(String, nullable=True)

    source = Column(String, nullable=False)
    severity = Column(String, index=True, nullable=False)
    categories = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)

    content_hash = Column(String(64), index=True, nullable=True)
    # one row per (content, detector, categories, screened input)
    fingerprint = Column(String(64), unique=True, nullable=False)
    text_preview = Column(Text, nullable=True)
    review_status = Column(String, nullable=False, default=ReviewStatus.PENDING.value)

    created_at = Column(DateTime(timezone=True), default=_now, index=True)

    def __repr__(self):
        return f"<ModerationFlag(source={self.source}, severity={self.severity})>"


class UsageCounter(Base):
    """
    One (account, period, field) usage count.
    """
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint("account_id", "period", "field", name="uq_usage_account_period_field"),
    )

    id = Column(String, primary_key=True, default=_uuid)
    account_id = Column(String, nullable=False)
    period = Column(String(7), nullable=False)  # YYYY-MM, UTC
    field = Column(String, nullable=False)
    count = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<UsageCounter({self.account_id}, {self.period}, {self.field}={self.count})>"
