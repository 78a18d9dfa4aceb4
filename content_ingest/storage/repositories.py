"""
Repositories
============
Data access for the ingestion store.

This module provides:
- Content rows with compare-and-set status transitions
- Per-language summary upserts
- Moderation flag inserts
- Atomic usage counter increments
- Account tier lookup

Every repository opens its own short transaction per call so that
pipeline handlers stay stateless between steps.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from ..core.exceptions import QuotaStoreError, StorageReadError, StorageWriteError
from ..core.logging_config import get_logger
from .database import DatabaseManager
from .models import Account, Content, ContentStatus, ModerationFlag, Summary, UsageCounter

logger = get_logger(__name__)


def _dialect_insert(dialect_name: str):
    """Return the dialect's INSERT construct supporting ON CONFLICT."""
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    raise ValueError(f"Upserts are not supported on dialect {dialect_name!r}")


def _increment_statement(dialect_name: str, account_id: str, period: str, field: str):
    """Single-statement ``count = count + 1`` upsert keyed by (account, period, field)."""
    insert = _dialect_insert(dialect_name)
    stmt = insert(UsageCounter).values(
        account_id=account_id,
        period=period,
        field=field,
        count=1,
    )
    return stmt.on_conflict_do_update(
        index_elements=["account_id", "period", "field"],
        set_={"count": UsageCounter.count + 1},
    )


@dataclass
class UsageCharge:
    """A usage unit to record in the same transaction as a new row."""

    account_id: str
    period: str
    field: str


class ContentRepository:
    """Content rows."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get(self, content_id: str) -> Optional[Content]:
        try:
            async with self.db.session() as session:
                return await session.get(Content, content_id)
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to load content", "content", key=content_id, cause=e
            )

    async def get_by_transcript_id(self, transcript_id: str) -> Optional[Content]:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(Content).where(Content.transcript_id == transcript_id).limit(1)
                )
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to look up content by correlation ID",
                "content",
                key=transcript_id,
                cause=e,
            )

    async def find_by_url(self, url: str, account_id: str) -> Optional[Content]:
        """Most recent row for ``url`` owned by ``account_id``."""
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(Content)
                    .where(Content.url == url, Content.account_id == account_id)
                    .order_by(Content.date_added.desc())
                    .limit(1)
                )
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise StorageReadError("Failed to look up content by URL", "content", cause=e)

    async def create(
        self,
        content: Content,
        charge: Optional[UsageCharge] = None,
    ) -> Content:
        """
        Insert a content row, optionally charging usage atomically with it.

        Args:
            content: New row (status defaults to pending)
            charge: Usage unit to increment in the same transaction

        Returns:
            Content: The persisted row

        Raises:
            StorageWriteError: If either write fails; neither is applied
        """
        try:
            async with self.db.session() as session:
                session.add(content)
                await session.flush()
                if charge:
                    await session.execute(
                        _increment_statement(
                            self.db.dialect_name,
                            charge.account_id,
                            charge.period,
                            charge.field,
                        )
                    )
            return content
        except SQLAlchemyError as e:
            raise StorageWriteError("Failed to create content entry", "content", cause=e)

    async def transition(
        self,
        content_id: str,
        from_statuses: Iterable[str],
        to_status: str,
        **values: Any,
    ) -> bool:
        """
        Compare-and-set status update.

        The row is changed only if its current status is one of
        ``from_statuses``; extra column values are written in the same
        statement.

        Returns:
            bool: True if this call applied the change
        """
        values["status"] = to_status
        values["updated_at"] = datetime.now(timezone.utc)
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    update(Content)
                    .where(
                        Content.id == content_id,
                        Content.status.in_(list(from_statuses)),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageWriteError(
                "Failed to update content status", "content", key=content_id, cause=e
            )

    async def attach_transcript_id(self, content_id: str, transcript_id: str) -> bool:
        """
        Store the vendor correlation ID on a row claimed for transcription.

        Only a ``transcribing`` row without an ID is updated.
        """
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    update(Content)
                    .where(
                        Content.id == content_id,
                        Content.status == ContentStatus.TRANSCRIBING.value,
                        Content.transcript_id.is_(None),
                    )
                    .values(transcript_id=transcript_id, updated_at=datetime.now(timezone.utc))
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageWriteError(
                "Failed to store transcript ID", "content", key=content_id, cause=e
            )


class SummaryRepository:
    """Summary rows keyed by (content_id, language)."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def upsert(
        self,
        content_id: str,
        account_id: Optional[str],
        language: str,
        processing_status: str,
        error_code: Optional[str] = None,
        brief_overview: Optional[str] = None,
    ) -> None:
        """Insert or overwrite the summary row; safe to repeat."""
        now = datetime.now(timezone.utc)
        try:
            async with self.db.session() as session:
                insert = _dialect_insert(self.db.dialect_name)
                stmt = insert(Summary).values(
                    content_id=content_id,
                    account_id=account_id,
                    language=language,
                    processing_status=processing_status,
                    error_code=error_code,
                    brief_overview=brief_overview,
                    updated_at=now,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["content_id", "language"],
                    set_={
                        "processing_status": stmt.excluded.processing_status,
                        "error_code": stmt.excluded.error_code,
                        "brief_overview": stmt.excluded.brief_overview,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await session.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageWriteError(
                "Failed to upsert summary", "summaries", key=content_id, cause=e
            )

    async def get(self, content_id: str, language: str) -> Optional[Summary]:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(Summary).where(
                        Summary.content_id == content_id,
                        Summary.language == language,
                    )
                )
                return result.scalars().first()
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to load summary", "summaries", key=content_id, cause=e
            )


class ModerationFlagRepository:
    """Moderation flags (write-only from the pipeline's point of view)."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def add(self, flag: ModerationFlag) -> bool:
        """
        Insert ``flag`` unless a row with the same fingerprint exists.

        Returns:
            bool: False if the flag had already been recorded
        """
        values = {
            column.name: getattr(flag, column.name)
            for column in ModerationFlag.__table__.columns
            if getattr(flag, column.name) is not None
        }
        try:
            async with self.db.session() as session:
                insert = _dialect_insert(self.db.dialect_name)
                stmt = insert(ModerationFlag).values(**values).on_conflict_do_nothing(
                    index_elements=["fingerprint"]
                )
                result = await session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageWriteError(
                "Failed to persist moderation flag", "moderation_flags", cause=e
            )

    async def list_for_content(self, content_id: str) -> List[ModerationFlag]:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(ModerationFlag)
                    .where(ModerationFlag.content_id == content_id)
                    .order_by(ModerationFlag.created_at)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageReadError(
                "Failed to load moderation flags", "moderation_flags", cause=e
            )


class UsageRepository:
    """
    Usage counters.

    Every failure surfaces as ``QuotaStoreError`` so callers fail closed.
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_count(self, account_id: str, period: str, field: str) -> int:
        """Current count, 0 when no row exists for the period yet."""
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(UsageCounter.count).where(
                        UsageCounter.account_id == account_id,
                        UsageCounter.period == period,
                        UsageCounter.field == field,
                    )
                )
                count = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise QuotaStoreError("Usage store unavailable", "read", cause=e)
        return count or 0

    async def get_counts(self, account_id: str, period: str) -> Dict[str, int]:
        try:
            async with self.db.session() as session:
                result = await session.execute(
                    select(UsageCounter.field, UsageCounter.count).where(
                        UsageCounter.account_id == account_id,
                        UsageCounter.period == period,
                    )
                )
                return {field: count for field, count in result}
        except SQLAlchemyError as e:
            raise QuotaStoreError("Usage store unavailable", "read", cause=e)

    async def increment(self, account_id: str, period: str, field: str) -> int:
        """
        Atomically add one to the counter.

        Returns:
            int: Count after the increment
        """
        try:
            async with self.db.session() as session:
                await session.execute(
                    _increment_statement(self.db.dialect_name, account_id, period, field)
                )
                result = await session.execute(
                    select(UsageCounter.count).where(
                        UsageCounter.account_id == account_id,
                        UsageCounter.period == period,
                        UsageCounter.field == field,
                    )
                )
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise QuotaStoreError("Usage store unavailable", "write", cause=e)


class AccountRepository:
    """Account tier lookup."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def get_tier(self, account_id: str) -> Optional[str]:
        try:
            async with self.db.session() as session:
                account = await session.get(Account, account_id)
        except SQLAlchemyError as e:
            raise QuotaStoreError("Account store unavailable", "read", cause=e)
        return account.tier if account else None
