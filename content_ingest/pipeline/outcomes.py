"""
Terminal Outcomes
=================
Writes the terminal ``error`` and ``blocked`` outcomes for a content row.

A failure and a moderation block are kept distinguishable: failures carry
a ``PROCESSING_FAILED::`` marker and an ``error`` summary with the error
category as code; blocks keep the text and write a ``refused`` summary
with ``CONTENT_POLICY_VIOLATION``.
"""

from typing import Any, Iterable, Optional

from ..core.error_taxonomy import (
    ErrorCategory,
    failure_marker,
    user_friendly_error,
)
from ..storage.models import Content, SummaryStatus
from ..storage.repositories import SummaryRepository
from .transitions import BLOCKED, ERROR, StatusGuard

ANALYSIS_START_FAILED_TRANSCRIBED = (
    "Transcription completed but analysis failed to start. Please try regenerating."
)
ANALYSIS_START_FAILED = (
    "Content was retrieved but analysis failed to start. Please try regenerating."
)


def policy_message(content_type: str) -> str:
    return user_friendly_error(content_type, ErrorCategory.CONTENT_POLICY_VIOLATION)


async def mark_failed(
    guard: StatusGuard,
    summaries: SummaryRepository,
    content: Content,
    from_statuses: Iterable[str],
    category: ErrorCategory,
    stage: Optional[str] = None,
    message: Optional[str] = None,
) -> bool:
    """
    Move ``content`` to ``error`` and upsert an error summary.

    Args:
        guard: Status guard
        summaries: Summary repository
        content: Row being failed (``id``, ``type``, language are read)
        from_statuses: Statuses the row is expected to be in
        category: Classified error category
        stage: If given, the text field is overwritten with the failure
            marker for this stage; otherwise the text is kept
        message: User-facing message; defaults to the category's message

    Returns:
        bool: True if this call applied the transition
    """
    values = {}
    if stage:
        values["full_text"] = failure_marker(stage, category)

    applied = await guard.advance(content.id, from_statuses, ERROR, **values)
    if not applied:
        return False

    await summaries.upsert(
        content_id=content.id,
        account_id=content.account_id,
        language=content.analysis_language,
        processing_status=SummaryStatus.ERROR.value,
        error_code=category.value,
        brief_overview=message or user_friendly_error(content.type, category),
    )
    return True


async def mark_blocked(
    guard: StatusGuard,
    summaries: SummaryRepository,
    content: Content,
    from_statuses: Iterable[str],
    **values: Any,
) -> bool:
    """Move ``content`` to ``blocked`` and upsert a refused summary."""
    applied = await guard.advance(content.id, from_statuses, BLOCKED, **values)
    if not applied:
        return False

    await summaries.upsert(
        content_id=content.id,
        account_id=content.account_id,
        language=content.analysis_language,
        processing_status=SummaryStatus.REFUSED.value,
        error_code=ErrorCategory.CONTENT_POLICY_VIOLATION.value,
        brief_overview=policy_message(content.type),
    )
    return True
