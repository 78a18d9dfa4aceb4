"""
Analysis Dispatcher
===================
Hands a content row in ``analyzing`` to the downstream analyzer.

The analyzer receives only the content ID. Attempts are retried with a
linear backoff (``base * attempt``: 2s then 4s by default); after the last
failed attempt the row moves to ``error`` with a summary inviting the
user to retry. Analyzer output is checked for a structured refusal.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..core.config import PipelineConfig
from ..core.error_taxonomy import ErrorCategory, classify_error
from ..core.exceptions import ContentNotFoundError, ExternalServiceError
from ..core.logging_config import get_content_logger
from ..storage.models import Content
from ..storage.repositories import ContentRepository, SummaryRepository
from .clients import Analyzer
from .moderation import ModerationScreen, detect_ai_refusal
from .outcomes import (
    ANALYSIS_START_FAILED,
    ANALYSIS_START_FAILED_TRANSCRIBED,
    mark_blocked,
    mark_failed,
)
from .transitions import ANALYZING, COMPLETE, StatusGuard


@dataclass
class DispatchResult:
    triggered: bool
    blocked: bool = False
    attempts: int = 0


class AnalysisDispatcher:
    """
    Invokes the analyzer for a single content ID with bounded retries.

    Args:
        contents: Content repository
        summaries: Summary repository
        analyzer: Analyzer client
        moderation: Moderation screen (for refusal flags)
        config: Pipeline configuration
        sleep: Awaitable sleep; injectable so tests do not wait
    """

    def __init__(
        self,
        contents: ContentRepository,
        summaries: SummaryRepository,
        analyzer: Analyzer,
        moderation: ModerationScreen,
        config: PipelineConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.contents = contents
        self.summaries = summaries
        self.analyzer = analyzer
        self.moderation = moderation
        self.config = config
        self.guard = StatusGuard(contents)
        self._sleep = sleep

    def _failure_message(self, content: Content) -> str:
        if content.type in self.config.transcribed_types:
            return ANALYSIS_START_FAILED_TRANSCRIBED
        return ANALYSIS_START_FAILED

    async def dispatch(self, content_id: str) -> DispatchResult:
        """
        Trigger analysis for ``content_id``.

        A row that is not in ``analyzing`` is left untouched, which makes
        repeated calls harmless.

        Returns:
            DispatchResult: ``triggered`` is True once the analyzer accepted
            the request
        """
        content = await self.contents.get(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        log = get_content_logger(
            __name__, content_id, account_id=content.account_id, stage="analysis"
        )

        if content.status != ANALYZING:
            log.info(f"Skipping dispatch; status is {content.status}")
            return DispatchResult(triggered=False)

        attempts = self.config.dispatch_attempts
        response: Optional[dict] = None
        last_error: Optional[ExternalServiceError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await self.analyzer.analyze(content_id, content.analysis_language)
                break
            except ExternalServiceError as e:
                last_error = e
                log.warning(
                    f"Analyzer attempt {attempt}/{attempts} failed "
                    f"[{classify_error(e.message).value}]"
                )
                if attempt < attempts:
                    await self._sleep(self.config.dispatch_backoff_seconds * attempt)
        else:
            category = classify_error(last_error.message) if last_error else ErrorCategory.UNKNOWN
            log.error(f"Analysis failed to start after {attempts} attempts [{category.value}]")
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [ANALYZING],
                ErrorCategory.AI_ANALYSIS_FAILED,
                message=self._failure_message(content),
            )
            return DispatchResult(triggered=False, attempts=attempts)

        refusal = detect_ai_refusal(response)
        if refusal:
            log.warning(f"Analyzer refused content: {refusal.reason}")
            await self.moderation.record(
                [refusal],
                content.url,
                content.full_text,
                content_id=content.id,
                account_id=content.account_id,
                content_type=content.type,
            )
            await mark_blocked(self.guard, self.summaries, content, [ANALYZING])
            return DispatchResult(triggered=True, blocked=True, attempts=attempt)

        await self.guard.advance(content_id, [ANALYZING], COMPLETE)
        log.info(f"Analysis completed after {attempt} attempt(s)")
        return DispatchResult(triggered=True, attempts=attempt)
