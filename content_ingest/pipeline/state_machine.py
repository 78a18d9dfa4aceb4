"""
Ingestion State Machine
=======================
Drives a content row from ``pending`` to a terminal status.

    pending -> transcribing -> blocked | analyzing -> complete | error

This module provides:
- ``start``: first step for a new row (transcription submit, or text
  extraction + screening + dispatch)
- ``retry``: operator-triggered re-entry from ``pending``, ``blocked`` or
  ``error``
- ``launch``: ``start`` as a supervised background task

All progress is recorded on the row; nothing is kept in memory between
steps.
"""

import asyncio
from typing import Optional

from ..core.config import PipelineConfig
from ..core.error_taxonomy import ErrorCategory, classify_error, is_failure_marker
from ..core.exceptions import ContentNotFoundError, ExternalServiceError, InvalidTransitionError
from ..core.logging_config import get_content_logger
from ..storage.models import Content, SummaryStatus
from ..storage.repositories import ContentRepository, SummaryRepository
from .clients import TextExtractor, Transcriber
from .dispatcher import AnalysisDispatcher
from .moderation import ModerationScreen, ScreeningResult
from .outcomes import mark_blocked, mark_failed
from .tasks import TaskSupervisor
from .transitions import (
    ANALYZING,
    BLOCKED,
    COMPLETE,
    PENDING,
    RETRYABLE_STATUSES,
    TRANSCRIBING,
    StatusGuard,
)


class IngestionStateMachine:
    """
    Owns the ``pending`` stage and operator retries.

    The ``transcribing`` stage is finished by the transcription callback
    handler, the ``analyzing`` stage by the analysis dispatcher.
    """

    def __init__(
        self,
        contents: ContentRepository,
        summaries: SummaryRepository,
        moderation: ModerationScreen,
        dispatcher: AnalysisDispatcher,
        transcriber: Transcriber,
        extractor: TextExtractor,
        supervisor: TaskSupervisor,
        config: PipelineConfig,
    ):
        self.contents = contents
        self.summaries = summaries
        self.moderation = moderation
        self.dispatcher = dispatcher
        self.transcriber = transcriber
        self.extractor = extractor
        self.supervisor = supervisor
        self.config = config
        self.guard = StatusGuard(contents)

    async def _load(self, content_id: str) -> Content:
        content = await self.contents.get(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)
        return content

    def launch(self, content_id: str) -> asyncio.Task:
        """Start processing in the background; the outcome is logged."""
        return self.supervisor.spawn(self.start(content_id), name=f"ingest:{content_id}")

    def _in_flight(self, content_id: str) -> bool:
        return self.supervisor.is_running(f"ingest:{content_id}") or self.supervisor.is_running(
            f"retry:{content_id}"
        )

    async def start(self, content_id: str) -> Optional[str]:
        """
        Run the ``pending`` stage for ``content_id``.

        Returns:
            Optional[str]: Status the row was moved to, or None if the row
            was not ``pending`` (or another worker moved it first)
        """
        content = await self._load(content_id)
        log = get_content_logger(
            __name__, content.id, account_id=content.account_id, stage="start"
        )

        if content.status != PENDING:
            log.info(f"Not starting; status is {content.status}")
            return None

        url_check = await self._screen(content)
        if url_check.blocked:
            log.warning("URL blocked by moderation before fetch")
            return await self._block(content, PENDING)

        if content.type in self.config.transcribed_types:
            return await self._submit_transcription(content, log)
        return await self._extract_and_analyze(content, log)

    async def _submit_transcription(self, content: Content, log) -> Optional[str]:
        # one vendor job per row: the claim happens before the external call
        claimed = await self.guard.advance(
            content.id, [PENDING], TRANSCRIBING, transcript_id=None
        )
        if not claimed:
            return None

        try:
            correlation_id = await self.transcriber.submit(content.url)
        except ExternalServiceError as e:
            log.error(f"Transcription submission failed [{classify_error(e.message).value}]")
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [TRANSCRIBING],
                ErrorCategory.TRANSCRIPTION_FAILED,
                stage="TRANSCRIPTION",
            )
            return None

        applied = await self.contents.attach_transcript_id(content.id, correlation_id)
        if applied:
            log.info(f"Awaiting transcription callback for {correlation_id}")
            return TRANSCRIBING
        return None

    async def _extract_and_analyze(self, content: Content, log) -> Optional[str]:
        try:
            extracted = await self.extractor.extract(content.url)
        except ExternalServiceError as e:
            category = classify_error(e.message)
            log.error(f"Text extraction failed [{category.value}]")
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [PENDING],
                category,
                stage=content.type,
            )
            return None

        if not extracted.text.strip():
            log.error("Text extraction returned no text")
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [PENDING],
                ErrorCategory.SCRAPE_FAILED,
                stage=content.type,
            )
            return None

        values = {"full_text": extracted.text}
        if extracted.title:
            values["title"] = extracted.title
        return await self._screen_and_dispatch(content, PENDING, extracted.text, **values)

    async def _screen(self, content: Content, text: Optional[str] = None) -> ScreeningResult:
        """Screen and record flags before any status change depends on them."""
        return await self.moderation.screen(
            content.url,
            text,
            content_id=content.id,
            account_id=content.account_id,
            content_type=content.type,
        )

    async def _block(self, content: Content, from_status: str, **values) -> Optional[str]:
        applied = await mark_blocked(
            self.guard, self.summaries, content, [from_status], **values
        )
        return BLOCKED if applied else None

    async def _screen_and_dispatch(
        self,
        content: Content,
        from_status: str,
        text: str,
        **values,
    ) -> Optional[str]:
        screening = await self._screen(content, text)
        if screening.blocked:
            values.setdefault("full_text", text)
            return await self._block(content, from_status, **values)

        if from_status != ANALYZING:
            applied = await self.guard.advance(content.id, [from_status], ANALYZING, **values)
            if not applied:
                return None

        result = await self.dispatcher.dispatch(content.id)
        return COMPLETE if result.triggered and not result.blocked else None

    async def retry(self, content_id: str) -> str:
        """
        Operator-triggered retry.

        Re-enters at ``analyzing`` when the row still holds usable text,
        otherwise at ``pending``. The remaining work continues in the
        background.

        Returns:
            str: Status the row was reset to

        Raises:
            ContentNotFoundError: If the row does not exist
            InvalidTransitionError: If the row is not in a retryable status
                or changed status concurrently
        """
        content = await self._load(content_id)
        log = get_content_logger(
            __name__, content.id, account_id=content.account_id, stage="retry"
        )

        if content.status not in RETRYABLE_STATUSES or (
            content.status == TRANSCRIBING and content.transcript_id
        ):
            raise InvalidTransitionError(content.id, content.status, "retry")
        if content.status in (PENDING, TRANSCRIBING) and self._in_flight(content.id):
            log.warning(f"Retry refused; a task is still processing {content.id}")
            raise InvalidTransitionError(content.id, content.status, "retry")

        has_text = bool(content.full_text) and not is_failure_marker(content.full_text)
        target = ANALYZING if has_text else PENDING

        values = {}
        if target == PENDING:
            values = {"full_text": None, "transcript_id": None}

        applied = await self.guard.advance(
            content.id, [content.status], target, retry=True, **values
        )
        if not applied:
            raise InvalidTransitionError(content.id, content.status, target)

        await self.summaries.upsert(
            content_id=content.id,
            account_id=content.account_id,
            language=content.analysis_language,
            processing_status=SummaryStatus.PENDING.value,
        )
        log.info(f"Retry: {content.status} -> {target}")

        if target == ANALYZING:
            content.status = ANALYZING
            self.supervisor.spawn(
                self._screen_and_dispatch(content, ANALYZING, content.full_text),
                name=f"retry:{content.id}",
            )
        else:
            self.launch(content.id)
        return target
