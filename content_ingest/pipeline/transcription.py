"""
Transcription Callback Handler
==============================
Receives completed-transcription webhooks from the speech-to-text vendor.

This module provides:
- Vendor payload normalizers (Deepgram, AssemblyAI)
- Shared-secret authentication with a length check before the
  constant-time comparison
- The ``transcribing -> error | blocked | analyzing`` transitions

Every handled outcome, including a vendor-reported failure, is answered
with HTTP 200 so the vendor does not redeliver. Redelivery for a row that
has already left ``transcribing`` is a no-op.
"""

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.config import ExternalServicesConfig, PipelineConfig
from ..core.error_taxonomy import ErrorCategory, classify_error
from ..core.exceptions import PipelineException
from ..core.logging_config import get_content_logger, get_logger
from ..storage.repositories import ContentRepository, SummaryRepository
from .dispatcher import AnalysisDispatcher
from .moderation import ModerationScreen
from .outcomes import mark_blocked, mark_failed
from .transitions import ANALYZING, TRANSCRIBING, StatusGuard

logger = get_logger(__name__)

MAX_CORRELATION_ID_LENGTH = 100
TRANSCRIPTION_STAGE = "TRANSCRIPTION"


@dataclass
class TranscriptText:
    """Vendor-neutral transcript."""

    text: str
    duration_seconds: int = 0
    speaker_count: int = 0


@dataclass
class CallbackResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def format_timestamp(seconds: float) -> str:
    """``M:SS`` below an hour, ``H:MM:SS`` above."""
    total = int(seconds or 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _speaker_label(speaker: Any) -> str:
    if isinstance(speaker, int):
        return chr(65 + speaker)
    return str(speaker)


def _format_lines(utterances: List[Dict[str, Any]], start_scale: float) -> TranscriptText:
    speakers = set()
    lines = []
    for utterance in utterances:
        text = (utterance.get("transcript") or utterance.get("text") or "").strip()
        if not text:
            continue
        speaker = utterance.get("speaker", 0)
        speakers.add(speaker)
        start = (utterance.get("start") or 0) * start_scale
        lines.append(f"[{format_timestamp(start)}] Speaker {_speaker_label(speaker)}: {text}")
    return TranscriptText(text="\n\n".join(lines), speaker_count=len(speakers))


class DeepgramNormalizer:
    """Deepgram pre-recorded callback payloads."""

    name = "deepgram"

    def correlation_id(self, payload: Dict[str, Any]) -> Any:
        metadata = payload.get("metadata")
        if isinstance(metadata, dict) and "request_id" in metadata:
            return metadata.get("request_id")
        return payload.get("request_id")

    def failure(self, payload: Dict[str, Any]) -> Optional[str]:
        if payload.get("err_code"):
            return f"[{payload.get('err_code')}] {payload.get('err_msg') or ''}".strip()
        return None

    def normalize(self, payload: Dict[str, Any]) -> TranscriptText:
        results = payload.get("results") or {}
        transcript = _format_lines(results.get("utterances") or [], start_scale=1.0)
        metadata = payload.get("metadata") or {}
        transcript.duration_seconds = int(round(metadata.get("duration") or 0))
        return transcript


class AssemblyAINormalizer:
    """AssemblyAI transcript payloads (utterance start times in ms)."""

    name = "assemblyai"

    def correlation_id(self, payload: Dict[str, Any]) -> Any:
        return payload.get("transcript_id", payload.get("id"))

    def failure(self, payload: Dict[str, Any]) -> Optional[str]:
        if payload.get("status") == "error":
            return str(payload.get("error") or "transcription error")
        return None

    def normalize(self, payload: Dict[str, Any]) -> TranscriptText:
        transcript = _format_lines(payload.get("utterances") or [], start_scale=0.001)
        transcript.duration_seconds = int(round(payload.get("audio_duration") or 0))
        return transcript


NORMALIZERS = {
    DeepgramNormalizer.name: DeepgramNormalizer,
    AssemblyAINormalizer.name: AssemblyAINormalizer,
}


def get_normalizer(vendor: str):
    try:
        return NORMALIZERS[vendor]()
    except KeyError:
        raise ValueError(f"Unknown transcription vendor: {vendor}")


def verify_token(presented: Optional[str], expected: str) -> bool:
    """
    Compare the presented webhook token with the configured secret.

    A length mismatch is rejected before ``hmac.compare_digest`` runs.
    """
    presented_bytes = (presented or "").encode("utf-8")
    expected_bytes = expected.encode("utf-8")
    if len(presented_bytes) != len(expected_bytes):
        return False
    return hmac.compare_digest(presented_bytes, expected_bytes)


class TranscriptionCallbackHandler:
    """
    Applies a vendor transcription callback to its content row.

    Args:
        contents: Content repository
        summaries: Summary repository
        moderation: Moderation screen
        dispatcher: Analysis dispatcher
        services: External service configuration (secret, vendor)
        pipeline: Pipeline configuration
    """

    def __init__(
        self,
        contents: ContentRepository,
        summaries: SummaryRepository,
        moderation: ModerationScreen,
        dispatcher: AnalysisDispatcher,
        services: ExternalServicesConfig,
        pipeline: PipelineConfig,
    ):
        self.contents = contents
        self.summaries = summaries
        self.moderation = moderation
        self.dispatcher = dispatcher
        self.webhook_token = services.transcription_webhook_token
        self.normalizer = get_normalizer(services.transcription_vendor)
        self.pipeline = pipeline
        self.guard = StatusGuard(contents)

    async def handle_callback(
        self,
        payload: Any,
        token: Optional[str],
    ) -> CallbackResponse:
        """
        Process one callback delivery.

        Args:
            payload: Decoded JSON body
            token: Value of the ``token`` query parameter

        Returns:
            CallbackResponse: HTTP status and JSON body for the vendor
        """
        if not self.webhook_token:
            logger.error("WEBHOOK: transcription webhook token is not configured")
            return CallbackResponse(503, {"error": "Webhook not configured"})

        if not verify_token(token, self.webhook_token):
            logger.error("WEBHOOK: invalid webhook token")
            return CallbackResponse(401, {"error": "Unauthorized"})

        if not isinstance(payload, dict):
            return CallbackResponse(400, {"error": "Invalid payload"})

        correlation_id = self.normalizer.correlation_id(payload)
        if (
            not correlation_id
            or not isinstance(correlation_id, str)
            or len(correlation_id) > MAX_CORRELATION_ID_LENGTH
        ):
            logger.error("WEBHOOK: invalid or missing correlation ID in callback payload")
            return CallbackResponse(400, {"error": "Invalid correlation ID"})

        content = await self.contents.get_by_transcript_id(correlation_id)
        if content is None:
            logger.error(f"WEBHOOK: no content found for correlation ID {correlation_id}")
            return CallbackResponse(404, {"error": "Unknown correlation ID"})

        log = get_content_logger(
            __name__, content.id, account_id=content.account_id, stage="transcription"
        )

        if content.type not in self.pipeline.transcribed_types:
            log.error(f"WEBHOOK: content type {content.type} is not transcribed")
            return CallbackResponse(400, {"error": "Content type is not transcribed"})

        if content.status != TRANSCRIBING:
            log.info(f"WEBHOOK: duplicate delivery ignored (status {content.status})")
            return CallbackResponse(200, self._body(content.id, True, False, duplicate=True))

        vendor_error = self.normalizer.failure(payload)
        if vendor_error is not None:
            category = classify_error(vendor_error)
            log.with_data(
                f"WEBHOOK: vendor reported failure [{category.value}]",
                {"vendor_error": vendor_error},
                level=logging.ERROR,
            )
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [TRANSCRIBING],
                ErrorCategory.TRANSCRIPTION_FAILED,
                stage=TRANSCRIPTION_STAGE,
            )
            return CallbackResponse(200, self._body(content.id, False, False))

        transcript = self.normalizer.normalize(payload)
        if len(transcript.text.strip()) < self.pipeline.min_transcript_chars:
            log.error(f"WEBHOOK: empty transcript ({len(transcript.text)} chars)")
            await mark_failed(
                self.guard,
                self.summaries,
                content,
                [TRANSCRIBING],
                ErrorCategory.TRANSCRIPTION_EMPTY,
                stage=TRANSCRIPTION_STAGE,
            )
            return CallbackResponse(200, self._body(content.id, False, False))

        values = {
            "full_text": transcript.text,
            "duration": transcript.duration_seconds,
            "speaker_count": transcript.speaker_count,
        }
        screening = await self.moderation.screen(
            content.url,
            transcript.text,
            content_id=content.id,
            account_id=content.account_id,
            content_type=content.type,
        )

        if screening.blocked:
            applied = await mark_blocked(
                self.guard, self.summaries, content, [TRANSCRIBING], **values
            )
        else:
            applied = await self.guard.advance(content.id, [TRANSCRIBING], ANALYZING, **values)

        if not applied:
            log.info("WEBHOOK: lost transition race to a concurrent delivery")
            return CallbackResponse(200, self._body(content.id, True, False, duplicate=True))

        if screening.blocked:
            log.warning("WEBHOOK: transcript blocked by moderation")
            return CallbackResponse(200, self._body(content.id, True, False, blocked=True))

        log.info(
            f"WEBHOOK: transcript stored ({transcript.duration_seconds}s, "
            f"{transcript.speaker_count} speakers)"
        )

        try:
            result = await self.dispatcher.dispatch(content.id)
            triggered = result.triggered
        except PipelineException as e:
            # Dispatch owns its own retries; the vendor delivery still succeeded
            log.error(f"WEBHOOK: analysis dispatch raised {e.code}")
            triggered = False

        return CallbackResponse(200, self._body(content.id, True, triggered))

    @staticmethod
    def _body(content_id: str, success: bool, triggered: bool, **extra: Any) -> Dict[str, Any]:
        body = {"success": success, "contentId": content_id, "analysisTriggered": triggered}
        body.update(extra)
        return body
