"""
Pipeline Module
===============
Quota, moderation and the ingestion state machine.
"""

from .batch import BatchIngestionOrchestrator, BatchItemResult, BatchResult, RejectedUrl
from .clients import (
    Analyzer,
    ExtractedText,
    HttpAnalyzer,
    HttpTextExtractor,
    TextExtractor,
    Transcriber,
    TranscriptionClient,
)
from .dispatcher import AnalysisDispatcher, DispatchResult
from .moderation import (
    ContentFlag,
    ModerationScreen,
    ScreeningResult,
    detect_ai_refusal,
    screen_text,
    screen_url,
)
from .quota import QuotaCheck, QuotaLedger
from .state_machine import IngestionStateMachine
from .tasks import TaskSupervisor
from .tiers import TIER_PROFILES, TierProfile, UsageField, get_tier_profile
from .transcription import (
    AssemblyAINormalizer,
    CallbackResponse,
    DeepgramNormalizer,
    TranscriptionCallbackHandler,
)
from .transitions import StatusGuard
from .urls import classify_content_type, validate_url

__all__ = [
    "BatchIngestionOrchestrator",
    "BatchItemResult",
    "BatchResult",
    "RejectedUrl",
    "Analyzer",
    "ExtractedText",
    "HttpAnalyzer",
    "HttpTextExtractor",
    "TextExtractor",
    "Transcriber",
    "TranscriptionClient",
    "AnalysisDispatcher",
    "DispatchResult",
    "ContentFlag",
    "ModerationScreen",
    "ScreeningResult",
    "detect_ai_refusal",
    "screen_text",
    "screen_url",
    "QuotaCheck",
    "QuotaLedger",
    "IngestionStateMachine",
    "TaskSupervisor",
    "TIER_PROFILES",
    "TierProfile",
    "UsageField",
    "get_tier_profile",
    "AssemblyAINormalizer",
    "CallbackResponse",
    "DeepgramNormalizer",
    "TranscriptionCallbackHandler",
    "StatusGuard",
    "classify_content_type",
    "validate_url",
]
