"""
Batch Ingestion Orchestrator
============================
Admits a list of URLs for one account.

Checks run in this order, and the whole batch is rejected by the first
three:

1. absolute batch ceiling
2. tier batch-size limit
3. remaining monthly analyses (fail closed on store errors)
4. per-URL validation and classification
5. in-batch deduplication
6. cap to remaining quota

Each admitted URL either reuses the account's existing row for that URL
or creates a new ``pending`` row (charging one analysis in the same
transaction) and starts processing in the background.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..core.config import PipelineConfig
from ..core.exceptions import (
    BatchLimitError,
    QuotaExceededError,
    StorageException,
    ValidationException,
)
from ..core.logging_config import get_logger
from ..storage.models import Content, ContentStatus
from ..storage.repositories import ContentRepository, UsageCharge
from .quota import QuotaLedger
from .state_machine import IngestionStateMachine
from .tiers import UsageField, get_tier_profile, normalize_tier
from .urls import classify_content_type, validate_url

logger = get_logger(__name__)

TITLE_URL_CHARS = 60


@dataclass
class BatchItemResult:
    url: str
    content_id: Optional[str]
    type: Optional[str]
    error: Optional[str] = None
    existing: bool = False


@dataclass
class RejectedUrl:
    url: Any
    reason: str


@dataclass
class BatchResult:
    results: List[BatchItemResult] = field(default_factory=list)
    invalid: List[RejectedUrl] = field(default_factory=list)
    deduplicated: List[str] = field(default_factory=list)
    skipped_due_to_limit: int = 0
    batch_limit: int = 0
    tier: str = "free"

    @property
    def admitted(self) -> int:
        return sum(1 for r in self.results if r.content_id and not r.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [
                {
                    "url": r.url,
                    "contentId": r.content_id,
                    "type": r.type,
                    "error": r.error,
                    "existing": r.existing,
                }
                for r in self.results
            ],
            "invalid": [{"url": r.url, "reason": r.reason} for r in self.invalid],
            "deduplicated": self.deduplicated,
            "skippedDueToLimit": self.skipped_due_to_limit,
            "batchLimit": self.batch_limit,
            "tier": self.tier,
        }


class BatchIngestionOrchestrator:
    """
    Admits batches of URLs.

    Args:
        contents: Content repository
        ledger: Quota ledger
        state_machine: Started for every newly created row
        config: Pipeline configuration
    """

    def __init__(
        self,
        contents: ContentRepository,
        ledger: QuotaLedger,
        state_machine: IngestionStateMachine,
        config: PipelineConfig,
    ):
        self.contents = contents
        self.ledger = ledger
        self.state_machine = state_machine
        self.config = config

    async def submit_batch(
        self,
        urls: Sequence[Any],
        account_id: str,
        tier: Optional[str],
        language: Optional[str] = None,
    ) -> BatchResult:
        """
        Validate, deduplicate and admit ``urls`` for ``account_id``.

        Raises:
            ValidationException: Empty or oversized input, or no valid URLs
            BatchLimitError: More URLs than the tier allows per batch
            QuotaExceededError: No analyses left this period
            QuotaStoreError: Usage store unavailable
        """
        if not isinstance(urls, (list, tuple)) or not urls:
            raise ValidationException("urls must be a non-empty array", field="urls")

        if len(urls) > self.config.absolute_max_batch:
            raise ValidationException(
                f"Maximum {self.config.absolute_max_batch} URLs per batch",
                field="urls",
                expected=f"at most {self.config.absolute_max_batch} URLs",
            )

        tier = normalize_tier(tier)
        profile = get_tier_profile(tier)
        if len(urls) > profile.batch_size:
            raise BatchLimitError(
                f"Your {tier} plan allows up to {profile.batch_size} URLs per batch",
                tier=tier,
                batch_limit=profile.batch_size,
                submitted=len(urls),
            )

        check = await self.ledger.check_and_reserve(account_id, tier, UsageField.ANALYSES)
        if not check.allowed:
            raise QuotaExceededError(
                "Monthly analysis limit reached",
                tier=tier,
                field=UsageField.ANALYSES.value,
                limit=check.limit,
                current=check.current,
            )

        result = BatchResult(batch_limit=profile.batch_size, tier=tier)
        language = language or self.config.default_language

        candidates = []
        seen = set()
        for raw in urls:
            if not isinstance(raw, str):
                result.invalid.append(RejectedUrl(raw, "URL must be a string"))
                continue
            validation = validate_url(raw)
            if not validation.is_valid:
                result.invalid.append(RejectedUrl(raw, validation.error))
                continue
            if validation.url in seen:
                result.deduplicated.append(validation.url)
                continue
            seen.add(validation.url)
            candidates.append(validation.url)

        if not candidates:
            raise ValidationException(
                "No valid URLs provided",
                field="urls",
                details={"invalid": [{"url": str(r.url), "reason": r.reason} for r in result.invalid]},
            )

        remaining = check.remaining
        if remaining is not None and len(candidates) > remaining:
            result.skipped_due_to_limit = len(candidates) - remaining
            candidates = candidates[:remaining]

        for url in candidates:
            result.results.append(
                await self._admit(url, account_id, language, check.period)
            )

        logger.info(
            f"Batch for {account_id}: {result.admitted} admitted, "
            f"{len(result.invalid)} invalid, {len(result.deduplicated)} duplicate, "
            f"{result.skipped_due_to_limit} over quota"
        )
        return result

    async def _admit(
        self,
        url: str,
        account_id: str,
        language: str,
        period: str,
    ) -> BatchItemResult:
        content_type = classify_content_type(url).value

        try:
            existing = await self.contents.find_by_url(url, account_id)
            if existing is not None:
                return BatchItemResult(url, existing.id, existing.type, existing=True)

            content = await self.contents.create(
                Content(
                    account_id=account_id,
                    url=url,
                    type=content_type,
                    title=f"Analyzing: {url[:TITLE_URL_CHARS]}...",
                    status=ContentStatus.PENDING.value,
                    analysis_language=language,
                ),
                charge=UsageCharge(account_id, period, UsageField.ANALYSES.value),
            )
        except StorageException as e:
            logger.error(f"Failed to admit {url}: {e.message}")
            return BatchItemResult(url, None, content_type, error="Failed to create content entry")

        self.state_machine.launch(content.id)
        return BatchItemResult(url, content.id, content_type)
