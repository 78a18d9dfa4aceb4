"""
Moderation Screen
=================
Three independent detectors that run before any text reaches the analyzer.

This module provides:
- URL screening against known illegal-content distribution hosts
- Keyword co-occurrence screening of scraped text
- Refusal detection on analyzer output
- Persistence of every flag for human review

Detector rules are plain data tables; extend the tables rather than the
control flow. A flag of severity ``critical`` or ``high`` blocks the
pipeline, ``medium`` flags are recorded only.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urlsplit

from ..core.logging_config import get_logger
from ..storage.models import FlagCategory, FlagSeverity, FlagSource, ModerationFlag
from ..storage.repositories import ModerationFlagRepository

logger = get_logger(__name__)

REFUSAL_SENTINEL = "CONTENT_REFUSED:"
DEFAULT_REFUSAL_CATEGORY = FlagCategory.TERRORISM

BLOCKING_SEVERITIES = frozenset({FlagSeverity.CRITICAL, FlagSeverity.HIGH})


@dataclass(frozen=True)
class ScreeningRule:
    pattern: Pattern[str]
    categories: Tuple[FlagCategory, ...]
    severity: FlagSeverity
    reason: str

    @property
    def category_key(self) -> str:
        return ",".join(c.value for c in self.categories)


@dataclass(frozen=True)
class ContentFlag:
    """One detector hit."""

    source: FlagSource
    severity: FlagSeverity
    categories: Tuple[FlagCategory, ...]
    reason: str

    @property
    def blocking(self) -> bool:
        return self.severity in BLOCKING_SEVERITIES


@dataclass
class ScreeningResult:
    blocked: bool
    flags: List[ContentFlag] = field(default_factory=list)


def _rule(pattern: str, categories, severity, reason) -> ScreeningRule:
    return ScreeningRule(
        pattern=re.compile(pattern, re.IGNORECASE),
        categories=tuple(categories),
        severity=severity,
        reason=reason,
    )


# Matched against the hostname only. Intentionally short: the refusal
# detector catches what these miss.
URL_RULES: Sequence[ScreeningRule] = (
    _rule(
        r"\.onion\.",
        [FlagCategory.CSAM, FlagCategory.TRAFFICKING],
        FlagSeverity.CRITICAL,
        "Onion proxy host",
    ),
    _rule(
        r"(?:darknet|deepweb|hidden\.?wiki)",
        [FlagCategory.CSAM, FlagCategory.TRAFFICKING],
        FlagSeverity.CRITICAL,
        "Known darknet directory host",
    ),
)

_AGE = r"\b(?:child(?:ren)?|minors?|underage|pre-?teens?|infants?)\b"
_EXPLOIT = r"\b(?:exploit\w*|abus\w*|nude|naked|porn\w*|sexual\w*|molest\w*|groom\w*)\b"
_MAKE = r"\b(?:synthesiz|manufactur|produc|creat|mak|prepar)\w*\b"
_AGENT = r"\b(?:sarin|vx\s+gas|nerve\s+agent|ricin|anthrax|botulinum|mustard\s+gas|chlorine\s+gas)\b"

# Co-occurrence patterns: an indicator term within a bounded window of a
# context term. Single words alone never fire.
KEYWORD_RULES: Sequence[ScreeningRule] = (
    _rule(
        _AGE + r"[\s\S]{0,200}?" + _EXPLOIT,
        [FlagCategory.CSAM],
        FlagSeverity.CRITICAL,
        "Content contains child exploitation indicators",
    ),
    _rule(
        _EXPLOIT + r"[\s\S]{0,200}?" + _AGE,
        [FlagCategory.CSAM],
        FlagSeverity.CRITICAL,
        "Content contains child exploitation indicators",
    ),
    _rule(
        r"\b(?:cp\s+(?:link|download|share|collection|trade)|pizza\s+cheese\s+(?:link|download|share))\b",
        [FlagCategory.CSAM],
        FlagSeverity.CRITICAL,
        "Content contains known CSAM distribution terminology",
    ),
    _rule(
        _MAKE + r"[\s\S]{0,150}?" + _AGENT,
        [FlagCategory.WEAPONS],
        FlagSeverity.HIGH,
        "Content contains chemical/biological weapon manufacturing instructions",
    ),
    _rule(
        _AGENT + r"[\s\S]{0,150}?" + _MAKE,
        [FlagCategory.WEAPONS],
        FlagSeverity.HIGH,
        "Content contains chemical/biological weapon manufacturing instructions",
    ),
    _rule(
        r"\b(?:improv\w*\s+explosive|pipe\s+bomb|pressure\s+cooker\s+bomb|detonat\w*\s+mechanism)\b"
        r"[\s\S]{0,200}?\b(?:build|construct|assembl|wir|connect|timer)\w*\b",
        [FlagCategory.WEAPONS, FlagCategory.TERRORISM],
        FlagSeverity.HIGH,
        "Content contains explosive device construction instructions",
    ),
    _rule(
        r"\b(?:jihad|martyrdom\s+operation|caliphate)\b[\s\S]{0,200}?"
        r"\b(?:recruit\w*|join|travel|train\w*|attack\s+plan|target\w*)\b",
        [FlagCategory.TERRORISM],
        FlagSeverity.HIGH,
        "Content contains terrorism recruitment or operational planning",
    ),
    _rule(
        r"\b(?:traffick|smuggl)\w*\b[\s\S]{0,200}?\b(?:person|human|women|girls?|boys?|child|minors?)\b"
        r"[\s\S]{0,200}?\b(?:price|cost|buy|sell|deliver|transport|route)\w*\b",
        [FlagCategory.TRAFFICKING],
        FlagSeverity.HIGH,
        "Content contains human trafficking facilitation indicators",
    ),
)

# Terms in a refusal reason that suggest a category
REFUSAL_CATEGORY_TERMS: Sequence[Tuple[FlagCategory, Tuple[str, ...]]] = (
    (FlagCategory.CSAM, ("child", "csam", "minor", "exploitation")),
    (FlagCategory.TERRORISM, ("terror", "bomb", "attack")),
    (FlagCategory.WEAPONS, ("weapon", "explosive", "chemical", "biological")),
    (FlagCategory.TRAFFICKING, ("traffick",)),
)


def is_blocking(flags: Iterable[ContentFlag]) -> bool:
    return any(f.blocking for f in flags)


def screen_url(url: str) -> Optional[ContentFlag]:
    """Layer 1: match the URL's hostname against ``URL_RULES``."""
    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return None
    if not hostname:
        return None

    for rule in URL_RULES:
        if rule.pattern.search(hostname):
            return ContentFlag(
                source=FlagSource.URL_SCREENING,
                severity=rule.severity,
                categories=rule.categories,
                reason=f"URL matches blocked domain pattern: {hostname}",
            )
    return None


def screen_text(text: Optional[str], max_chars: int = 50_000) -> List[ContentFlag]:
    """
    Layer 2: keyword co-occurrence screening.

    Only the first ``max_chars`` characters are scanned. Each category key
    fires at most once per call. Pure function of its input.
    """
    if not text:
        return []

    text_to_scan = text[:max_chars].lower()
    flags: List[ContentFlag] = []
    seen = set()

    for rule in KEYWORD_RULES:
        if rule.category_key in seen:
            continue
        if rule.pattern.search(text_to_scan):
            seen.add(rule.category_key)
            flags.append(ContentFlag(
                source=FlagSource.KEYWORD_SCREENING,
                severity=rule.severity,
                categories=rule.categories,
                reason=rule.reason,
            ))

    return flags


def infer_refusal_categories(reason: str) -> Tuple[FlagCategory, ...]:
    """Best-guess categories from a refusal reason; terrorism if none match."""
    lower = (reason or "").lower()
    categories = tuple(
        category
        for category, terms in REFUSAL_CATEGORY_TERMS
        if any(term in lower for term in terms)
    )
    return categories or (DEFAULT_REFUSAL_CATEGORY,)


def detect_ai_refusal(output: Any) -> Optional[ContentFlag]:
    """
    Layer 3: look for a structured refusal in analyzer output.

    Recognised forms are a mapping with ``refused: true`` (optionally with
    a ``reason``), the same mapping serialized as JSON text, or text
    starting with ``CONTENT_REFUSED:``.
    """
    if not output:
        return None

    if isinstance(output, str):
        stripped = output.strip()
        if stripped.startswith(REFUSAL_SENTINEL):
            reason = stripped[len(REFUSAL_SENTINEL):].strip()
            return ContentFlag(
                source=FlagSource.AI_REFUSAL,
                severity=FlagSeverity.HIGH,
                categories=infer_refusal_categories(reason),
                reason=reason or "AI refused to analyze this content",
            )
        if stripped.startswith("{"):
            try:
                output = json.loads(stripped)
            except ValueError:
                return None

    if isinstance(output, dict) and output.get("refused") is True:
        reason = str(output.get("reason") or "")
        return ContentFlag(
            source=FlagSource.AI_REFUSAL,
            severity=FlagSeverity.HIGH,
            categories=infer_refusal_categories(reason),
            reason=reason or "AI refused to analyze this content",
        )

    return None


def hash_content(text: str) -> str:
    """SHA-256 hex digest used for forensic matching of flagged text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def flag_fingerprint(
    flag: ContentFlag,
    url: str,
    content_hash: Optional[str],
    content_id: Optional[str] = None,
) -> str:
    """Identity of a detection; screening the same input again yields the same value."""
    categories = ",".join(sorted(c.value for c in flag.categories))
    screened = content_hash or url
    return hash_content(f"{content_id or ''}|{flag.source.value}|{categories}|{screened}")


class ModerationScreen:
    """
    Runs the detectors and records every flag.

    Persistence is best effort: a failed write is logged and the in-memory
    decision is still returned, so moderation logging can never take down
    legitimate traffic.
    """

    def __init__(
        self,
        flags: ModerationFlagRepository,
        keyword_scan_chars: int = 50_000,
        preview_chars: int = 500,
    ):
        self.flags = flags
        self.keyword_scan_chars = keyword_scan_chars
        self.preview_chars = preview_chars

    def evaluate(self, url: str, scraped_text: Optional[str] = None) -> ScreeningResult:
        """Run URL and keyword screening without touching the store."""
        flags: List[ContentFlag] = []

        url_flag = screen_url(url)
        if url_flag:
            flags.append(url_flag)

        if scraped_text:
            flags.extend(screen_text(scraped_text, self.keyword_scan_chars))

        return ScreeningResult(blocked=is_blocking(flags), flags=flags)

    async def record(
        self,
        flags: Iterable[ContentFlag],
        url: str,
        scraped_text: Optional[str] = None,
        content_id: Optional[str] = None,
        account_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        """Persist each flag; never raises."""
        content_hash = hash_content(scraped_text) if scraped_text else None
        preview = scraped_text[: self.preview_chars] if scraped_text else None

        for flag in flags:
            row = ModerationFlag(
                content_id=content_id,
                account_id=account_id,
                url=url,
                content_type=content_type,
                source=flag.source.value,
                severity=flag.severity.value,
                categories=[c.value for c in flag.categories],
                reason=flag.reason,
                content_hash=content_hash,
                fingerprint=flag_fingerprint(flag, url, content_hash, content_id),
                text_preview=preview,
            )
            try:
                inserted = await self.flags.add(row)
            except Exception:
                logger.error(
                    f"MODERATION: Failed to persist {flag.source.value} flag for {url}",
                    exc_info=True,
                )
                continue

            if inserted is False:
                logger.debug(f"MODERATION: {flag.source.value} flag for {url} already recorded")
                continue

            logger.warning(
                f"MODERATION: Content flagged [{flag.severity.value}] "
                f"{flag.source.value}: {flag.reason}",
                extra={"content_id": content_id, "account_id": account_id},
            )

    async def screen(
        self,
        url: str,
        scraped_text: Optional[str] = None,
        content_id: Optional[str] = None,
        account_id: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> ScreeningResult:
        """
        Evaluate ``url`` and ``scraped_text`` and persist the flags.

        Flags are written before the decision is returned.
        """
        result = self.evaluate(url, scraped_text)
        if result.flags:
            await self.record(
                result.flags, url, scraped_text, content_id, account_id, content_type
            )
        return result
