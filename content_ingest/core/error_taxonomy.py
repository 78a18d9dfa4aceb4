"""
Error Taxonomy
==============
Closed set of failure categories used in place of raw vendor errors.

Raw error text from transcription vendors, extractors and the analyzer is
classified here before it reaches a persisted row or an API response.
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Generic failure categories safe to show to users."""

    SCRAPE_FAILED = "SCRAPE_FAILED"
    TRANSCRIPT_FAILED = "TRANSCRIPT_FAILED"
    METADATA_FAILED = "METADATA_FAILED"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    TRANSCRIPTION_EMPTY = "TRANSCRIPTION_EMPTY"
    OCR_FAILED = "OCR_FAILED"
    AI_ANALYSIS_FAILED = "AI_ANALYSIS_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    CONTENT_UNAVAILABLE = "CONTENT_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    CONTENT_POLICY_VIOLATION = "CONTENT_POLICY_VIOLATION"
    UNKNOWN = "UNKNOWN"


FAILURE_PREFIX = "PROCESSING_FAILED::"

# First match wins; order matters (rate limits before timeouts before 404s...)
_RULES = (
    (ErrorCategory.RATE_LIMITED, ("429", "rate limit", "limit-exceeded", "too many")),
    (ErrorCategory.TIMEOUT, ("timeout", "timed out", "aborterror", "aborted")),
    (ErrorCategory.CONTENT_UNAVAILABLE, ("unavailable", "not found", "private", "restricted")),
    (ErrorCategory.SCRAPE_FAILED, ("scrape", "extract", "article content")),
    # "transcription" contains "transcript", so it is checked first
    (ErrorCategory.TRANSCRIPTION_FAILED, ("transcription",)),
    (ErrorCategory.TRANSCRIPT_FAILED, ("transcript",)),
    (ErrorCategory.METADATA_FAILED, ("metadata",)),
    (ErrorCategory.OCR_FAILED, ("ocr",)),
    (ErrorCategory.AI_ANALYSIS_FAILED, ("analyzer", "ai analysis", "analysis service")),
)

_TYPE_LABELS = {
    "YOUTUBE": "video",
    "ARTICLE": "article",
    "PODCAST": "podcast",
    "PDF": "document",
    "X_POST": "post",
    "TRANSCRIPTION": "podcast",
}


def classify_error(raw_message: str) -> ErrorCategory:
    """
    Map a raw error message to exactly one generic category.

    Args:
        raw_message: Error text as produced by a vendor or client library

    Returns:
        ErrorCategory: Matching category, ``UNKNOWN`` if nothing matches
    """
    msg = (raw_message or "").lower()
    for category, needles in _RULES:
        if any(needle in msg for needle in needles):
            return category
    return ErrorCategory.UNKNOWN


def user_friendly_error(content_type: str, category: ErrorCategory) -> str:
    """Plain-English message for a (content type, category) pair."""
    label = _TYPE_LABELS.get(content_type.upper(), "content")

    messages = {
        ErrorCategory.SCRAPE_FAILED: f"We couldn't extract the {label} content. It may be behind a login or paywall.",
        ErrorCategory.TRANSCRIPT_FAILED: f"We couldn't retrieve the transcript. The {label} may not have captions available.",
        ErrorCategory.METADATA_FAILED: f"We couldn't access this {label}'s details. It may be private or unavailable.",
        ErrorCategory.TRANSCRIPTION_FAILED: "Transcription failed. The audio may be too short or in an unsupported format.",
        ErrorCategory.TRANSCRIPTION_EMPTY: "The transcription completed but no speech was detected.",
        ErrorCategory.OCR_FAILED: "We couldn't extract text from this document.",
        ErrorCategory.AI_ANALYSIS_FAILED: "Our analysis service encountered an error. Please try regenerating.",
        ErrorCategory.RATE_LIMITED: "Our service is temporarily busy. Please try again in a few minutes.",
        ErrorCategory.TIMEOUT: "Processing took too long. Please try again.",
        ErrorCategory.CONTENT_UNAVAILABLE: f"This {label} appears to be unavailable or restricted.",
        ErrorCategory.CONTENT_POLICY_VIOLATION: "This content could not be processed due to our content policy.",
    }
    return messages.get(
        category, f"Something went wrong processing this {label}. Please try again."
    )


def failure_marker(stage: str, category: ErrorCategory) -> str:
    """
    Build the marker stored on the content text field after a failure.

    Example: ``PROCESSING_FAILED::TRANSCRIPTION::TRANSCRIPTION_EMPTY``
    """
    return f"{FAILURE_PREFIX}{stage.upper()}::{category.value}"


def is_failure_marker(text: str) -> bool:
    return bool(text) and text.startswith(FAILURE_PREFIX)
