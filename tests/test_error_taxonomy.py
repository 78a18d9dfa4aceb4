"""Tests for error classification and failure markers."""

import pytest

from content_ingest.core.error_taxonomy import (
    ErrorCategory,
    classify_error,
    failure_marker,
    is_failure_marker,
    user_friendly_error,
)
from content_ingest.core.exceptions import QuotaExceededError, ValidationException


class TestClassifyError:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("HTTP 429 Too Many Requests", ErrorCategory.RATE_LIMITED),
            ("Request timed out after 60000ms", ErrorCategory.TIMEOUT),
            ("AbortError: The operation was aborted", ErrorCategory.TIMEOUT),
            ("Video unavailable", ErrorCategory.CONTENT_UNAVAILABLE),
            ("Text extraction failed (500)", ErrorCategory.SCRAPE_FAILED),
            ("Transcription submission failed (400): bad audio", ErrorCategory.TRANSCRIPTION_FAILED),
            ("Could not fetch transcript for video", ErrorCategory.TRANSCRIPT_FAILED),
            ("metadata lookup failed", ErrorCategory.METADATA_FAILED),
            ("OCR engine crashed", ErrorCategory.OCR_FAILED),
            ("Analyzer request failed: Connection refused", ErrorCategory.AI_ANALYSIS_FAILED),
            ("segfault in something", ErrorCategory.UNKNOWN),
            ("", ErrorCategory.UNKNOWN),
        ],
    )
    def test_classification(self, raw, expected):
        assert classify_error(raw) == expected

    def test_case_insensitive(self):
        assert classify_error("RATE LIMIT EXCEEDED") == ErrorCategory.RATE_LIMITED

    def test_none_is_unknown(self):
        assert classify_error(None) == ErrorCategory.UNKNOWN


class TestMessages:
    def test_type_label_is_used(self):
        message = user_friendly_error("youtube", ErrorCategory.CONTENT_UNAVAILABLE)
        assert message == "This video appears to be unavailable or restricted."

    def test_unknown_category_fallback(self):
        message = user_friendly_error("article", ErrorCategory.UNKNOWN)
        assert "article" in message

    def test_policy_message_differs_from_failure(self):
        policy = user_friendly_error("podcast", ErrorCategory.CONTENT_POLICY_VIOLATION)
        failure = user_friendly_error("podcast", ErrorCategory.TRANSCRIPTION_FAILED)
        assert policy != failure


class TestFailureMarker:
    def test_marker_format(self):
        marker = failure_marker("transcription", ErrorCategory.TRANSCRIPTION_EMPTY)
        assert marker == "PROCESSING_FAILED::TRANSCRIPTION::TRANSCRIPTION_EMPTY"
        assert is_failure_marker(marker)

    def test_plain_text_is_not_marker(self):
        assert not is_failure_marker("[0:00] Speaker A: hello")
        assert not is_failure_marker("")
        assert not is_failure_marker(None)


class TestExceptionSerialization:
    def test_quota_exceeded_to_dict(self):
        exc = QuotaExceededError("Monthly analysis limit reached", "free", "analyses_count", 5, 5)
        data = exc.to_dict()
        assert data["error"] == "QUOTA_EXCEEDED"
        assert data["details"]["upgrade_required"] is True
        assert data["details"]["tier"] == "free"

    def test_cause_is_not_serialized(self):
        exc = ValidationException("bad", field="urls", cause=RuntimeError("vendor secret text"))
        assert "vendor secret text" not in str(exc.to_dict())
        assert exc.to_dict()["field"] == "urls"
