"""Tests for batch admission."""

import pytest

from content_ingest.core.exceptions import (
    BatchLimitError,
    QuotaExceededError,
    ValidationException,
)
from content_ingest.pipeline.tiers import UsageField


async def _use_analyses(services, count, account_id="acct-1"):
    for _ in range(count):
        await services.ledger.increment(account_id, UsageField.ANALYSES)


async def _analyses_used(services, account_id="acct-1"):
    return await services.usage.get_count(
        account_id, services.ledger.period(), UsageField.ANALYSES.value
    )


class TestSubmitBatch:
    async def test_admits_and_charges(self, services):
        result = await services.batch.submit_batch(
            ["https://example.com/one", "https://cdn.example.com/ep.mp3"], "acct-1", "free"
        )
        await services.supervisor.join()

        assert result.admitted == 2
        assert [r.type for r in result.results] == ["article", "podcast"]
        assert await _analyses_used(services) == 2
        assert result.batch_limit == 3
        assert result.tier == "free"

        rows = [await services.contents.get(r.content_id) for r in result.results]
        assert rows[0].title == "Analyzing: https://example.com/one..."
        assert rows[0].status == "complete"
        assert rows[1].status == "transcribing"

    async def test_dedup_happens_before_quota_cap(self, services):
        await _use_analyses(services, 4)

        result = await services.batch.submit_batch(
            ["https://a.com", "https://a.com", "https://b.com"], "acct-1", "free"
        )

        assert [r.url for r in result.results] == ["https://a.com"]
        assert result.deduplicated == ["https://a.com"]
        assert result.skipped_due_to_limit == 1
        assert await _analyses_used(services) == 5

    async def test_existing_row_is_reused_without_charge(self, services, make_content):
        existing = await make_content(url="https://example.com/article", status="complete")

        result = await services.batch.submit_batch(["https://example.com/article"], "acct-1", "free")

        assert result.results[0].content_id == existing.id
        assert result.results[0].existing is True
        assert await _analyses_used(services) == 0

    async def test_invalid_urls_are_reported(self, services):
        result = await services.batch.submit_batch(
            ["https://example.com/ok", "http://localhost/admin", 42], "acct-1", "free"
        )

        assert result.admitted == 1
        reasons = {str(r.url): r.reason for r in result.invalid}
        assert reasons["http://localhost/admin"] == "Internal URLs are not allowed"
        assert reasons["42"] == "URL must be a string"

    async def test_to_dict_uses_wire_names(self, services):
        result = await services.batch.submit_batch(["https://example.com/ok"], "acct-1", None)
        data = result.to_dict()

        assert set(data) == {
            "results", "invalid", "deduplicated", "skippedDueToLimit", "batchLimit", "tier",
        }
        assert data["results"][0]["contentId"] == result.results[0].content_id


class TestRejections:
    @pytest.mark.parametrize("urls", [[], "https://example.com", None])
    async def test_not_a_non_empty_list(self, services, urls):
        with pytest.raises(ValidationException):
            await services.batch.submit_batch(urls, "acct-1", "pro")

    async def test_absolute_cap(self, services):
        urls = [f"https://example.com/{i}" for i in range(16)]
        with pytest.raises(ValidationException):
            await services.batch.submit_batch(urls, "acct-1", "pro")

    async def test_tier_batch_limit(self, services):
        urls = [f"https://example.com/{i}" for i in range(4)]
        with pytest.raises(BatchLimitError) as exc_info:
            await services.batch.submit_batch(urls, "acct-1", "free")
        assert exc_info.value.to_dict()["details"]["batch_limit"] == 3

    async def test_quota_exhausted(self, services):
        await _use_analyses(services, 5)
        with pytest.raises(QuotaExceededError):
            await services.batch.submit_batch(["https://example.com/x"], "acct-1", "free")

    async def test_all_invalid(self, services):
        with pytest.raises(ValidationException) as exc_info:
            await services.batch.submit_batch(["javascript:alert(1)", "ftp://x.org"], "acct-1", "free")
        assert exc_info.value.message == "No valid URLs provided"
        assert await _analyses_used(services) == 0
