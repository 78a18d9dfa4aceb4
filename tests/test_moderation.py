"""Tests for the moderation screen."""

from content_ingest.core.exceptions import StorageWriteError
from content_ingest.pipeline.moderation import (
    ContentFlag,
    ModerationScreen,
    detect_ai_refusal,
    hash_content,
    infer_refusal_categories,
    is_blocking,
    screen_text,
    screen_url,
)
from content_ingest.storage.models import FlagCategory, FlagSeverity, FlagSource
from content_ingest.storage.repositories import ModerationFlagRepository

FILLER = "The weather report covered rainfall totals across the region. "


class FailingFlags:
    def __init__(self):
        self.attempts = 0

    async def add(self, flag):
        self.attempts += 1
        raise StorageWriteError("Failed to persist moderation flag", "moderation_flags")


def _make_flag(severity: FlagSeverity) -> ContentFlag:
    return ContentFlag(
        source=FlagSource.KEYWORD_SCREENING,
        severity=severity,
        categories=(FlagCategory.WEAPONS,),
        reason="test",
    )


class TestScreenUrl:
    def test_onion_proxy_host_is_critical(self):
        flag = screen_url("https://abcdef.onion.ly/page")
        assert flag is not None
        assert flag.severity == FlagSeverity.CRITICAL
        assert set(flag.categories) == {FlagCategory.CSAM, FlagCategory.TRAFFICKING}
        assert flag.source == FlagSource.URL_SCREENING

    def test_darknet_directory_host(self):
        assert screen_url("http://the-hidden-wiki.example/") is None
        assert screen_url("http://hiddenwiki.example/") is not None
        assert screen_url("https://darknet-links.example.org/") is not None

    def test_ordinary_host_passes(self):
        assert screen_url("https://www.nytimes.com/2026/10/17/world/story.html") is None

    def test_path_is_not_screened(self):
        assert screen_url("https://example.com/articles/darknet-markets-explained") is None

    def test_unparseable_url(self):
        assert screen_url("not a url") is None


class TestScreenText:
    def test_co_occurrence_within_window_flags_csam(self):
        text = "Reports describe a child subjected to exploitation by organised groups."
        flags = screen_text(text)

        assert len(flags) == 1
        assert flags[0].severity == FlagSeverity.CRITICAL
        assert flags[0].categories == (FlagCategory.CSAM,)

    def test_terms_far_apart_do_not_flag(self):
        text = "child " + ("x" * 250) + " exploitation"
        assert screen_text(text) == []

    def test_single_term_alone_does_not_flag(self):
        assert screen_text("Child development milestones for parents. " * 5) == []

    def test_same_category_fires_once(self):
        text = "child exploitation. " + FILLER * 10 + "minors abused. cp link here"
        flags = screen_text(text)
        assert [f.categories for f in flags] == [(FlagCategory.CSAM,)]

    def test_multiple_categories_fire_independently(self):
        text = (
            "Step by step: how to synthesize sarin at home. "
            + FILLER * 5
            + "Pipe bomb assembly with a timer is described next."
        )
        keys = {f.categories for f in screen_text(text)}
        assert (FlagCategory.WEAPONS,) in keys
        assert (FlagCategory.WEAPONS, FlagCategory.TERRORISM) in keys

    def test_only_scan_bound_is_read(self):
        text = FILLER * 10 + "child exploitation"
        assert screen_text(text, max_chars=len(FILLER) * 10) == []
        assert screen_text(text, max_chars=len(text)) != []

    def test_is_pure(self):
        text = "A child exploitation case was reported. " + FILLER
        assert screen_text(text) == screen_text(text)

    def test_empty_text(self):
        assert screen_text("") == []
        assert screen_text(None) == []


class TestBlocking:
    def test_high_blocks(self):
        assert is_blocking([_make_flag(FlagSeverity.HIGH)]) is True

    def test_critical_blocks(self):
        assert is_blocking([_make_flag(FlagSeverity.MEDIUM), _make_flag(FlagSeverity.CRITICAL)]) is True

    def test_medium_only_does_not_block(self):
        assert is_blocking([_make_flag(FlagSeverity.MEDIUM)]) is False
        assert is_blocking([]) is False


class TestAIRefusal:
    def test_structured_refusal(self):
        flag = detect_ai_refusal({"refused": True, "reason": "Describes building an explosive device"})
        assert flag.source == FlagSource.AI_REFUSAL
        assert flag.severity == FlagSeverity.HIGH
        assert flag.categories == (FlagCategory.WEAPONS,)

    def test_json_text_refusal(self):
        flag = detect_ai_refusal('{"refused": true, "reason": "minor exploitation"}')
        assert flag.categories == (FlagCategory.CSAM,)

    def test_sentinel_prefix(self):
        flag = detect_ai_refusal("CONTENT_REFUSED: human trafficking logistics")
        assert flag.categories == (FlagCategory.TRAFFICKING,)
        assert flag.reason == "human trafficking logistics"

    def test_unmatched_reason_defaults_to_terrorism(self):
        assert infer_refusal_categories("policy") == (FlagCategory.TERRORISM,)
        flag = detect_ai_refusal({"refused": True})
        assert flag.categories == (FlagCategory.TERRORISM,)

    def test_normal_output_is_not_a_refusal(self):
        assert detect_ai_refusal({"refused": False}) is None
        assert detect_ai_refusal({"summary": "All good"}) is None
        assert detect_ai_refusal("Here is the summary") is None
        assert detect_ai_refusal("{not json") is None
        assert detect_ai_refusal(None) is None


class TestModerationScreen:
    async def test_flags_are_persisted(self, db):
        repo = ModerationFlagRepository(db)
        screen = ModerationScreen(repo, preview_chars=20)
        text = "A child exploitation ring was dismantled. " + FILLER

        result = await screen.screen(
            "https://news.example.com/story",
            text,
            content_id="content-1",
            account_id="acct-1",
            content_type="article",
        )

        assert result.blocked is True
        rows = await repo.list_for_content("content-1")
        assert len(rows) == 1
        assert rows[0].categories == ["csam"]
        assert rows[0].severity == "critical"
        assert rows[0].text_preview == text[:20]
        assert rows[0].content_hash == hash_content(text)
        assert rows[0].review_status == "pending"

    async def test_clean_input_writes_nothing(self, db):
        repo = ModerationFlagRepository(db)
        screen = ModerationScreen(repo)

        result = await screen.screen("https://example.com", FILLER, content_id="content-2")

        assert result.blocked is False
        assert result.flags == []
        assert await repo.list_for_content("content-2") == []

    async def test_write_failure_still_returns_decision(self):
        flags = FailingFlags()
        screen = ModerationScreen(flags)

        result = await screen.screen("https://abc.onion.to/", "child exploitation")

        assert result.blocked is True
        assert len(result.flags) == 2
        assert flags.attempts == 2

    def test_evaluate_does_not_touch_store(self):
        flags = FailingFlags()
        screen = ModerationScreen(flags)

        result = screen.evaluate("https://abc.onion.to/")

        assert result.blocked is True
        assert flags.attempts == 0

    async def test_repeated_screening_records_once(self, db):
        repo = ModerationFlagRepository(db)
        screen = ModerationScreen(repo)
        text = "A child exploitation ring was dismantled. " + FILLER

        for _ in range(2):
            result = await screen.screen("https://news.example.com/story", text, content_id="content-3")
            assert result.blocked is True

        rows = await repo.list_for_content("content-3")
        assert len(rows) == 1

    async def test_distinct_categories_are_separate_rows(self, db):
        repo = ModerationFlagRepository(db)
        flag = _make_flag(FlagSeverity.HIGH)
        other = ContentFlag(
            source=FlagSource.KEYWORD_SCREENING,
            severity=FlagSeverity.HIGH,
            categories=(FlagCategory.TERRORISM,),
            reason="test",
        )
        screen = ModerationScreen(repo)

        await screen.record([flag, other, flag], "https://example.com/a", "same text", content_id="content-4")

        rows = await repo.list_for_content("content-4")
        assert sorted(r.categories[0] for r in rows) == ["terrorism", "weapons"]
