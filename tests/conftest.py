"""Shared fixtures: a temp-file SQLite store and fakes for external services."""

from typing import Any, Dict, List, Optional

import pytest

from content_ingest.api.main import build_services
from content_ingest.core.config import Config, StorageConfig
from content_ingest.core.exceptions import ExternalServiceError
from content_ingest.pipeline.clients import ExtractedText
from content_ingest.storage.database import DatabaseManager
from content_ingest.storage.models import Account, Content

WEBHOOK_TOKEN = "s3cret-webhook-token"
JWT_SECRET = "test-jwt-secret"


class FakeTranscriber:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.submitted: List[str] = []

    async def submit(self, audio_url: str) -> str:
        self.submitted.append(audio_url)
        if self.error:
            raise self.error
        return f"req-{len(self.submitted)}"


class FakeExtractor:
    def __init__(self, text: str = "", title: Optional[str] = None, error: Optional[Exception] = None):
        self.text = text
        self.title = title
        self.error = error
        self.calls: List[str] = []

    async def extract(self, url: str) -> ExtractedText:
        self.calls.append(url)
        if self.error:
            raise self.error
        return ExtractedText(text=self.text, title=self.title)


class FakeAnalyzer:
    """Returns or raises the queued outcomes in order; the last one repeats."""

    def __init__(self, *outcomes: Any):
        self.outcomes = list(outcomes) or [{}]
        self.calls: List[str] = []

    async def analyze(self, content_id: str, language: str) -> Dict[str, Any]:
        self.calls.append(content_id)
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def analyzer_down() -> ExternalServiceError:
    return ExternalServiceError("Analyzer request failed: Connection refused", "analyzer")


@pytest.fixture
def config() -> Config:
    config = Config()
    config.services.transcription_webhook_token = WEBHOOK_TOKEN
    config.api.jwt_secret = JWT_SECRET
    return config


@pytest.fixture
async def db(tmp_path):
    manager = DatabaseManager(StorageConfig(database_url=f"sqlite:///{tmp_path / 'ingest.db'}"))
    await manager.connect()
    await manager.create_tables()
    yield manager
    await manager.disconnect()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor(
        text="A long read about community gardens and the volunteers who run them.",
        title="Community gardens",
    )


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer({"success": True})


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
async def services(config, db, transcriber, extractor, analyzer, sleep):
    services = build_services(
        config,
        db=db,
        transcriber=transcriber,
        extractor=extractor,
        analyzer=analyzer,
        sleep=sleep,
    )
    yield services
    await services.supervisor.shutdown(timeout=1.0)


async def _make_account(db: DatabaseManager, account_id: str = "acct-1", tier: str = "free") -> None:
    async with db.session() as session:
        session.add(Account(id=account_id, tier=tier))


async def _make_content(db: DatabaseManager, **overrides: Any) -> Content:
    values = {
        "account_id": "acct-1",
        "url": "https://example.com/article",
        "type": "article",
        "status": "pending",
        "analysis_language": "en",
    }
    values.update(overrides)
    content = Content(**values)
    async with db.session() as session:
        session.add(content)
    return content


@pytest.fixture
def make_content(db):
    async def factory(**overrides: Any) -> Content:
        return await _make_content(db, **overrides)
    return factory


@pytest.fixture
def make_account(db):
    async def factory(account_id: str = "acct-1", tier: str = "free") -> None:
        await _make_account(db, account_id, tier)
    return factory
