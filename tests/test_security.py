"""Tests for tokens, rate limiting and configuration checks."""

from datetime import timedelta

import pytest
from fastapi import HTTPException

from content_ingest.api.security import (
    ClientRateLimiter,
    create_access_token,
    decode_access_token,
)
from content_ingest.core.config import Config
from content_ingest.core.exceptions import RateLimitError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestTokens:
    def test_round_trip_operator_claim(self, config):
        token = create_access_token(config.api, "ops-1", is_operator=True)
        principal = decode_access_token(config.api, token)

        assert principal.account_id == "ops-1"
        assert principal.is_operator is True

    def test_expired_token_is_rejected(self, config):
        token = create_access_token(config.api, "acct-1", expires_delta=timedelta(seconds=-5))
        with pytest.raises(HTTPException) as exc_info:
            decode_access_token(config.api, token)
        assert exc_info.value.status_code == 401

    def test_wrong_secret_is_rejected(self, config):
        token = create_access_token(config.api, "acct-1")
        config.api.jwt_secret = "another-secret"
        with pytest.raises(HTTPException):
            decode_access_token(config.api, token)


class TestClientRateLimiter:
    def test_refills_after_window(self):
        clock = FakeClock()
        limiter = ClientRateLimiter(5, 60, clock=clock)

        for _ in range(5):
            limiter.check("203.0.113.9")
        with pytest.raises(RateLimitError) as exc_info:
            limiter.check("203.0.113.9")
        assert exc_info.value.retry_after == 12

        clock.now += 12
        limiter.check("203.0.113.9")

    def test_idle_clients_are_forgotten(self):
        clock = FakeClock()
        limiter = ClientRateLimiter(5, 60, clock=clock)
        for i in range(100):
            limiter.check(f"198.51.100.{i}")
        assert limiter.tracked == 100

        clock.now += 60
        limiter.check("203.0.113.9")

        assert limiter.tracked == 1

    def test_active_client_keeps_its_bucket(self):
        clock = FakeClock()
        limiter = ClientRateLimiter(5, 60, clock=clock)
        limiter.check("a")
        limiter.check("b")
        clock.now += 30
        limiter.check("a")
        clock.now += 30
        limiter.check("c")

        assert limiter.tracked == 2

    def test_clients_are_independent(self):
        limiter = ClientRateLimiter(1, 60, clock=FakeClock())
        limiter.check("a")
        limiter.check("b")
        with pytest.raises(RateLimitError):
            limiter.check("a")


class TestConfigValidation:
    def test_production_requires_secrets(self):
        config = Config(environment="production")
        issues = config.validate()

        assert "Transcription webhook token is required in production" in issues
        assert "JWT secret is required in production" in issues

    def test_unknown_vendor(self):
        config = Config()
        config.services.transcription_vendor = "whisperco"
        assert config.validate() == ["Unknown transcription vendor: whisperco"]

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("INGEST_TRANSCRIPTION_VENDOR", "assemblyai")
        monkeypatch.setenv("INGEST_DISPATCH_ATTEMPTS", "5")

        config = Config.from_env()

        assert config.services.transcription_vendor == "assemblyai"
        assert config.pipeline.dispatch_attempts == 5

    def test_to_dict_hides_secrets(self, config):
        dumped = str(config.to_dict())
        assert "s3cret-webhook-token" not in dumped
        assert "test-jwt-secret" not in dumped


class TestServerOptions:
    def test_workers_and_factory_are_passed(self):
        from run_api import uvicorn_options

        config = Config()
        config.api.workers = 3

        options = uvicorn_options(config)

        assert options["factory"] is True
        assert options["workers"] == 3
        assert options["log_level"] == "info"

    def test_debug_runs_single_worker(self):
        from run_api import uvicorn_options

        config = Config()
        config.api.debug = True

        options = uvicorn_options(config)

        assert options["workers"] == 1
        assert options["log_level"] == "debug"

    def test_debug_reaches_app(self, config):
        from content_ingest.api.main import create_app

        config.api.debug = True
        assert create_app(config).debug is True
