"""Tests for the HTTP surface."""

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import WEBHOOK_TOKEN
from content_ingest.api.main import create_app
from content_ingest.api.security import create_access_token


def _auth(config, account_id="acct-1", is_operator=False):
    token = create_access_token(config.api, account_id, is_operator=is_operator)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(config, services):
    app = create_app(config, services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestPublicEndpoints:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_webhook_reachability_check(self, client):
        response = await client.get("/api/v1/webhooks/transcription")
        assert response.status_code == 200

    async def test_webhook_rejects_bad_token(self, client):
        response = await client.post(
            "/api/v1/webhooks/transcription",
            params={"token": "nope"},
            json={"metadata": {"request_id": "req-1"}},
        )
        assert response.status_code == 401

    async def test_webhook_rejects_malformed_json(self, client):
        response = await client.post(
            "/api/v1/webhooks/transcription",
            params={"token": WEBHOOK_TOKEN},
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    async def test_webhook_applies_callback(self, client, services, make_content):
        content = await make_content(
            url="https://cdn.example.com/ep1.mp3",
            type="podcast",
            status="transcribing",
            transcript_id="req-1",
        )
        payload = {
            "metadata": {"request_id": "req-1", "duration": 30},
            "results": {
                "utterances": [
                    {"start": 1.0, "speaker": 0, "transcript": "A calm conversation about bread baking."}
                ]
            },
        }

        response = await client.post(
            "/api/v1/webhooks/transcription", params={"token": WEBHOOK_TOKEN}, json=payload
        )

        assert response.status_code == 200
        assert response.json()["contentId"] == content.id
        row = await services.contents.get(content.id)
        assert row.status == "complete"


class TestBatchEndpoint:
    async def test_requires_authentication(self, client):
        response = await client.post("/api/v1/batch", json={"urls": ["https://example.com"]})
        assert response.status_code == 401

    async def test_submits_batch(self, client, config, services, make_account):
        await make_account("acct-1", "starter")

        response = await client.post(
            "/api/v1/batch",
            json={"urls": ["https://example.com/a", "https://example.com/a"]},
            headers=_auth(config),
        )
        await services.supervisor.join()

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "starter"
        assert body["batchLimit"] == 10
        assert body["deduplicated"] == ["https://example.com/a"]
        assert len(body["results"]) == 1

    async def test_tier_batch_limit_is_403(self, client, config, services):
        urls = [f"https://example.com/{i}" for i in range(4)]
        response = await client.post("/api/v1/batch", json={"urls": urls}, headers=_auth(config))

        assert response.status_code == 403
        assert response.json()["error"] == "BATCH_LIMIT_EXCEEDED"

    async def test_rate_limited_after_five_requests(self, client, config):
        headers = {**_auth(config), "X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
        for _ in range(5):
            response = await client.post(
                "/api/v1/batch", json={"urls": ["javascript:alert(1)"]}, headers=headers
            )
            assert response.status_code == 400

        response = await client.post(
            "/api/v1/batch", json={"urls": ["javascript:alert(1)"]}, headers=headers
        )
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1


class TestUsageEndpoint:
    async def test_reports_usage(self, client, config, services):
        response = await client.get("/api/v1/usage", headers=_auth(config))

        assert response.status_code == 200
        body = response.json()
        assert body["tier"] == "free"
        assert body["period"] == services.ledger.period()
        assert body["usage"]["analyses_count"] == {"current": 0, "limit": 5}


class TestContentEndpoints:
    async def test_owner_sees_status(self, client, config, make_content):
        content = await make_content(status="complete", title="Gardens")

        response = await client.get(f"/api/v1/content/{content.id}/status", headers=_auth(config))

        assert response.status_code == 200
        assert response.json()["status"] == "complete"

    async def test_other_account_gets_404(self, client, config, make_content):
        content = await make_content()

        response = await client.get(
            f"/api/v1/content/{content.id}/status", headers=_auth(config, "acct-2")
        )

        assert response.status_code == 404

    async def test_retry_requires_operator(self, client, config, make_content):
        content = await make_content(status="error")

        response = await client.post(f"/api/v1/content/{content.id}/retry", headers=_auth(config))

        assert response.status_code == 403

    async def test_operator_retry(self, client, config, services, make_content):
        content = await make_content(status="error", full_text="PROCESSING_FAILED::ARTICLE::TIMEOUT")

        response = await client.post(
            f"/api/v1/content/{content.id}/retry",
            headers=_auth(config, "ops-1", is_operator=True),
        )
        await services.supervisor.join()

        assert response.status_code == 200
        assert response.json() == {"contentId": content.id, "status": "pending"}

    async def test_retry_of_complete_is_conflict(self, client, config, make_content):
        content = await make_content(status="complete")

        response = await client.post(
            f"/api/v1/content/{content.id}/retry",
            headers=_auth(config, "ops-1", is_operator=True),
        )

        assert response.status_code == 409
