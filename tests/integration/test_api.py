"""
Integration tests for the HTTP surface.

The application runs in-process through FastAPI's TestClient with the real
services wired by DependencyContainer over the in-memory Supabase client,
a stub LLM provider and a mocked Business Profile adapter.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from replydesk.api.main import create_app
from replydesk.core.container import DependencyContainer
from replydesk.core.exceptions import RateLimitedError
from replydesk.models.schemas import PublishedReply
from tests.fakes import USER_ID

TOKEN = "tenant-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
CRON_AUTH = {"Authorization": "Bearer cron-secret"}


@pytest.fixture
def email_sender():
    sender = AsyncMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def container(settings, fake_supabase, stub_provider, mock_adapter, email_sender):
    fake_supabase.auth.tokens[TOKEN] = USER_ID
    return DependencyContainer(
        settings,
        supabase=fake_supabase,
        llm_provider=stub_provider,
        adapter=mock_adapter,
        email_sender=email_sender,
    )


@pytest.fixture
def client(container):
    app = create_app(container=container)
    with TestClient(app) as test_client:
        yield test_client


def seed_response(fake_supabase, review, business, status="generated"):
    return fake_supabase.seed(
        "responses",
        review_id=review.id,
        business_id=business.id,
        content="Thanks for visiting!",
        status=status,
    )


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert set(body["services"]) == {"supabase", "work_queue", "scheduler"}

    def test_liveness(self, client):
        assert client.get("/health/live").json() == {"status": "alive"}


class TestCronAuth:
    """Cron endpoints require the shared secret."""

    def test_missing_secret(self, client):
        response = client.post("/api/cron/reviews")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_secret(self, client):
        response = client.post("/api/cron/reviews", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_review_sync_accepts_both_verbs(self, client, method):
        response = client.request(method, "/api/cron/reviews", headers=CRON_AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["synced"] == 0
        assert body["businesses"] == []

    def test_digest(self, client):
        response = client.post("/api/cron/digest", headers=CRON_AUTH)

        assert response.status_code == 200
        assert response.json()["daily_sent"] == 0

    def test_unset_secret_rejects_everything(self, settings, container):
        container._settings = settings.model_copy(update={"cron_secret": None})
        app = create_app(container=container)

        with TestClient(app) as client:
            response = client.post("/api/cron/reviews", headers=CRON_AUTH)

        assert response.status_code == 401


class TestTenantAuth:
    def test_missing_token(self, client, review):
        response = client.post(f"/api/v1/reviews/{review.id}/responses")

        assert response.status_code == 401
        assert response.json()["message"] == "Authentication required."

    def test_unknown_token(self, client, review):
        response = client.post(
            f"/api/v1/reviews/{review.id}/responses",
            headers={"Authorization": "Bearer forged"},
        )

        assert response.status_code == 401


class TestResponseEndpoints:
    """Generate, edit, approve and publish over HTTP."""

    def test_generate_then_conflict(self, client, review):
        first = client.post(f"/api/v1/reviews/{review.id}/responses", headers=AUTH)
        second = client.post(f"/api/v1/reviews/{review.id}/responses", headers=AUTH)

        assert first.status_code == 201
        assert first.json()["status"] == "generated"
        assert first.json()["content"] == "Thank you for your kind words!"
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

    def test_quota_exhausted(self, client, review, fake_supabase):
        for _ in range(5):
            fake_supabase.seed("usage_logs", user_id=USER_ID, action="ai_response")

        response = client.post(f"/api/v1/reviews/{review.id}/responses", headers=AUTH)

        assert response.status_code == 402
        assert "Upgrade your plan" in response.json()["message"]

    def test_unknown_response(self, client):
        response = client.post("/api/v1/responses/missing/approve", headers=AUTH)

        assert response.status_code == 404
        body = response.json()
        assert body["message"] == "Response not found."
        assert body["detail"] is None

    def test_edit_with_stale_version(self, client, review, business, fake_supabase):
        row = seed_response(fake_supabase, review, business)

        first = client.patch(
            f"/api/v1/responses/{row['id']}",
            json={"content": "Thanks so much!", "expected_version": 1},
            headers=AUTH,
        )
        stale = client.patch(
            f"/api/v1/responses/{row['id']}",
            json={"content": "Overwrite", "expected_version": 1},
            headers=AUTH,
        )

        assert first.status_code == 200
        assert first.json()["version"] == 2
        assert stale.status_code == 409
        assert fake_supabase.rows("responses")[0]["content"] == "Thanks so much!"

    def test_empty_edit_is_a_validation_error(self, client, review, business, fake_supabase):
        row = seed_response(fake_supabase, review, business)

        response = client.patch(f"/api/v1/responses/{row['id']}", json={"content": ""}, headers=AUTH)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_publish_generated_is_refused(self, client, review, business, fake_supabase, mock_adapter):
        row = seed_response(fake_supabase, review, business)

        response = client.post(f"/api/v1/responses/{row['id']}/publish", headers=AUTH)

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"
        mock_adapter.post_reply.assert_not_awaited()

    def test_publish_rate_limited(self, client, review, business, fake_supabase, mock_adapter):
        row = seed_response(fake_supabase, review, business, status="approved")
        mock_adapter.post_reply.side_effect = RateLimitedError(
            "Rate limited by Business Profile API", retry_after=30
        )

        response = client.post(f"/api/v1/responses/{row['id']}/publish", headers=AUTH)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "30"
        assert fake_supabase.rows("responses")[0]["status"] == "approved"

    def test_approve_then_publish(self, client, review, business, fake_supabase, mock_adapter):
        mock_adapter.post_reply.return_value = PublishedReply(
            external_reply_id="accounts/111/locations/222/reviews/rev-1/reply",
            published_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        row = seed_response(fake_supabase, review, business)

        approved = client.post(f"/api/v1/responses/{row['id']}/approve", headers=AUTH)
        published = client.post(f"/api/v1/responses/{row['id']}/publish", headers=AUTH)

        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert published.status_code == 200
        assert published.json()["status"] == "published"
        assert fake_supabase.rows("reviews")[0]["is_responded"] is True

    def test_reject(self, client, review, business, fake_supabase):
        row = seed_response(fake_supabase, review, business)

        response = client.post(
            f"/api/v1/responses/{row['id']}/reject", json={"reason": "Too generic"}, headers=AUTH
        )

        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Too generic"


class TestBusinessEndpoints:
    def test_create_business(self, client, fake_supabase):
        response = client.post(
            "/api/v1/businesses",
            json={"name": "Circolo Popolare", "gmb_location_id": "locations/9"},
            headers=AUTH,
        )

        assert response.status_code == 201
        assert response.json()["name"] == "Circolo Popolare"
        assert fake_supabase.rows("businesses")[0]["user_id"] == USER_ID

    def test_location_limit(self, client, business):
        response = client.post("/api/v1/businesses", json={"name": "Second Site"}, headers=AUTH)

        assert response.status_code == 402
        assert "Upgrade your plan to add more" in response.json()["message"]

    def test_sync_other_tenants_business(self, client, fake_supabase):
        row = fake_supabase.seed("businesses", user_id="someone-else", name="Not Mine")

        response = client.post(f"/api/v1/businesses/{row['id']}/sync", headers=AUTH)

        assert response.status_code == 404


class TestUsageEndpoint:
    def test_usage(self, client, business, fake_supabase):
        fake_supabase.seed("usage_logs", user_id=USER_ID, action="ai_response")
        fake_supabase.seed("usage_logs", user_id=USER_ID, action="email_sent")

        response = client.get("/api/v1/usage", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["responses"]["plan"] == "free"
        assert body["responses"]["used"] == 1
        assert body["responses"]["remaining"] == 4
        assert body["locations"]["used"] == 1
        assert body["locations"]["allowed"] is False
