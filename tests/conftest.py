"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Settings built without reading the environment or .env
- fake_supabase: In-memory Supabase client
- store: SupabaseStore over the fake client
- business / review: A connected business and one of its reviews
- stub_provider: LLM provider returning a fixed completion
"""

from unittest.mock import AsyncMock

import pytest

from replydesk.config.settings import Settings
from replydesk.models.schemas import Business, Review
from replydesk.services.llm import Completion, LLMProvider
from replydesk.storage.supabase_store import SupabaseStore
from tests.fakes import USER_ID, FakeSupabase


class StubProvider(LLMProvider):
    """LLM provider with a canned reply that records its prompts."""

    name = "stub"

    def __init__(self, text: str = "Thank you for your kind words!", tokens: int = 120):
        super().__init__("stub-model")
        self.text = text
        self.tokens = tokens
        self.calls: list[dict] = []

    async def complete(self, system, prompt, *, max_tokens, temperature) -> Completion:
        self.calls.append(
            {"system": system, "prompt": prompt, "max_tokens": max_tokens, "temperature": temperature}
        )
        return Completion(text=self.text, model=self.model, total_tokens=self.tokens)


@pytest.fixture
def settings() -> Settings:
    """Return settings for testing, isolated from the environment."""
    return Settings(
        _env_file=None,
        supabase_url="https://test.supabase.co",
        supabase_key="service-role-key",
        cron_secret="cron-secret",
        google_client_id="client-id",
        google_client_secret="client-secret",
        openai_api_key="sk-test",
        sync_delay_seconds=0,
        digest_delay_seconds=0,
    )


@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store(fake_supabase) -> SupabaseStore:
    return SupabaseStore(fake_supabase)


@pytest.fixture
def business_row(fake_supabase) -> dict:
    """A connected, active business owned by USER_ID."""
    return fake_supabase.seed(
        "businesses",
        user_id=USER_ID,
        name="Test Restaurant",
        gmb_account_id="accounts/111",
        gmb_location_id="locations/222",
    )


@pytest.fixture
def business(business_row) -> Business:
    return Business.from_db_row(business_row)


@pytest.fixture
def review(fake_supabase, business) -> Review:
    """A stored 5-star review of the sample business."""
    row = fake_supabase.seed(
        "reviews",
        business_id=business.id,
        gmb_review_id="rev-1",
        author_name="Test User",
        star_rating=5,
        review_text="Great food and excellent service!",
        sentiment="positive",
    )
    return Review.from_db_row(row)


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def mock_adapter() -> AsyncMock:
    """Business Profile adapter with async methods mocked out."""
    adapter = AsyncMock()
    adapter.aclose = AsyncMock()
    return adapter
