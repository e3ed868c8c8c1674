"""Unit tests for AI response generation."""

import pytest

from replydesk.billing.quota import QuotaEvaluator
from replydesk.core.exceptions import (
    ConflictError,
    GenerationFailedError,
    NotFoundError,
    QuotaExceededError,
)
from replydesk.models.schemas import BrandSettings, ResponseStatus
from replydesk.services.response_generator import (
    ReviewResponseGenerator,
    SYSTEM_PROMPT,
    calculate_cost_cents,
)
from tests.fakes import OTHER_USER_ID, USER_ID


@pytest.fixture
def generator(stub_provider, store):
    return ReviewResponseGenerator(stub_provider, store, QuotaEvaluator(store))


class TestCostCalculation:
    """Tests for calculate_cost_cents."""

    def test_prices_seventy_percent_as_output(self):
        # 300k input at $0.15/1K + 700k output at $0.60/1K = $465
        assert calculate_cost_cents(1_000_000, 0.15, 0.6) == 46500

    def test_small_calls_round_to_zero(self):
        assert calculate_cost_cents(120, 0.00015, 0.0006) == 0

    def test_typical_reply_is_sub_cent(self, settings):
        """A few hundred tokens at the default per-1K prices costs well under a cent."""
        cost = calculate_cost_cents(
            300, settings.llm_input_price_per_1k, settings.llm_output_price_per_1k
        )

        assert cost == 0

    def test_zero_tokens(self):
        assert calculate_cost_cents(0, 0.15, 0.6) == 0


class TestBuildPrompt:
    """Tests for prompt construction."""

    def test_default_brand_voice(self, generator, review, business):
        brand = BrandSettings(business_id=business.id)

        prompt = generator.build_prompt(review, business, brand)

        assert '"Test Restaurant"' in prompt
        assert "Great food and excellent service!" in prompt
        assert "professional" in prompt
        assert "under 150 words" in prompt
        assert "Never mention the rating number" in prompt
        assert "coupon" not in prompt

    def test_brand_settings_are_applied(self, generator, review, business):
        brand = BrandSettings(
            business_id=business.id,
            tone="friendly",
            greeting="Hi there!",
            closing="See you soon, The Team",
            response_length="short",
            include_coupon=True,
            coupon_code="WELCOME10",
        )

        prompt = generator.build_prompt(review, business, brand)

        assert "warm, friendly tone" in prompt
        assert 'Use this greeting: "Hi there!"' in prompt
        assert 'End with: "See you soon, The Team"' in prompt
        assert "under 75 words" in prompt
        assert "WELCOME10" in prompt

    def test_unknown_tone_falls_back_to_professional(self, generator, review, business):
        brand = BrandSettings(business_id=business.id, tone="sarcastic", response_length="epic")

        prompt = generator.build_prompt(review, business, brand)

        assert "professional, formal tone" in prompt
        assert "under 150 words" in prompt

    def test_coupon_flag_without_code(self, generator, review, business):
        brand = BrandSettings(business_id=business.id, include_coupon=True)

        assert "coupon" not in generator.build_prompt(review, business, brand)


class TestGenerate:
    """Tests for ReviewResponseGenerator.generate."""

    @pytest.mark.asyncio
    async def test_persists_generated_response(self, generator, stub_provider, review, business, fake_supabase):
        response = await generator.generate(review, business, BrandSettings(business_id=business.id))

        assert response.status == ResponseStatus.GENERATED
        assert response.content == "Thank you for your kind words!"
        assert response.version == 1
        assert response.ai_tokens_used == 120
        assert response.ai_model == "stub-model"
        assert [e.content for e in response.edit_history] == [response.content]

        assert len(stub_provider.calls) == 1
        call = stub_provider.calls[0]
        assert call["system"] == SYSTEM_PROMPT
        assert call["max_tokens"] == 300
        assert call["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_records_usage(self, generator, review, business, fake_supabase):
        await generator.generate(review, business, BrandSettings(business_id=business.id))

        ledger = fake_supabase.rows("usage_logs")
        assert len(ledger) == 1
        assert ledger[0]["action"] == "ai_response"
        assert ledger[0]["user_id"] == USER_ID
        assert ledger[0]["business_id"] == business.id
        assert ledger[0]["tokens_used"] == 120

    @pytest.mark.asyncio
    async def test_in_flight_response_conflicts(self, generator, stub_provider, review, business, fake_supabase):
        """A second draft while one is unpublished is refused before calling the model."""
        brand = BrandSettings(business_id=business.id)
        await generator.generate(review, business, brand)

        with pytest.raises(ConflictError):
            await generator.generate(review, business, brand)

        assert len(stub_provider.calls) == 1
        assert len(fake_supabase.rows("usage_logs")) == 1

    @pytest.mark.asyncio
    async def test_after_publish_a_new_draft_is_allowed(self, generator, review, business, fake_supabase):
        fake_supabase.seed(
            "responses",
            review_id=review.id,
            business_id=business.id,
            content="Old reply",
            status="published",
        )

        response = await generator.generate(review, business, BrandSettings(business_id=business.id))

        assert response.status == ResponseStatus.GENERATED
        assert len(fake_supabase.rows("responses")) == 2

    @pytest.mark.asyncio
    async def test_empty_completion_fails(self, generator, stub_provider, review, business, fake_supabase):
        """Whitespace-only output persists nothing and bills nothing."""
        stub_provider.text = "   "

        with pytest.raises(GenerationFailedError):
            await generator.generate(review, business, BrandSettings(business_id=business.id))

        assert fake_supabase.rows("responses") == []
        assert fake_supabase.rows("usage_logs") == []

    @pytest.mark.asyncio
    async def test_provider_failure_propagates(self, generator, stub_provider, review, business, fake_supabase):
        async def boom(*args, **kwargs):
            raise GenerationFailedError("OpenAI request failed: timeout")

        stub_provider.complete = boom

        with pytest.raises(GenerationFailedError):
            await generator.generate(review, business, BrandSettings(business_id=business.id))

        assert fake_supabase.rows("usage_logs") == []

    def test_storage_rejects_second_in_flight_row(self, store, review, business, fake_supabase):
        """The partial unique index backstops a race between two generators."""
        fake_supabase.seed("responses", review_id=review.id, business_id=business.id, content="A")

        with pytest.raises(ConflictError):
            store.insert_response({"review_id": review.id, "business_id": business.id, "content": "B"})


class TestGenerateForReview:
    """Tests for the ownership- and quota-gated entry point."""

    @pytest.mark.asyncio
    async def test_generates_for_owner(self, generator, review):
        response = await generator.generate_for_review(review.id, USER_ID)

        assert response.review_id == review.id

    @pytest.mark.asyncio
    async def test_unknown_review(self, generator):
        with pytest.raises(NotFoundError):
            await generator.generate_for_review("missing", USER_ID)

    @pytest.mark.asyncio
    async def test_other_tenants_review_looks_missing(self, generator, review, stub_provider):
        with pytest.raises(NotFoundError):
            await generator.generate_for_review(review.id, OTHER_USER_ID)

        assert stub_provider.calls == []

    @pytest.mark.asyncio
    async def test_quota_exhausted(self, generator, review, stub_provider, fake_supabase):
        for _ in range(5):
            fake_supabase.seed("usage_logs", user_id=USER_ID, action="ai_response")

        with pytest.raises(QuotaExceededError):
            await generator.generate_for_review(review.id, USER_ID)

        assert stub_provider.calls == []
        assert fake_supabase.rows("responses") == []

    @pytest.mark.asyncio
    async def test_uses_saved_brand_settings(self, generator, review, business, stub_provider, fake_supabase):
        fake_supabase.seed("brand_settings", business_id=business.id, tone="casual", response_length="long")

        response = await generator.generate_for_review(review.id, USER_ID)

        assert response.tone == "casual"
        assert "under 250 words" in stub_provider.calls[0]["prompt"]
