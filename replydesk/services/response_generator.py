"""
Review Response Generator.

Drafts a reply to a stored review in the business's brand voice, persists it
as a ``generated`` response and records the token cost in the usage ledger.

Usage:
    generator = ReviewResponseGenerator(provider, store, quota)
    response = await generator.generate_for_review(review_id, actor_id)
"""

import math
from datetime import datetime, timezone
from typing import Optional

import structlog

from replydesk.billing.quota import QuotaEvaluator
from replydesk.core.exceptions import ConflictError, GenerationFailedError, NotFoundError
from replydesk.models.schemas import (
    BrandSettings,
    Business,
    Response,
    ResponseLength,
    ResponseStatus,
    ResponseTone,
    Review,
    UsageAction,
    UsageLedgerEntry,
)
from replydesk.monitoring.metrics import RESPONSES_GENERATED
from replydesk.services.llm import LLMProvider
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)


# =============================================================================
# Prompt
# =============================================================================

DEFAULT_TONE = ResponseTone.PROFESSIONAL

TONE_INSTRUCTIONS: dict[ResponseTone, str] = {
    ResponseTone.PROFESSIONAL: "Use a professional, formal tone. Be courteous and businesslike.",
    ResponseTone.FRIENDLY: "Use a warm, friendly tone. Be personable and approachable.",
    ResponseTone.CASUAL: "Use a casual, relaxed tone. Be conversational and laid-back.",
    ResponseTone.FORMAL: "Use a very formal, polite tone. Be respectful and elegant.",
}

LENGTH_BUDGETS: dict[ResponseLength, int] = {
    ResponseLength.SHORT: 75,
    ResponseLength.MEDIUM: 150,
    ResponseLength.LONG: 250,
}

SYSTEM_PROMPT = "You are a professional business owner responding to customer reviews."

# Share of billed tokens priced at the output rate
OUTPUT_TOKEN_SHARE = 0.7


def calculate_cost_cents(tokens: int, input_per_1k: float, output_per_1k: float) -> int:
    """Estimated cost in cents, pricing 70% of tokens as output and the rest as input."""
    output_tokens = math.floor(tokens * OUTPUT_TOKEN_SHARE)
    input_tokens = tokens - output_tokens
    dollars = (input_tokens * input_per_1k + output_tokens * output_per_1k) / 1000
    # Sub-cent calls (most single replies at gpt-4o-mini rates) record 0
    return round(dollars * 100)


# =============================================================================
# Generator
# =============================================================================


class ReviewResponseGenerator:
    """Generates brand-voiced replies through an injected LLM provider."""

    def __init__(
        self,
        provider: LLMProvider,
        store: SupabaseStore,
        quota: QuotaEvaluator,
        max_tokens: int = 300,
        temperature: float = 0.7,
        input_price_per_1k: float = 0.00015,
        output_price_per_1k: float = 0.0006,
    ):
        self._provider = provider
        self._store = store
        self._quota = quota
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._input_price = input_price_per_1k
        self._output_price = output_price_per_1k

    @staticmethod
    def _resolve_tone(brand: BrandSettings) -> ResponseTone:
        try:
            return ResponseTone((brand.tone or "").lower())
        except ValueError:
            return DEFAULT_TONE

    @staticmethod
    def _resolve_length(brand: BrandSettings) -> int:
        try:
            return LENGTH_BUDGETS[ResponseLength((brand.response_length or "").lower())]
        except ValueError:
            return LENGTH_BUDGETS[ResponseLength.MEDIUM]

    def build_prompt(
        self,
        review: Review,
        business: Business,
        brand: BrandSettings,
        tone: Optional[ResponseTone] = None,
    ) -> str:
        """Construct the user message sent to the model."""
        tone = tone or self._resolve_tone(brand)
        word_budget = self._resolve_length(brand)

        parts = [f'You are a business called "{business.name}" responding to a customer review.']
        if brand.greeting:
            parts.append(f'Use this greeting: "{brand.greeting}"')
        parts.append(f'Review: "{review.review_text or "(no written comment)"}"')
        parts.append(f"Rating: {review.star_rating}/5 stars")
        parts.append(TONE_INSTRUCTIONS[tone])

        closing = (
            f'End with: "{brand.closing}"' if brand.closing else "End with a friendly closing"
        )
        guidelines = [
            "Thank the customer for their feedback",
            "Address specific points they mentioned",
            "If negative, acknowledge their concerns, apologize and offer to make things right",
            "If positive, express gratitude and invite them to come back",
            closing,
            f"Keep the response under {word_budget} words",
            "Never mention the rating number in your response",
        ]
        if brand.include_coupon and brand.coupon_code:
            guidelines.append(
                f'Offer the coupon code "{brand.coupon_code}" for their next visit'
            )

        parts.append(
            "Guidelines:\n" + "\n".join(f"{i}. {g}" for i, g in enumerate(guidelines, start=1))
        )
        return "\n\n".join(parts)

    async def generate(
        self,
        review: Review,
        business: Business,
        brand: BrandSettings,
        actor_id: Optional[str] = None,
    ) -> Response:
        """
        Draft, persist and bill a response for a review.

        The caller is responsible for the quota check.

        Raises:
            ConflictError: The review already has an unpublished response.
            GenerationFailedError: The provider failed or returned nothing.
        """
        existing = self._store.get_in_flight_response(review.id)
        if existing is not None:
            raise ConflictError(
                "Review already has an unpublished response",
                {"review_id": review.id, "response_id": existing.id},
            )

        tone = self._resolve_tone(brand)
        prompt = self.build_prompt(review, business, brand, tone)
        completion = await self._provider.complete(
            SYSTEM_PROMPT,
            prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

        content = completion.text.strip()
        if not content:
            raise GenerationFailedError(
                "Model returned an empty reply",
                {"review_id": review.id, "model": completion.model},
            )

        now = datetime.now(timezone.utc).isoformat()
        response = self._store.insert_response(
            {
                "review_id": review.id,
                "business_id": business.id,
                "content": content,
                "tone": tone.value,
                "status": ResponseStatus.GENERATED.value,
                "ai_model": completion.model,
                "ai_tokens_used": completion.total_tokens,
                "edit_history": [{"content": content, "timestamp": now}],
                "version": 1,
            }
        )

        cost_cents = calculate_cost_cents(
            completion.total_tokens, self._input_price, self._output_price
        )
        self._store.append_usage(
            UsageLedgerEntry(
                user_id=business.user_id,
                business_id=business.id,
                action=UsageAction.AI_RESPONSE,
                tokens_used=completion.total_tokens,
                cost_cents=cost_cents,
            )
        )

        RESPONSES_GENERATED.labels(provider=self._provider.name).inc()
        logger.info(
            "response_generated",
            response_id=response.id,
            review_id=review.id,
            business_id=business.id,
            actor_id=actor_id,
            tokens=completion.total_tokens,
            cost_cents=cost_cents,
        )
        return response

    async def generate_for_review(self, review_id: str, actor_id: str) -> Response:
        """
        Generate a response for a review the actor owns, behind the quota gate.

        Raises:
            NotFoundError: Unknown review, or one owned by another tenant.
            QuotaExceededError: The plan's response limit is reached.
            ConflictError, GenerationFailedError: See ``generate``.
        """
        review = self._store.get_review(review_id)
        if review is None:
            raise NotFoundError("review", review_id)
        business = self._store.get_business(review.business_id)
        if business is None or business.user_id != actor_id:
            raise NotFoundError("review", review_id)

        await self._quota.require_response_quota(actor_id)

        brand = self._store.get_brand_settings(business.id)
        return await self.generate(review, business, brand, actor_id=actor_id)
