"""Review sentiment classification."""

import structlog

from replydesk.models.schemas import Review, ReviewSentiment
from replydesk.services.llm import LLMProvider
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)

SENTIMENT_SYSTEM_PROMPT = (
    "Analyze the sentiment of this review. "
    "Respond with only one word: positive, neutral, or negative."
)


def sentiment_from_rating(star_rating: int) -> ReviewSentiment:
    """Baseline classification: 4-5 positive, 3 neutral, 1-2 negative."""
    if star_rating >= 4:
        return ReviewSentiment.POSITIVE
    if star_rating == 3:
        return ReviewSentiment.NEUTRAL
    return ReviewSentiment.NEGATIVE


def parse_sentiment(text: str) -> ReviewSentiment:
    answer = (text or "").strip().lower()
    if "positive" in answer:
        return ReviewSentiment.POSITIVE
    if "negative" in answer:
        return ReviewSentiment.NEGATIVE
    return ReviewSentiment.NEUTRAL


class SemanticSentimentClassifier:
    """
    Overrides the rating-based sentiment of newly inserted reviews.

    Runs from the background work queue. Reviews without text keep their
    rating-based sentiment.
    """

    def __init__(self, provider: LLMProvider, store: SupabaseStore):
        self._provider = provider
        self._store = store

    async def classify(self, text: str) -> ReviewSentiment:
        completion = await self._provider.complete(
            SENTIMENT_SYSTEM_PROMPT, text, max_tokens=10, temperature=0.0
        )
        return parse_sentiment(completion.text)

    async def reclassify_new_review(self, review: Review) -> None:
        if not review.review_text:
            return
        sentiment = await self.classify(review.review_text)
        if sentiment != review.sentiment:
            self._store.set_review_sentiment(review.id, sentiment)
            logger.info(
                "review_sentiment_overridden",
                review_id=review.id,
                baseline=review.sentiment.value if review.sentiment else None,
                semantic=sentiment.value,
            )
