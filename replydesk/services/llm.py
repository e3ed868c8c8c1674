"""
Language model providers.

Each provider wraps one vendor SDK behind ``complete()`` and is built once per
process by the dependency container. Vendor errors are converted to
GenerationFailedError so callers handle a single failure type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import anthropic
import structlog
from openai import AsyncOpenAI, OpenAIError

from replydesk.config.settings import Settings
from replydesk.core.exceptions import ConfigurationError, GenerationFailedError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Completion:
    text: str
    model: str
    total_tokens: int


class LLMProvider(ABC):
    """A single-shot chat completion backend."""

    name: str = "base"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        """Run one completion. Raises GenerationFailedError on any vendor error."""


class OpenAIProvider(LLMProvider):
    """Chat completions via the OpenAI async client."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: AsyncOpenAI | None = None):
        super().__init__(model)
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create the OpenAI async client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as e:
            logger.error("openai_completion_failed", model=self.model, error=str(e))
            raise GenerationFailedError(f"OpenAI request failed: {e}") from e

        text = ""
        if completion.choices and completion.choices[0].message.content:
            text = completion.choices[0].message.content
        tokens = completion.usage.total_tokens if completion.usage else 0
        return Completion(text=text, model=completion.model or self.model, total_tokens=tokens)


class AnthropicProvider(LLMProvider):
    """Messages API via the Anthropic async client."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
        client: anthropic.AsyncAnthropic | None = None,
    ):
        super().__init__(model)
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def complete(
        self,
        system: str,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
    ) -> Completion:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.AnthropicError as e:
            logger.error("anthropic_completion_failed", model=self.model, error=str(e))
            raise GenerationFailedError(f"Anthropic request failed: {e}") from e

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        tokens = message.usage.input_tokens + message.usage.output_tokens if message.usage else 0
        return Completion(text=text, model=message.model or self.model, total_tokens=tokens)


def build_provider(settings: Settings) -> LLMProvider:
    """Construct the configured provider."""
    if settings.llm_provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is required", config_key="anthropic_api_key")
        return AnthropicProvider(
            api_key=settings.anthropic_api_key.get_secret_value(),
            model=settings.anthropic_model,
        )

    if not settings.openai_api_key:
        raise ConfigurationError("OPENAI_API_KEY is required", config_key="openai_api_key")
    return OpenAIProvider(
        api_key=settings.openai_api_key.get_secret_value(),
        model=settings.openai_model,
    )
