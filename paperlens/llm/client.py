"""Generation service client with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides deterministic fallback when no key present for testing.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from openai import AsyncOpenAI

from paperlens.config import get_settings

logger = logging.getLogger(__name__)

FinishReason = Literal["stop", "length"]
ChatMessages = list[dict[str, Any]]


@dataclass(frozen=True)
class Completion:
    """Generated text plus why generation stopped."""

    text: str
    finish_reason: FinishReason = "stop"

    @property
    def truncated(self) -> bool:
        """True when the output token budget ran out."""
        return self.finish_reason == "length"


class GenerationClient(Protocol):
    """Protocol for text-generation service implementations."""

    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        model: str | None = None,
    ) -> Completion:
        """Run a single generation call.

        Args:
            messages: Chat messages; content may be a string or a list of
                text/image_url parts
            max_tokens: Output token budget for this call
            model: Optional model override

        Returns:
            Completion with text and normalized finish reason
        """
        ...

    def stream(
        self,
        messages: ChatMessages,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream generated text token by token."""
        ...


def _text_of(content: Any) -> str:
    """Flatten message content to its text parts."""
    if isinstance(content, str):
        return content
    parts = [p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text"]
    return "\n".join(parts)


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required).

    Echoes the last user message so formatting and redaction passes become
    identity transforms.
    """

    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        model: str | None = None,
    ) -> Completion:
        """Echo the last user message."""
        user_turns = [m for m in messages if m.get("role") == "user"]
        text = _text_of(user_turns[-1]["content"]) if user_turns else ""
        return Completion(text=text, finish_reason="stop")

    async def stream(
        self,
        messages: ChatMessages,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream a fixed placeholder answer word by word."""
        answer = "This is a stub response generated without a language model."
        for word in answer.split(" "):
            yield word + " "


class OpenAIClient:
    """OpenAI-backed generation client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: str | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Default model name
            base_url: Optional OpenAI-compatible endpoint
        """
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model

    async def complete(
        self,
        messages: ChatMessages,
        *,
        max_tokens: int,
        model: str | None = None,
    ) -> Completion:
        """Run a chat completion and normalize the finish reason."""
        response = await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,  # type: ignore[arg-type]
            max_completion_tokens=max_tokens,
        )

        choice = response.choices[0]
        text = choice.message.content or ""
        finish_reason: FinishReason = "length" if choice.finish_reason == "length" else "stop"

        if finish_reason == "length":
            logger.info(f"Completion truncated at {max_tokens} tokens ({len(text)} chars)")

        return Completion(text=text, finish_reason=finish_reason)

    async def stream(
        self,
        messages: ChatMessages,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream chat completion deltas."""
        stream = await self.client.chat.completions.create(
            model=model or self.model,
            messages=messages,  # type: ignore[arg-type]
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content or ""
            if delta:
                yield delta


async def get_llm_client() -> GenerationClient:
    """Factory function to get appropriate client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    settings = get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client for generation")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.openai_model,
            base_url=settings.openai_base_url,
        )
    else:
        logger.warning("No OpenAI API key configured, using deterministic stub client")
        return DeterministicStubClient()
