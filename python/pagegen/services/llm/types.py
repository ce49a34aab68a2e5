"""Shared type definitions for the content provider layer.

- Turn: Provider-agnostic conversation turn
- GenerationOptions: Sampling parameters for one call (defaults match block generation)
- LLMRequest: Request to the adapter
- LLMUsage: Token usage from provider response
- GenerationResponse: Content plus token accounting returned to callers
"""

from dataclasses import dataclass, field, replace
from typing import Literal

DEFAULT_MODEL = "gpt-4-turbo-preview"
ALT_TEXT_MODEL = "gpt-4o-mini"
IMAGE_MODEL = "dall-e-3"


@dataclass(frozen=True)
class Turn:
    """Provider-agnostic conversation turn.

    Attributes:
        role: One of "system", "user", or "assistant"
        content: The text content of the turn
    """

    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class GenerationOptions:
    """Sampling options for a chat completion.

    Attributes:
        model: Model identifier
        temperature: Sampling temperature
        max_tokens: Completion cap
        top_p: Nucleus sampling
        frequency_penalty: Penalize repeated tokens
        presence_penalty: Penalize already-present topics
        system_message: Optional system turn prepended to the prompt
    """

    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 1.0
    frequency_penalty: float = 0.3
    presence_penalty: float = 0.3
    system_message: str | None = None

    def with_overrides(self, **overrides) -> "GenerationOptions":
        """Return a copy with the given fields replaced (None values ignored)."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class LLMRequest:
    """Request to the chat adapter.

    Attributes:
        messages: List of Turn objects (system turn first if present)
        options: Sampling options
    """

    messages: list[Turn]
    options: GenerationOptions = field(default_factory=GenerationOptions)


@dataclass(frozen=True)
class LLMUsage:
    """Token usage from provider response."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class GenerationResponse:
    """Complete response from a chat completion.

    Attributes:
        content: The generated text
        prompt_tokens / completion_tokens / total_tokens: Usage reported by the provider
        model: Model that actually served the request
        provider_request_id: Provider's request ID for debugging (may be None)
    """

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    provider_request_id: str | None = None

    @property
    def usage(self) -> LLMUsage:
        return LLMUsage(self.prompt_tokens, self.completion_tokens, self.total_tokens)
