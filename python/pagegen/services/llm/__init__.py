"""Content provider layer.

Provides:

- OpenAIAdapter: raw HTTP calls for chat completions and image generation
- ContentProviderClient: retry policy, error normalization, observability
- Error taxonomy (ProviderError and subclasses)

Usage:
    from pagegen.services.llm import ContentProviderClient, GenerationOptions

    client = create_provider_client(httpx.Client())
    response = client.generate("Write a headline", GenerationOptions(max_tokens=200))

Rules:
- Retries live only in ContentProviderClient
- No DB access in this layer
- No logging of prompts or completions
"""

from pagegen.services.llm.client import (
    ContentProviderClient,
    clean_alt_text,
    create_provider_client,
    truncate_on_word,
)
from pagegen.services.llm.errors import (
    InvalidCredentialsError,
    InvalidResponseError,
    ProviderDownError,
    ProviderError,
    ProviderNetworkError,
    ProviderTimeoutError,
    RateLimitError,
    classify_status,
)
from pagegen.services.llm.openai_adapter import OpenAIAdapter
from pagegen.services.llm.types import (
    DEFAULT_MODEL,
    GenerationOptions,
    GenerationResponse,
    LLMRequest,
    LLMUsage,
    Turn,
)

__all__ = [
    # Client
    "ContentProviderClient",
    "create_provider_client",
    "clean_alt_text",
    "truncate_on_word",
    # Adapter
    "OpenAIAdapter",
    # Errors
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderNetworkError",
    "ProviderDownError",
    "InvalidCredentialsError",
    "InvalidResponseError",
    "RateLimitError",
    "classify_status",
    # Types
    "DEFAULT_MODEL",
    "GenerationOptions",
    "GenerationResponse",
    "LLMRequest",
    "LLMUsage",
    "Turn",
]
