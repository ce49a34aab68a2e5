"""OpenAI HTTP adapter.

Endpoints:
- POST {base_url}/chat/completions
- POST {base_url}/images/generations
Headers: Authorization: Bearer <key>, Content-Type: application/json

Chat request body:
{
  "model": "<model>",
  "messages": [{"role": "system", "content": "..."}, {"role": "user", "content": "..."}],
  "temperature": 0.7,
  "max_tokens": 4096,
  "top_p": 1,
  "frequency_penalty": 0.3,
  "presence_penalty": 0.3
}

Chat response - extract:
- content = choices[0].message.content
- usage = {prompt_tokens, completion_tokens, total_tokens} (required)
- model = body model (falls back to the requested model)
- provider_request_id = response header x-request-id or body id

Rules:
- No retries inside the adapter
- No logging of request/response bodies
- Raw httpx errors bubble up to the client for retry and classification
"""

import httpx

from pagegen.services.llm.errors import InvalidResponseError
from pagegen.services.llm.types import (
    IMAGE_MODEL,
    GenerationResponse,
    LLMRequest,
    Turn,
)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIAdapter:
    """OpenAI API adapter for chat completions and image generation.

    Handles conversion between Turn objects and OpenAI message format,
    and parses non-streaming responses.
    """

    def __init__(self, client: httpx.Client, base_url: str = DEFAULT_BASE_URL):
        """Initialize adapter with shared HTTP client.

        Args:
            client: Shared httpx.Client for connection pooling.
            base_url: API root without trailing slash.
        """
        self._client = client
        self._base_url = base_url.rstrip("/")

    @property
    def chat_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    @property
    def images_url(self) -> str:
        return f"{self._base_url}/images/generations"

    def generate(self, req: LLMRequest, *, api_key: str, timeout_s: int) -> GenerationResponse:
        """Non-streaming chat completion."""
        response = self._client.post(
            self.chat_url,
            headers=self._build_headers(api_key),
            json=self._build_request_body(req),
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Provider returned a body that is not valid JSON",
                status_code=response.status_code,
            ) from e

        return self._parse_response(data, response.headers, req.options.model)

    def generate_image(
        self,
        prompt: str,
        *,
        api_key: str,
        timeout_s: int,
        size: str = "1024x1024",
        quality: str = "standard",
    ) -> str:
        """Generate one image and return its temporary URL."""
        response = self._client.post(
            self.images_url,
            headers=self._build_headers(api_key),
            json={
                "model": IMAGE_MODEL,
                "prompt": prompt,
                "n": 1,
                "size": size,
                "quality": quality,
            },
            timeout=httpx.Timeout(timeout_s, connect=10.0),
        )
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Image endpoint returned a body that is not valid JSON",
                status_code=response.status_code,
            ) from e

        items = data.get("data") if isinstance(data, dict) else None
        if not items or not isinstance(items, list) or not items[0].get("url"):
            raise InvalidResponseError("Image response missing data[0].url")
        return items[0]["url"]

    def _build_headers(self, api_key: str) -> dict[str, str]:
        """Build request headers."""
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, req: LLMRequest) -> dict:
        """Build request body from LLMRequest."""
        options = req.options
        return {
            "model": options.model,
            "messages": [self._turn_to_message(turn) for turn in req.messages],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
        }

    def _turn_to_message(self, turn: Turn) -> dict[str, str]:
        """Convert Turn to OpenAI message format.

        OpenAI uses the same role names as our Turn type.
        """
        return {
            "role": turn.role,
            "content": turn.content,
        }

    def _parse_response(
        self, data: dict, headers: httpx.Headers, requested_model: str
    ) -> GenerationResponse:
        """Parse non-streaming response."""
        if not isinstance(data, dict):
            raise InvalidResponseError("Provider response is not a JSON object")

        choices = data.get("choices") or []
        content = None
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content")
        if content is None:
            raise InvalidResponseError("Provider response missing choices[0].message.content")

        usage_data = data.get("usage")
        if not isinstance(usage_data, dict):
            raise InvalidResponseError("Provider response missing usage")

        prompt_tokens = int(usage_data.get("prompt_tokens") or 0)
        completion_tokens = int(usage_data.get("completion_tokens") or 0)
        total_tokens = int(usage_data.get("total_tokens") or prompt_tokens + completion_tokens)

        return GenerationResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            model=data.get("model") or requested_model,
            provider_request_id=headers.get("x-request-id") or data.get("id"),
        )
