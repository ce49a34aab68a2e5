"""Content provider client with retry policy and error normalization.

Wraps the OpenAI adapter with the only retries in the pipeline:
- Timeout -> retry once after 5s, then ProviderTimeoutError
- Network/connection error -> retry up to 2 times (2s, 4s), then ProviderNetworkError
- Upstream 500/502/503/504 -> retry once after 2s, then ProviderDownError
- Upstream 401/403 -> InvalidCredentialsError, no retry
- Upstream 429 -> RateLimitError with retry_after hint, no retry (caller decides)
- Malformed body -> InvalidResponseError, no retry

Observability:
- Emits llm.request.started / llm.request.finished / llm.request.failed events
- All events use safe_kv() so prompts and completions never reach the logs
"""

import time
from collections.abc import Callable
from typing import TypeVar

import httpx

from pagegen.config import Settings, get_settings
from pagegen.logging import get_logger
from pagegen.services.llm.errors import (
    RETRYABLE_STATUS_CODES,
    InvalidCredentialsError,
    ProviderError,
    ProviderNetworkError,
    ProviderTimeoutError,
    RateLimitError,
    classify_status,
    extract_error_message,
    extract_retry_after,
)
from pagegen.services.llm.openai_adapter import OpenAIAdapter
from pagegen.services.llm.types import (
    ALT_TEXT_MODEL,
    GenerationOptions,
    GenerationResponse,
    LLMRequest,
    Turn,
)
from pagegen.services.redact import safe_kv

logger = get_logger(__name__)

T = TypeVar("T")

PROVIDER = "openai"

# Retry policy
TIMEOUT_RETRIES = 1
TIMEOUT_RETRY_DELAY_S = 5
NETWORK_RETRIES = 2
SERVER_ERROR_RETRIES = 1
SERVER_ERROR_RETRY_DELAY_S = 2

DEFAULT_TIMEOUT_S = 60
IMAGE_TIMEOUT_S = 120

ALT_TEXT_MAX_LENGTH = 125


class ContentProviderClient:
    """Stateless text (and image) generation client.

    Handles:
    - Retry of transient failures according to the policy above
    - Mapping of httpx failures into the provider error taxonomy
    - Observability event emission
    """

    def __init__(
        self,
        adapter: OpenAIAdapter,
        api_key: str | None,
        *,
        timeout_s: int = DEFAULT_TIMEOUT_S,
        default_options: GenerationOptions | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize client.

        Args:
            adapter: OpenAI adapter bound to a shared httpx.Client.
            api_key: Platform API key. None makes every call fail with InvalidCredentialsError.
            timeout_s: Per-request timeout in seconds.
            default_options: Options merged under per-call options.
            sleep: Sleep function used between retries (injectable for tests).
        """
        self._adapter = adapter
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._default_options = default_options or GenerationOptions()
        self._sleep = sleep

    @property
    def default_model(self) -> str:
        return self._default_options.model

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> GenerationResponse:
        """Generate content for a single prompt.

        Args:
            prompt: User prompt text.
            options: Sampling options. Defaults to the client's defaults.

        Returns:
            GenerationResponse with content and token usage.

        Raises:
            ProviderError: A subclass describing the normalized failure.
        """
        options = options or self._default_options
        messages = []
        if options.system_message:
            messages.append(Turn(role="system", content=options.system_message))
        messages.append(Turn(role="user", content=prompt))
        req = LLMRequest(messages=messages, options=options)

        base = {"provider": PROVIDER, "model_name": options.model, "operation": "chat"}
        logger.info(
            "llm.request.started",
            **safe_kv(**base, message_chars=sum(len(m.content) for m in messages)),
        )

        start = time.monotonic()
        response = self._call_with_retries(
            lambda api_key: self._adapter.generate(req, api_key=api_key, timeout_s=self._timeout_s),
            base=base,
            start=start,
        )

        logger.info(
            "llm.request.finished",
            **safe_kv(
                **base,
                outcome="success",
                latency_ms=int((time.monotonic() - start) * 1000),
                tokens_input=response.prompt_tokens,
                tokens_output=response.completion_tokens,
                tokens_total=response.total_tokens,
                provider_request_id=response.provider_request_id,
            ),
        )
        return response

    def generate_image(self, prompt: str) -> str:
        """Generate an image and return its (temporary) URL."""
        base = {"provider": PROVIDER, "model_name": "dall-e-3", "operation": "image"}
        logger.info("llm.request.started", **safe_kv(**base, message_chars=len(prompt)))

        start = time.monotonic()
        url = self._call_with_retries(
            lambda api_key: self._adapter.generate_image(
                prompt, api_key=api_key, timeout_s=max(self._timeout_s, IMAGE_TIMEOUT_S)
            ),
            base=base,
            start=start,
        )
        logger.info(
            "llm.request.finished",
            **safe_kv(**base, outcome="success", latency_ms=int((time.monotonic() - start) * 1000)),
        )
        return url

    def generate_alt_text(self, metadata: dict) -> str:
        """Generate short alt text for an image from its page context.

        Args:
            metadata: Keys image_title, tags, page_title, focus_keyword, topic (all optional).

        Returns:
            Alt text of at most 125 characters, without surrounding quotes.
        """
        options = GenerationOptions(
            model=ALT_TEXT_MODEL,
            temperature=0.7,
            max_tokens=50,
            frequency_penalty=0.0,
            presence_penalty=0.0,
            system_message=(
                "You write accessible, descriptive image alt text for an online catalog. "
                "Reply with the alt text only."
            ),
        )
        response = self.generate(build_alt_text_prompt(metadata), options)
        return clean_alt_text(response.content)

    def _call_with_retries(self, call: Callable[[str], T], *, base: dict, start: float) -> T:
        """Run an adapter call under the retry policy."""
        if not self._api_key:
            self._log_failure(base, start, InvalidCredentialsError.code.value, attempts=0)
            raise InvalidCredentialsError("No API key configured for the content provider")

        timeout_retries = 0
        network_retries = 0
        server_retries = 0

        while True:
            attempts = 1 + timeout_retries + network_retries + server_retries
            try:
                return call(self._api_key)

            except httpx.TimeoutException as e:
                if timeout_retries < TIMEOUT_RETRIES:
                    timeout_retries += 1
                    logger.warning("llm.request.retry", **safe_kv(**base, reason="timeout"))
                    self._sleep(TIMEOUT_RETRY_DELAY_S)
                    continue
                self._log_failure(base, start, ProviderTimeoutError.code.value, attempts)
                raise ProviderTimeoutError(
                    f"Request timed out after {self._timeout_s}s", provider=PROVIDER
                ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in RETRYABLE_STATUS_CODES and server_retries < SERVER_ERROR_RETRIES:
                    server_retries += 1
                    logger.warning(
                        "llm.request.retry",
                        **safe_kv(**base, reason="server_error", status_code=status_code),
                    )
                    self._sleep(SERVER_ERROR_RETRY_DELAY_S)
                    continue

                json_body = _safe_parse_json(e.response)
                error_cls = classify_status(status_code)
                message = extract_error_message(json_body, status_code)
                self._log_failure(base, start, error_cls.code.value, attempts, status_code)

                if error_cls is RateLimitError:
                    raise RateLimitError(
                        message,
                        retry_after=extract_retry_after(
                            json_body, e.response.headers.get("retry-after")
                        ),
                        provider=PROVIDER,
                    ) from e
                raise error_cls(message, status_code=status_code, provider=PROVIDER) from e

            except httpx.TransportError as e:
                if network_retries < NETWORK_RETRIES:
                    network_retries += 1
                    delay = 2**network_retries
                    logger.warning(
                        "llm.request.retry",
                        **safe_kv(**base, reason="network", delay_s=delay),
                    )
                    self._sleep(delay)
                    continue
                self._log_failure(base, start, ProviderNetworkError.code.value, attempts)
                raise ProviderNetworkError(
                    f"Network error: {type(e).__name__}", provider=PROVIDER
                ) from e

            except ProviderError as e:
                self._log_failure(base, start, e.code.value, attempts)
                raise

    def _log_failure(
        self,
        base: dict,
        start: float,
        error_class: str,
        attempts: int,
        status_code: int | None = None,
    ) -> None:
        logger.error(
            "llm.request.failed",
            **safe_kv(
                **base,
                outcome="error",
                error_class=error_class,
                status_code=status_code,
                attempts=attempts,
                latency_ms=int((time.monotonic() - start) * 1000),
            ),
        )


def _safe_parse_json(response: httpx.Response) -> dict | None:
    """Safely parse JSON from response, returning None on failure."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def build_alt_text_prompt(metadata: dict) -> str:
    """Build the user prompt for alt text generation."""
    lines = ["Write alt text (max 125 characters) for an image used on a catalog page."]
    if metadata.get("image_title"):
        lines.append(f"Image title: {metadata['image_title']}")
    if metadata.get("tags"):
        lines.append(f"Image tags: {', '.join(metadata['tags'])}")
    if metadata.get("page_title"):
        lines.append(f"Page title: {metadata['page_title']}")
    if metadata.get("focus_keyword"):
        lines.append(f"Focus keyword: {metadata['focus_keyword']}")
    if metadata.get("topic"):
        lines.append(f"Topic: {metadata['topic']}")
    lines.append("Describe what the image shows. Do not start with 'Image of'. No quotes.")
    return "\n".join(lines)


def clean_alt_text(text: str) -> str:
    """Strip quotes and whitespace, then cap at 125 chars on a word boundary."""
    cleaned = text.strip().strip("\"'").strip()
    return truncate_on_word(cleaned, ALT_TEXT_MAX_LENGTH)


def truncate_on_word(text: str, limit: int) -> str:
    """Cut text to at most `limit` chars, backing up to the last space when possible."""
    if len(text) <= limit:
        return text
    cut = text[:limit]
    last_space = cut.rfind(" ")
    if last_space > 0:
        cut = cut[:last_space]
    return cut.rstrip()


def create_provider_client(
    http_client: httpx.Client, settings: Settings | None = None
) -> ContentProviderClient:
    """Build a ContentProviderClient from settings."""
    settings = settings or get_settings()
    return ContentProviderClient(
        OpenAIAdapter(http_client, base_url=settings.openai_base_url),
        settings.openai_api_key,
        timeout_s=settings.openai_timeout_s,
        default_options=GenerationOptions(model=settings.openai_model),
    )
