"""Content provider error taxonomy and classification.

Every failure surfaced by the content provider client is one of:
- ProviderTimeoutError: request timed out (after one retry)
- ProviderNetworkError: connection failure (after two retries)
- ProviderDownError: upstream 5xx (after one retry) or other non-2xx status
- InvalidCredentialsError: 401/403 or no API key configured
- RateLimitError: 429, carries the provider's retry_after hint
- InvalidResponseError: body is not JSON or lacks choices/usage

classify_status() is the single place mapping HTTP status codes to classes.
"""

from pagegen.errors import GenerationError, GenerationErrorCode


class ProviderError(GenerationError):
    """Base class for provider failures.

    Attributes:
        status_code: Upstream HTTP status (None for transport failures)
        provider: Provider name, for logs
    """

    code = GenerationErrorCode.PROVIDER_DOWN

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        provider: str = "openai",
    ):
        self.status_code = status_code
        self.provider = provider
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    code = GenerationErrorCode.PROVIDER_TIMEOUT


class ProviderNetworkError(ProviderError):
    code = GenerationErrorCode.PROVIDER_NETWORK


class ProviderDownError(ProviderError):
    code = GenerationErrorCode.PROVIDER_DOWN


class InvalidCredentialsError(ProviderError):
    code = GenerationErrorCode.PROVIDER_INVALID_KEY


class InvalidResponseError(ProviderError):
    code = GenerationErrorCode.PROVIDER_INVALID_RESPONSE


class RateLimitError(ProviderError):
    """Provider throttled the request.

    The client never retries these; the orchestrator decides whether to wait.
    """

    code = GenerationErrorCode.PROVIDER_RATE_LIMIT

    def __init__(
        self,
        message: str,
        *,
        retry_after: int | None = None,
        status_code: int | None = 429,
        provider: str = "openai",
    ):
        self.retry_after = retry_after
        super().__init__(message, status_code=status_code, provider=provider)


RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})


def classify_status(status_code: int) -> type[ProviderError]:
    """Map an upstream HTTP status to a provider error class.

    - 401 or 403 -> InvalidCredentialsError
    - 429 -> RateLimitError
    - everything else -> ProviderDownError
    """
    if status_code in (401, 403):
        return InvalidCredentialsError
    if status_code == 429:
        return RateLimitError
    return ProviderDownError


def extract_error_message(json_body: dict | None, status_code: int) -> str:
    """Pull the provider's error message out of an error body."""
    if json_body:
        error = json_body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"Provider returned HTTP {status_code}"


def extract_retry_after(json_body: dict | None, header_value: str | None) -> int | None:
    """Read the retry hint from the error body, falling back to the Retry-After header."""
    if json_body:
        error = json_body.get("error")
        if isinstance(error, dict) and error.get("retry_after") is not None:
            try:
                return int(error["retry_after"])
            except (TypeError, ValueError):
                pass
    if header_value:
        try:
            return int(float(header_value))
        except ValueError:
            return None
    return None
