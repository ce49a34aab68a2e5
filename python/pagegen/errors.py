"""API and generation error definitions.

API errors are defined here with their corresponding HTTP status codes.
Generation errors form the pipeline's typed taxonomy: each carries a
GenerationErrorCode, and provider-specific subclasses live in
pagegen.services.llm.errors.

Taxonomy:
- Transient (timeout, network, provider down, rate limit): retried inside the
  provider client, or once more by the orchestrator for rate limits
- Fatal request (invalid key, invalid response, unknown block, invalid page,
  parse failure): surfaced immediately
- Business fatal (budget exceeded): aborts the current block only
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the internal API.

    Format: E_CATEGORY_NAME
    """

    # Authorization errors (403)
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_PAGE_NOT_FOUND = "E_PAGE_NOT_FOUND"
    E_QUEUE_ITEM_NOT_FOUND = "E_QUEUE_ITEM_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_UNKNOWN_BLOCK_TYPE = "E_UNKNOWN_BLOCK_TYPE"

    # Conflict (409)
    E_ALREADY_QUEUED = "E_ALREADY_QUEUED"

    # Throttling (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"

    # Budget (402)
    E_BUDGET_EXCEEDED = "E_BUDGET_EXCEEDED"

    # Server errors
    E_PROVIDER_UNAVAILABLE = "E_PROVIDER_UNAVAILABLE"  # 502
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500


# Error code to HTTP status mapping
ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_PAGE_NOT_FOUND: 404,
    ApiErrorCode.E_QUEUE_ITEM_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_UNKNOWN_BLOCK_TYPE: 400,
    ApiErrorCode.E_ALREADY_QUEUED: 409,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_BUDGET_EXCEEDED: 402,
    ApiErrorCode.E_PROVIDER_UNAVAILABLE: 502,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


# =============================================================================
# Generation pipeline errors
# =============================================================================


class GenerationErrorCode(str, Enum):
    """Normalized error classes raised inside the generation pipeline."""

    PROVIDER_TIMEOUT = "E_PROVIDER_TIMEOUT"
    PROVIDER_NETWORK = "E_PROVIDER_NETWORK"
    PROVIDER_DOWN = "E_PROVIDER_DOWN"
    PROVIDER_INVALID_KEY = "E_PROVIDER_INVALID_KEY"
    PROVIDER_RATE_LIMIT = "E_PROVIDER_RATE_LIMIT"
    PROVIDER_INVALID_RESPONSE = "E_PROVIDER_INVALID_RESPONSE"
    BUDGET_EXCEEDED = "E_BUDGET_EXCEEDED"
    BLOCK_PARSE = "E_BLOCK_PARSE"
    UNKNOWN_BLOCK_TYPE = "E_UNKNOWN_BLOCK_TYPE"
    INVALID_PAGE = "E_INVALID_PAGE"
    BULK_LIMIT = "E_BULK_LIMIT"


TRANSIENT_CODES = frozenset(
    {
        GenerationErrorCode.PROVIDER_TIMEOUT,
        GenerationErrorCode.PROVIDER_NETWORK,
        GenerationErrorCode.PROVIDER_DOWN,
        GenerationErrorCode.PROVIDER_RATE_LIMIT,
    }
)


class GenerationError(Exception):
    """Base exception for generation failures.

    Attributes:
        code: The normalized error class
        message: Human-readable error message (recorded in logs and queue items)
    """

    code: GenerationErrorCode = GenerationErrorCode.PROVIDER_DOWN

    def __init__(self, message: str, code: GenerationErrorCode | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    @property
    def is_transient(self) -> bool:
        """Whether a later attempt may succeed without operator action."""
        return self.code in TRANSIENT_CODES


class BudgetExceededError(GenerationError):
    """Monthly spend reached the configured budget."""

    code = GenerationErrorCode.BUDGET_EXCEEDED

    def __init__(self, current_cost: float, budget: float):
        self.current_cost = current_cost
        self.budget = budget
        super().__init__(
            f"Monthly budget limit reached (${current_cost:.2f} of ${budget:.2f}). "
            "Generation paused until next month or budget increase."
        )


class BlockParseError(GenerationError):
    """Provider output does not have the shape a block expects."""

    code = GenerationErrorCode.BLOCK_PARSE


class UnknownBlockTypeError(GenerationError):
    """Block type is not registered."""

    code = GenerationErrorCode.UNKNOWN_BLOCK_TYPE

    def __init__(self, block_type: str):
        self.block_type = block_type
        super().__init__(f"Unknown block type: {block_type}")


class InvalidPageError(GenerationError):
    """Target page is missing or not a generated page type."""

    code = GenerationErrorCode.INVALID_PAGE


class BulkLimitError(GenerationError):
    """Too many concurrent bulk generations for one user."""

    code = GenerationErrorCode.BULK_LIMIT


# Generation error to API error mapping (used by the API exception handler)
GENERATION_CODE_TO_API_CODE: dict[GenerationErrorCode, ApiErrorCode] = {
    GenerationErrorCode.BUDGET_EXCEEDED: ApiErrorCode.E_BUDGET_EXCEEDED,
    GenerationErrorCode.UNKNOWN_BLOCK_TYPE: ApiErrorCode.E_UNKNOWN_BLOCK_TYPE,
    GenerationErrorCode.INVALID_PAGE: ApiErrorCode.E_PAGE_NOT_FOUND,
    GenerationErrorCode.BULK_LIMIT: ApiErrorCode.E_RATE_LIMITED,
    GenerationErrorCode.PROVIDER_RATE_LIMIT: ApiErrorCode.E_RATE_LIMITED,
}
