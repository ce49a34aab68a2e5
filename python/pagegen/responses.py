"""Response envelopes and exception handlers.

Success bodies are {"data": ...}. Errors are
{"error": {"code": "E_...", "message": "...", "request_id": "..."}}, with
request_id taken from the logging context so it matches X-Request-ID.
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from pagegen.errors import (
    ERROR_CODE_TO_STATUS,
    GENERATION_CODE_TO_API_CODE,
    ApiError,
    ApiErrorCode,
    GenerationError,
)
from pagegen.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Starlette HTTPException status -> error code
HTTP_STATUS_CODES = {
    400: ApiErrorCode.E_INVALID_REQUEST,
    403: ApiErrorCode.E_INTERNAL_ONLY,
    404: ApiErrorCode.E_NOT_FOUND,
    405: ApiErrorCode.E_INVALID_REQUEST,
    422: ApiErrorCode.E_INVALID_REQUEST,
}


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Error envelope; request_id defaults to the current request's id."""
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def _error(status_code: int, code: ApiErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return _error(exc.status_code, exc.code, exc.message)


async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
    """Pipeline errors that escape a route.

    Codes without an API mapping are provider failures and surface as 502.
    """
    code = GENERATION_CODE_TO_API_CODE.get(exc.code, ApiErrorCode.E_PROVIDER_UNAVAILABLE)
    logger.warning("generation_error_response", error_code=exc.code.value, api_code=code.value)
    return _error(ERROR_CODE_TO_STATUS.get(code, 500), code, exc.message)


async def http_exception_handler(request: Request, exc: Any) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, ApiErrorCode.E_INTERNAL)
    return _error(exc.status_code, code, str(exc.detail) if exc.detail else "An error occurred")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """500 E_INTERNAL; details stay in the server log."""
    logger.exception("unhandled_exception", path=request.url.path, error_type=type(exc).__name__)
    return _error(500, ApiErrorCode.E_INTERNAL, "Internal server error")
