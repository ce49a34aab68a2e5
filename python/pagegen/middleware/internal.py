"""Internal secret check for the admin API.

The API is only called by the admin dashboard's backend. In staging and
prod every request except the public paths must carry the shared secret
in X-Pagegen-Internal; local and test environments skip the check.
"""

import hmac

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from pagegen.errors import ApiErrorCode
from pagegen.logging import get_logger
from pagegen.responses import error_response

logger = get_logger(__name__)

INTERNAL_HEADER = "x-pagegen-internal"

# Paths reachable without the internal header
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class InternalSecretMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, internal_secret: str | None):
        super().__init__(app)
        self.internal_secret = internal_secret

    async def dispatch(self, request: Request, call_next):
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        header_value = request.headers.get(INTERNAL_HEADER)
        if header_value is None:
            logger.warning(
                "internal_auth_failure", reason="header_missing", path=request.url.path
            )
            return _forbidden()

        if not self.internal_secret:
            # Validated at startup for staging/prod
            logger.error("internal_secret_not_configured")
            return JSONResponse(
                status_code=500,
                content=error_response(ApiErrorCode.E_INTERNAL, "Internal server error"),
            )

        # Constant-time comparison
        if not hmac.compare_digest(header_value.encode(), self.internal_secret.encode()):
            logger.warning(
                "internal_auth_failure", reason="header_mismatch", path=request.url.path
            )
            return _forbidden()

        return await call_next(request)


def _forbidden() -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content=error_response(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required"),
    )
