"""Middleware modules for the pagegen API."""

from pagegen.middleware.internal import INTERNAL_HEADER, InternalSecretMiddleware
from pagegen.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware

__all__ = ["RequestIDMiddleware", "REQUEST_ID_HEADER", "InternalSecretMiddleware", "INTERNAL_HEADER"]
