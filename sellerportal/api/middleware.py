"""API middleware for the Seller Portal.

Provides:
- Request ID correlation
- Seller authentication (API key plus ``X-Seller-ID``)
- Error handling
"""

import secrets
import time
from typing import Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sellerportal.infrastructure.config import settings

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"
SELLER_ID_HEADER = "X-Seller-ID"

# Paths served without credentials
PUBLIC_PATHS = {
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def _error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": {},
            "request_id": getattr(request.state, "request_id", None),
        },
        headers=headers,
    )


def _is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(("/docs", "/redoc"))


# ============================================================================
# Request ID Middleware
# ============================================================================


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id.

    The id comes from ``X-Request-ID`` when the caller sends one. It is
    stored on ``request.state``, bound into the structlog context for the
    duration of the request, and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        finally:
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=getattr(response, "status_code", 500),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


# ============================================================================
# Seller Authentication Middleware
# ============================================================================


class SellerAuthMiddleware(BaseHTTPMiddleware):
    """Authenticate the portal and identify the acting seller.

    Protected requests need ``Authorization: Bearer <api key>`` and a
    non-blank ``X-Seller-ID``. The seller id is put on
    ``request.state.seller_id`` for the routers and bound into the log
    context.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/")
        if _is_public(path):
            return await call_next(request)

        bearer = {"WWW-Authenticate": "Bearer"}
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Missing authorization header", path=path, method=request.method)
            return _error_response(
                request,
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                "Missing Authorization header",
                bearer,
            )

        scheme, _, api_key = auth_header.partition(" ")
        if scheme.lower() != "bearer" or not api_key:
            logger.warning("Invalid authorization format", path=path, method=request.method)
            return _error_response(
                request,
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                "Invalid Authorization header format. Use 'Bearer <api_key>'",
                bearer,
            )

        if not secrets.compare_digest(api_key.encode(), settings.seller_portal_api_key.encode()):
            logger.warning("Invalid API key", path=path, method=request.method)
            return _error_response(
                request,
                status.HTTP_401_UNAUTHORIZED,
                "INVALID_API_KEY",
                "Invalid API key",
                bearer,
            )

        seller_id = (request.headers.get(SELLER_ID_HEADER) or "").strip()
        if not seller_id:
            logger.warning("Missing seller id", path=path, method=request.method)
            return _error_response(
                request,
                status.HTTP_401_UNAUTHORIZED,
                "SELLER_REQUIRED",
                f"{SELLER_ID_HEADER} header is required",
                bearer,
            )

        request.state.seller_id = seller_id
        structlog.contextvars.bind_contextvars(seller_id=seller_id)
        try:
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("seller_id")


# ============================================================================
# Error Handling Middleware
# ============================================================================


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn anything a handler let escape into a generic 500 body."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "Unhandled exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
            )
            # Never leak internals to the caller
            return _error_response(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "An internal error occurred",
            )


# ============================================================================
# Middleware Setup
# ============================================================================


def setup_middleware(app: FastAPI) -> None:
    """Configure all middleware for the application.

    Middleware added last runs first: request ID, then error handling,
    then seller authentication.

    Args:
        app: FastAPI application instance.
    """
    app.add_middleware(SellerAuthMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)
