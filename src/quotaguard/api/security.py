"""Bearer-token middleware for the admin API."""

import logging
import secrets
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for API key authentication.

    Validates Bearer token in Authorization header against
    configured API key. Only the liveness endpoints bypass the check;
    docs and the OpenAPI schema require the token.
    """

    # Paths that bypass authentication
    BYPASS_PATHS = {
        "/health",
        "/",
    }

    def __init__(
        self,
        app,
        api_key: str,
        bypass_paths: set[str] | None = None,
    ) -> None:
        super().__init__(app)
        self._api_key = api_key
        self._bypass_paths = bypass_paths or self.BYPASS_PATHS

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> JSONResponse:
        """Process request and validate API key."""
        if request.url.path in self._bypass_paths:
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Missing or malformed Authorization header. Use: Bearer <token>"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        token = auth_header[len("Bearer "):]
        if not secrets.compare_digest(token.encode(), self._api_key.encode()):
            client_host = request.client.host if request.client else "unknown"
            logger.warning(f"Invalid API key attempt from {client_host}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Invalid API key"},
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)
