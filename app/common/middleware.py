"""
Middleware for handling the cooperative (tenant) context
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)

COOPERATIVE_HEADER = "X-Cooperative-ID"


class CooperativeMiddleware(BaseHTTPMiddleware):
    """
    Extracts the optional X-Cooperative-ID header and stores it on
    request.state.cooperative_id.

    The header is optional because cooperative admins are always bound to
    their own cooperative; oversight users send it to pick one.
    """

    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == "/" or any(path.startswith(p) for p in self.EXEMPT_PATHS):
            return await call_next(request)

        if request.method == "OPTIONS":
            return await call_next(request)

        request.state.cooperative_id = None
        header = request.headers.get(COOPERATIVE_HEADER)

        if header:
            try:
                request.state.cooperative_id = UUID(header)
                logger.debug(f"Request to {path} with cooperative_id: {request.state.cooperative_id}")
            except ValueError:
                return Response(
                    content='{"detail":"Invalid X-Cooperative-ID format. Must be a valid UUID"}',
                    status_code=status.HTTP_400_BAD_REQUEST,
                    media_type="application/json"
                )

        response = await call_next(request)

        if request.state.cooperative_id:
            response.headers["X-Cooperative-ID"] = str(request.state.cooperative_id)

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers for production
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
