"""
Security headers middleware.

The portal serves JSON to a separately hosted React front end, so the
headers target API responses: no sniffing, no framing, no caching of
authenticated reads.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, enable_hsts: bool = False, hsts_max_age: int = 31536000):
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.hsts_max_age = hsts_max_age

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = f"max-age={self.hsts_max_age}; includeSubDomains"

        # Document downloads and case data must not sit in shared caches
        if request.url.path.startswith("/api/") and request.method in ("GET", "HEAD"):
            if "authorization" in request.headers or "nyayasetu_session" in request.cookies:
                response.headers.setdefault("Cache-Control", "private, no-store")

        return response
