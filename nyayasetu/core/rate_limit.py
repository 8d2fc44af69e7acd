"""
Rate limiting (slowapi).

Applied to the expensive or abuse-prone endpoints: document upload and
verification (each may call the OCR API) and login.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from nyayasetu.core.config import get_settings

logger = logging.getLogger(__name__)

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    enabled=_settings.rate_limit_enabled,
    headers_enabled=False,
)

UPLOAD_LIMIT = _settings.upload_rate_limit
VERIFY_LIMIT = _settings.verify_rate_limit
LOGIN_LIMIT = _settings.login_rate_limit


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit exceeded: %s %s (%s)", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": f"Too many requests: {exc.detail}"},
        headers={"Retry-After": "60"},
    )
