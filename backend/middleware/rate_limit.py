"""Rate limiting for the report endpoints using SlowAPI.

Each report request fans out to quota-limited upstream APIs, so callers are
limited per client IP.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """429 in the shared error body format."""
    logger.warning(f"Rate limit hit on {request.url.path} by {get_remote_address(request)}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests. Please try again later.",
            "details": exc.detail,
        },
    )
