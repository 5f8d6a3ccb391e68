"""
Relay rate limiting (slowapi).

The three POST routes share one per-client budget, scoped "relay".
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from voicequiz.core.config import settings
from voicequiz.core.logging import get_logger
from voicequiz.core.metrics import relay_rate_limited_total

logger = get_logger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
RELAY_SCOPE = "relay"

limiter = Limiter(key_func=get_remote_address)


def relay_rate_limit() -> str:
    """Read at request time so the limit can be changed without re-importing."""
    return settings.RATE_LIMIT


relay_limit = limiter.shared_limit(relay_rate_limit, scope=RELAY_SCOPE)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    relay_rate_limited_total.labels(path=request.url.path).inc()
    logger.warning("rate_limit_exceeded", path=request.url.path, client=get_remote_address(request), limit=str(exc.detail))
    return JSONResponse(status_code=429, content={"error": RATE_LIMIT_MESSAGE})
