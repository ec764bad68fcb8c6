import logging
import os
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from urgentcare.middleware.tracing import TRACE_ID_CTX_VAR

logger = logging.getLogger("urgentcare")

CREATE_RATE_LIMIT = os.getenv("CREATE_RATE_LIMIT", "10/minute")


def user_rate_key(request: Request) -> str:
    """Return a per-user key when available; otherwise fall back to IP.

    Assumes a dependency sets request.state.user_id for authenticated routes.
    """
    uid = getattr(request.state, "user_id", None)
    if uid:
        return str(uid)
    return get_remote_address(request)


limiter = Limiter(key_func=user_rate_key, default_limits=[])


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.info({
        "function": "rate_limit",
        "path": str(request.url.path),
        "key": user_rate_key(request),
        "limit": str(exc.detail),
    })
    retry_after = 60
    reset_at = getattr(exc, "reset_time", None)
    if reset_at:
        retry_after = max(1, int(reset_at - time.time()))
    return JSONResponse(
        status_code=429,
        headers={"Retry-After": str(retry_after)},
        content={
            "code": "TOO_MANY_REQUESTS",
            "message": "Too many requests. Please wait a bit and try again.",
            "trace_id": TRACE_ID_CTX_VAR.get(),
        },
    )
