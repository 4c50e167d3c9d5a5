"""Per-IP rate limiting using slowapi.

Complements the per-email issuance cap enforced by the magic link service:
slowapi blunts a single client hammering the auth endpoints with many
different addresses, the token store count caps issuance per address.

Usage in routers:
    from tally.core.rate_limiting import limiter

    @router.post("/send-magic-link")
    @limiter.limit(lambda: settings.rate_limit_magic_link)
    async def send_magic_link(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from tally.core.auth import decode_session_token
from tally.core.config import settings
from tally.core.responses import ErrorDetail, ErrorResponse

_PERIOD_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid session cookie: "user:{sub}"
    - No/invalid cookie: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        user_id = decode_session_token(token)
        if user_id is not None:
            return f"user:{user_id}"

    return f"unauth:{get_remote_address(request)}"


# In-memory storage (single instance). For multi-instance deployments,
# configure Redis storage via RATELIMIT_STORAGE_URL.
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle slowapi rate limit exceeded errors.

    Returns 429 with the standard error envelope and a Retry-After header.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # detail looks like "10 per 1 minute"; fall back to 60 seconds
    try:
        *_, amount, unit = exc.detail.split()
        retry_after = str(int(amount) * _PERIOD_SECONDS[unit.rstrip("s")])
    except (ValueError, AttributeError, KeyError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="RATE_LIMITED",
                message=f"Rate limit exceeded: {exc.detail}",
            )
        ).model_dump(),
        headers={"Retry-After": retry_after},
    )
