"""Session token helpers: JWT creation, decoding and cookie management.

A successful magic link redemption is the only path that calls
``create_jwt``. Everything downstream (``/auth/me``, ``/session``,
``/guest-import``) trusts the cookie via ``decode_session_token``.
"""

import logging
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from tally.core.config import settings

logger = logging.getLogger(__name__)

# Session lifetime (cookie max-age and JWT exp)
SESSION_TTL = timedelta(days=7)

_AUDIENCE = "tally"
_ALGORITHM = "HS256"


def create_jwt(
    *,
    user_id: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT with standard claims.

    Args:
        user_id: User UUID string for the sub claim.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to SESSION_TTL.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": user_id,
        "aud": _AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or SESSION_TTL),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> uuid.UUID | None:
    """Validate a session JWT and return its subject.

    Args:
        token: Encoded JWT from the session cookie.

    Returns:
        User UUID, or None for any invalid, expired or malformed token.
    """
    try:
        payload = jwt.decode(
            token,
            settings.auth_secret.get_secret_value(),
            algorithms=[_ALGORITHM],
            audience=_AUDIENCE,
            issuer=settings.auth_issuer,
        )
        return uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        logger.debug("Rejected session token")
        return None


def set_auth_cookie(response: Response, token: str) -> None:
    """Set httpOnly JWT cookie on response.

    Args:
        response: FastAPI response object.
        token: JWT token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=int(SESSION_TTL.total_seconds()),
        domain=settings.auth_cookie_domain or None,
    )


def clear_auth_cookie(response: Response) -> None:
    """Delete the session cookie.

    Cookie attributes must match set_auth_cookie() for browsers to delete it.
    """
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        domain=settings.auth_cookie_domain or None,
    )
