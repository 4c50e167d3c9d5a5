"""Magic link + session cookie endpoints.

Endpoints:
- POST /auth/send-magic-link: issue a token and email the link
- GET /auth/magic: redeem the token, issue the session cookie, redirect
- POST /auth/logout: clear the session cookie
- GET /auth/me: current user info
"""

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, ConfigDict, EmailStr
from starlette.responses import Response

from tally.api.deps import Accounts, CurrentUserId, MagicLinks
from tally.core.auth import clear_auth_cookie, create_jwt, set_auth_cookie
from tally.core.config import settings
from tally.core.errors import UnauthorizedError
from tally.core.rate_limiting import limiter
from tally.core.responses import DataResponse
from tally.schemas.session import SessionUser
from tally.services.magic_link import RedeemFailure

logger = logging.getLogger(__name__)

router = APIRouter()

_SENT_MESSAGE = "Check your email for a sign-in link"


class SendMagicLinkRequest(BaseModel):
    """Request body for POST /auth/send-magic-link.

    Malformed addresses are rejected here as VALIDATION_ERROR before the
    service is reached.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    email: EmailStr


def _no_referrer_redirect(url: str) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=307)
    # The token must not leak via the Referer header
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


def _error_redirect(reason: str) -> RedirectResponse:
    query = urlencode({"reason": reason})
    return _no_referrer_redirect(f"{settings.frontend_url}/auth/magic/error?{query}")


# ===================================================================
# POST /auth/send-magic-link
# ===================================================================


@router.post("/send-magic-link")
@limiter.limit(lambda: settings.rate_limit_magic_link)
async def send_magic_link(
    request: Request,  # noqa: ARG001
    body: SendMagicLinkRequest,
    service: MagicLinks,
) -> DataResponse[dict]:
    """Request a magic link sign-in email.

    Same success shape for every syntactically valid address, whether or
    not an account exists. Errors are raised by the service as APIError
    subclasses (400, 429 with Retry-After, 500).
    """
    await service.request_link(body.email)
    return DataResponse(data={"ok": True, "message": _SENT_MESSAGE})


# ===================================================================
# GET /auth/magic
# ===================================================================


@router.get("/magic")
@limiter.limit(lambda: settings.rate_limit_verify)
async def redeem_magic_link(
    request: Request,  # noqa: ARG001
    service: MagicLinks,
    accounts: Accounts,
    token: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Redeem a magic link and redirect.

    Success: session cookie + 307 to ``{FRONTEND_URL}/app``.
    Failure: 307 to ``{FRONTEND_URL}/auth/magic/error?reason=...``. A
    failure to sign in after the token was consumed also lands there, as
    ``reason=invalid``; the token stays used.
    """
    result = await service.redeem(token)
    if isinstance(result, RedeemFailure):
        return _error_redirect(result.reason)

    try:
        account = await accounts.sign_in(result.email)
        jwt_token = create_jwt(
            user_id=str(account.id),
            secret=settings.auth_secret.get_secret_value(),
        )
    except Exception:
        logger.error("Sign-in failed after magic link redemption", exc_info=True)
        return _error_redirect("invalid")

    logger.info("Magic link redeemed user_id=%s", account.id)
    response = _no_referrer_redirect(f"{settings.frontend_url}/app")
    set_auth_cookie(response, jwt_token)
    return response


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear auth cookie.

    No auth required; clears the cookie regardless.
    """
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Signed out"})


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(
    user_id: CurrentUserId,
    accounts: Accounts,
) -> DataResponse[SessionUser]:
    """Return current user info. 401 without a valid session."""
    account = await accounts.get_account(user_id)
    if account is None:
        raise UnauthorizedError()
    return DataResponse(
        data=SessionUser(
            id=account.id,
            email=account.email,
            email_verified=account.email_verified,
        )
    )
