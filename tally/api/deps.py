"""Shared dependencies for API endpoints.

Authentication reads the session JWT from the httpOnly cookie set by a
successful magic link redemption. Service dependencies are factories so
tests can replace them through ``app.dependency_overrides``.
"""

import uuid
from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tally.core.auth import decode_session_token
from tally.core.config import settings
from tally.core.database import get_db
from tally.core.email import get_email_gateway
from tally.core.errors import UnauthorizedError
from tally.services.account_directory import AccountDirectory, SqlAccountDirectory
from tally.services.magic_link import MagicLinkService, NotificationGateway
from tally.services.magic_link_store import MagicLinkTokenStore, SqlMagicLinkTokenStore

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_optional_user_id(request: Request) -> uuid.UUID | None:
    """User ID from the session cookie, or None when absent or invalid."""
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        return None
    return decode_session_token(token)


def get_current_user_id(
    user_id: Annotated[uuid.UUID | None, Depends(get_optional_user_id)],
) -> uuid.UUID:
    """User ID for endpoints that require a session.

    Raises:
        UnauthorizedError: No valid session cookie. The reason (missing,
            expired, bad signature) is never revealed.
    """
    if user_id is None:
        raise UnauthorizedError()
    return user_id


def get_token_store(db: DbSession) -> MagicLinkTokenStore:
    return SqlMagicLinkTokenStore(db)


def get_notification_gateway() -> NotificationGateway:
    return get_email_gateway()


def get_magic_link_service(
    store: Annotated[MagicLinkTokenStore, Depends(get_token_store)],
    gateway: Annotated[NotificationGateway, Depends(get_notification_gateway)],
) -> MagicLinkService:
    """Magic link service wired from settings."""
    return MagicLinkService(
        store=store,
        gateway=gateway,
        link_base_url=settings.app_base_url,
        token_ttl=timedelta(minutes=settings.magic_link_ttl_minutes),
        rate_limit_window=timedelta(minutes=settings.magic_link_rate_window_minutes),
        rate_limit_max=settings.magic_link_rate_max,
    )


def get_account_directory(db: DbSession) -> AccountDirectory:
    return SqlAccountDirectory(db)


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
OptionalUserId = Annotated[uuid.UUID | None, Depends(get_optional_user_id)]
MagicLinks = Annotated[MagicLinkService, Depends(get_magic_link_service)]
Accounts = Annotated[AccountDirectory, Depends(get_account_directory)]
