"""Session endpoints.

- GET /session: server-known signals for the client-side resolver
- POST /session/resolve: evaluate the resolver for a full input snapshot
"""

from fastapi import APIRouter

from tally.api.deps import Accounts, OptionalUserId
from tally.core.config import settings
from tally.core.responses import DataResponse
from tally.schemas.session import (
    NavigationDecisionBody,
    SessionInputsBody,
    SessionStatus,
    SessionUser,
)
from tally.services.session_resolver import resolve

router = APIRouter()


@router.get("")
async def get_session(
    user_id: OptionalUserId,
    accounts: Accounts,
) -> DataResponse[SessionStatus]:
    """Who is signed in and whether they have a business profile.

    Never 401s: a missing, invalid or orphaned session reads as signed out.
    """
    if user_id is None:
        return DataResponse(data=SessionStatus(authenticated=False))

    account = await accounts.get_account(user_id)
    if account is None:
        return DataResponse(data=SessionStatus(authenticated=False))

    business = await accounts.get_business(user_id)
    return DataResponse(
        data=SessionStatus(
            authenticated=True,
            user=SessionUser(
                id=account.id,
                email=account.email,
                email_verified=account.email_verified,
            ),
            has_business_profile=business is not None,
        )
    )


@router.post("/resolve")
async def resolve_session(
    body: SessionInputsBody,
) -> DataResponse[NavigationDecisionBody]:
    """Map a snapshot of session signals to a navigation decision.

    The developer bypass flag is ignored outside development.
    """
    allow_dev_bypass = settings.environment == "development"
    decision = resolve(body.to_inputs(allow_dev_bypass=allow_dev_bypass))
    return DataResponse(data=NavigationDecisionBody.from_decision(decision))
