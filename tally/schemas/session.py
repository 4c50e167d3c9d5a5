"""Session API schemas.

Wire shapes for ``GET /session`` and the ``POST /session/resolve``
adapter around the pure resolver.
"""

import uuid

from pydantic import BaseModel, ConfigDict, Field

from tally.services.session_resolver import (
    DecisionKind,
    NavigationDecision,
    ResolverState,
    SessionInputs,
)


class SessionUser(BaseModel):
    """Signed-in user as seen by the client."""

    id: uuid.UUID
    email: str
    email_verified: bool


class SessionStatus(BaseModel):
    """Server-known session signals.

    Attributes:
        authenticated: A valid session cookie was presented.
        user: The signed-in user, when authenticated.
        has_business_profile: Whether the user has an active business.
            None when not authenticated.
    """

    authenticated: bool
    user: SessionUser | None = None
    has_business_profile: bool | None = None


class SessionInputsBody(BaseModel):
    """Body for POST /session/resolve; mirrors SessionInputs."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1, max_length=2048)
    user_id: str | None = Field(default=None, max_length=64)
    is_guest: bool = False
    has_country: bool = False
    has_language: bool = False
    has_business_profile: bool | None = None
    welcome_seen: bool = False
    dev_bypass: bool = False
    is_loading_auth: bool = False
    is_loading_business: bool = False
    auth_wait_seconds: float = Field(default=0.0, ge=0)

    def to_inputs(self, *, allow_dev_bypass: bool = False) -> SessionInputs:
        values = self.model_dump()
        values["dev_bypass"] = self.dev_bypass and allow_dev_bypass
        return SessionInputs(**values)


class NavigationDecisionBody(BaseModel):
    """Response data for POST /session/resolve."""

    kind: DecisionKind
    state: ResolverState
    redirect_to: str | None = None

    @classmethod
    def from_decision(cls, decision: NavigationDecision) -> "NavigationDecisionBody":
        return cls(
            kind=decision.kind,
            state=decision.state,
            redirect_to=decision.redirect_to,
        )
