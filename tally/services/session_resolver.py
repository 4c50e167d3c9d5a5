"""Session resolution: one navigation decision from combined session signals.

Pure function over an explicit input struct. Evaluated top to bottom as a
priority list; the first matching rule wins:

 1. STATIC_ASSET      static/internal path               → render
 2. ONBOARDING        under /onboarding                  → render
 3. MISSING_LOCALE    non-public, no country / language  → redirect
 4. DEV_BYPASS        developer override, not login      → render
 5. GUEST             guest flag, not login              → render
 6. AUTH_PENDING      auth loading < timeout, non-public → hold
 7. BUSINESS_PENDING  signed in, business not known yet  → hold
 8. UNAUTHENTICATED   no user, no guest, non-public      → redirect /login
 9. NEEDS_WELCOME     signed in with business, unseen    → redirect /welcome
10. NEEDS_BUSINESS    signed in, no business             → redirect /setup
11. SETTLED           signed in with business, or guest  → render
                      (on login/verify/setup → redirect home)

Same inputs always give the same decision, and resolve() never raises:
uncertain state maps to a hold or an explicit redirect.
"""

import re
from dataclasses import dataclass
from enum import Enum

# Upper bound on the AUTH_PENDING hold; after it, resolution proceeds as if
# the identity check had finished.
AUTH_LOADING_TIMEOUT_SECONDS = 3.0


class ResolverState(str, Enum):
    """Which rule produced the decision."""

    STATIC_ASSET = "static_asset"
    ONBOARDING = "onboarding"
    MISSING_LOCALE = "missing_locale"
    DEV_BYPASS = "dev_bypass"
    GUEST = "guest"
    AUTH_PENDING = "auth_pending"
    BUSINESS_PENDING = "business_pending"
    UNAUTHENTICATED = "unauthenticated"
    NEEDS_WELCOME = "needs_welcome"
    NEEDS_BUSINESS = "needs_business"
    SETTLED = "settled"


class DecisionKind(str, Enum):
    """What the UI boundary should do."""

    RENDER = "render"
    HOLD = "hold"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class NavigationDecision:
    """Outcome of resolve().

    Attributes:
        kind: Render the page, hold on a loading state, or redirect.
        state: Rule that produced the decision.
        redirect_to: Target path, set only when kind is REDIRECT.
    """

    kind: DecisionKind
    state: ResolverState
    redirect_to: str | None = None


@dataclass(frozen=True)
class SessionInputs:
    """Everything resolve() looks at, captured at one instant.

    Attributes:
        path: Current pathname (no query string).
        user_id: Authenticated user id, None when signed out or not yet known.
        is_guest: Device-local guest-mode flag.
        has_country: A country has been selected on this device.
        has_language: A language has been selected on this device.
        has_business_profile: Server-known flag; None while unknown.
        welcome_seen: Device-local welcome flag.
        dev_bypass: Developer/test override (honored only in development).
        is_loading_auth: Identity check still in flight.
        is_loading_business: Business lookup still in flight.
        auth_wait_seconds: How long the identity check has been in flight.
    """

    path: str
    user_id: str | None = None
    is_guest: bool = False
    has_country: bool = False
    has_language: bool = False
    has_business_profile: bool | None = None
    welcome_seen: bool = False
    dev_bypass: bool = False
    is_loading_auth: bool = False
    is_loading_business: bool = False
    auth_wait_seconds: float = 0.0


_STATIC_EXTENSION_RE = re.compile(
    r"\.(png|jpg|jpeg|gif|svg|ico|css|js|map|woff|woff2|ttf|eot|json)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class RouteTable:
    """Paths the resolver knows about."""

    home: str = "/app"
    login: str = "/login"
    welcome: str = "/welcome"
    setup: str = "/setup"
    country: str = "/onboarding/country"
    language: str = "/onboarding/language"
    onboarding_prefix: str = "/onboarding"
    login_paths: frozenset[str] = frozenset({"/login", "/verify"})
    public_paths: frozenset[str] = frozenset(
        {
            "/",
            "/login",
            "/verify",
            "/welcome",
            "/about",
            "/check-email",
            "/privacy",
            "/terms",
            "/help",
        }
    )
    public_prefixes: tuple[str, ...] = ("/auth/",)
    static_prefixes: tuple[str, ...] = (
        "/_next",
        "/favicon.ico",
        "/icons",
        "/brand",
        "/manifest.json",
    )

    def is_static(self, path: str) -> bool:
        return path.startswith(self.static_prefixes) or bool(
            _STATIC_EXTENSION_RE.search(path)
        )

    def is_onboarding(self, path: str) -> bool:
        return path == self.onboarding_prefix or path.startswith(
            self.onboarding_prefix + "/"
        )

    def is_public(self, path: str) -> bool:
        return path in self.public_paths or path.startswith(self.public_prefixes)


DEFAULT_ROUTES = RouteTable()


def _normalize_path(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0] or "/"
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def _render(state: ResolverState) -> NavigationDecision:
    return NavigationDecision(kind=DecisionKind.RENDER, state=state)


def _hold(state: ResolverState) -> NavigationDecision:
    return NavigationDecision(kind=DecisionKind.HOLD, state=state)


def _redirect(state: ResolverState, to: str) -> NavigationDecision:
    return NavigationDecision(kind=DecisionKind.REDIRECT, state=state, redirect_to=to)


def resolve(
    inputs: SessionInputs,
    routes: RouteTable = DEFAULT_ROUTES,
) -> NavigationDecision:
    """Map session signals to a single navigation decision.

    Args:
        inputs: Snapshot of every signal.
        routes: Known paths (defaults to the app's route table).

    Returns:
        NavigationDecision for the current path.
    """
    path = _normalize_path(inputs.path)

    if routes.is_static(path):
        return _render(ResolverState.STATIC_ASSET)
    if routes.is_onboarding(path):
        return _render(ResolverState.ONBOARDING)

    public = routes.is_public(path)
    on_login = path in routes.login_paths

    if not public:
        if not inputs.has_country:
            return _redirect(ResolverState.MISSING_LOCALE, routes.country)
        if not inputs.has_language:
            return _redirect(ResolverState.MISSING_LOCALE, routes.language)

    if inputs.dev_bypass and not on_login:
        return _render(ResolverState.DEV_BYPASS)

    if inputs.is_guest and not on_login:
        return _render(ResolverState.GUEST)

    if (
        inputs.is_loading_auth
        and inputs.auth_wait_seconds < AUTH_LOADING_TIMEOUT_SECONDS
        and not public
    ):
        return _hold(ResolverState.AUTH_PENDING)

    authenticated = inputs.user_id is not None
    has_business = inputs.has_business_profile

    if authenticated and (inputs.is_loading_business or has_business is None):
        return _hold(ResolverState.BUSINESS_PENDING)

    if not authenticated and not inputs.is_guest and not public:
        return _redirect(ResolverState.UNAUTHENTICATED, routes.login)

    if authenticated and has_business and not inputs.welcome_seen:
        if path != routes.welcome:
            return _redirect(ResolverState.NEEDS_WELCOME, routes.welcome)

    if authenticated and has_business is False and path != routes.setup:
        return _redirect(ResolverState.NEEDS_BUSINESS, routes.setup)

    settled = (authenticated and bool(has_business)) or (
        inputs.is_guest and inputs.has_country and inputs.has_language
    )
    if settled:
        if on_login or path == routes.setup:
            return _redirect(ResolverState.SETTLED, routes.home)
        return _render(ResolverState.SETTLED)

    # Remaining: the setup page itself, or a public page without a session
    if authenticated:
        return _render(ResolverState.NEEDS_BUSINESS)
    return _render(ResolverState.UNAUTHENTICATED)
