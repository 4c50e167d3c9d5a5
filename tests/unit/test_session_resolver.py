"""Tests for the session resolver decision function.

Each rule in the priority list is exercised on its own, plus the
determinism and auth-timeout liveness properties.
"""

import itertools

import pytest

from tally.services.session_resolver import (
    AUTH_LOADING_TIMEOUT_SECONDS,
    DEFAULT_ROUTES,
    DecisionKind,
    NavigationDecision,
    ResolverState,
    RouteTable,
    SessionInputs,
    resolve,
)

_USER = "00000000-0000-0000-0000-000000000001"


def _inputs(path: str = "/app", **overrides) -> SessionInputs:
    """Fully onboarded, signed-in user with a business, unless overridden."""
    base = {
        "path": path,
        "user_id": _USER,
        "has_country": True,
        "has_language": True,
        "has_business_profile": True,
        "welcome_seen": True,
    }
    base.update(overrides)
    return SessionInputs(**base)


def _signed_out(path: str = "/app", **overrides) -> SessionInputs:
    return _inputs(path, user_id=None, has_business_profile=None, **overrides)


class TestStaticAndOnboarding:
    @pytest.mark.parametrize(
        "path",
        ["/_next/static/chunk.js", "/favicon.ico", "/icons/192.png", "/logo.svg"],
    )
    def test_static_assets_render_without_any_signal(self, path):
        decision = resolve(SessionInputs(path=path, is_loading_auth=True))

        assert decision == NavigationDecision(
            kind=DecisionKind.RENDER, state=ResolverState.STATIC_ASSET
        )

    @pytest.mark.parametrize("path", ["/onboarding", "/onboarding/country"])
    def test_onboarding_renders_even_without_locale(self, path):
        decision = resolve(SessionInputs(path=path))

        assert decision.kind == DecisionKind.RENDER
        assert decision.state == ResolverState.ONBOARDING


class TestLocale:
    def test_missing_country_redirects_to_country(self):
        decision = resolve(_inputs(has_country=False))

        assert decision.kind == DecisionKind.REDIRECT
        assert decision.state == ResolverState.MISSING_LOCALE
        assert decision.redirect_to == "/onboarding/country"

    def test_missing_language_redirects_to_language(self):
        decision = resolve(_inputs(has_language=False))

        assert decision.redirect_to == "/onboarding/language"

    def test_country_checked_before_language(self):
        decision = resolve(_inputs(has_country=False, has_language=False))

        assert decision.redirect_to == "/onboarding/country"

    def test_public_pages_skip_locale_check(self):
        decision = resolve(_signed_out("/login", has_country=False))

        assert decision.state != ResolverState.MISSING_LOCALE

    def test_locale_checked_before_guest(self):
        decision = resolve(_signed_out(is_guest=True, has_language=False))

        assert decision.state == ResolverState.MISSING_LOCALE


class TestDevBypassAndGuest:
    def test_dev_bypass_renders(self):
        decision = resolve(_signed_out(dev_bypass=True, is_loading_auth=True))

        assert decision.kind == DecisionKind.RENDER
        assert decision.state == ResolverState.DEV_BYPASS

    def test_dev_bypass_ignored_on_login(self):
        decision = resolve(_signed_out("/login", dev_bypass=True))

        assert decision.state != ResolverState.DEV_BYPASS

    def test_guest_renders_protected_page_without_auth(self):
        decision = resolve(_signed_out(is_guest=True, is_loading_auth=True))

        assert decision == NavigationDecision(
            kind=DecisionKind.RENDER, state=ResolverState.GUEST
        )

    def test_guest_on_login_is_sent_home(self):
        decision = resolve(_signed_out("/login", is_guest=True))

        assert decision.kind == DecisionKind.REDIRECT
        assert decision.redirect_to == "/app"


class TestAuthPending:
    def test_holds_while_auth_loading(self):
        decision = resolve(_signed_out(is_loading_auth=True, auth_wait_seconds=1.0))

        assert decision == NavigationDecision(
            kind=DecisionKind.HOLD, state=ResolverState.AUTH_PENDING
        )

    def test_timeout_releases_the_hold(self):
        decision = resolve(
            _signed_out(
                is_loading_auth=True,
                auth_wait_seconds=AUTH_LOADING_TIMEOUT_SECONDS,
            )
        )

        assert decision.kind == DecisionKind.REDIRECT
        assert decision.redirect_to == "/login"

    def test_public_pages_do_not_hold(self):
        decision = resolve(_signed_out("/about", is_loading_auth=True))

        assert decision.kind == DecisionKind.RENDER

    @pytest.mark.parametrize("wait", [3.0, 3.5, 10.0, 3600.0])
    def test_never_holds_on_auth_past_timeout(self, wait):
        decision = resolve(_signed_out(is_loading_auth=True, auth_wait_seconds=wait))

        assert decision.state != ResolverState.AUTH_PENDING


class TestBusinessPending:
    def test_holds_while_business_loading(self):
        decision = resolve(_inputs(is_loading_business=True))

        assert decision == NavigationDecision(
            kind=DecisionKind.HOLD, state=ResolverState.BUSINESS_PENDING
        )

    def test_holds_while_business_unknown(self):
        decision = resolve(_inputs(has_business_profile=None))

        assert decision.state == ResolverState.BUSINESS_PENDING


class TestUnauthenticated:
    def test_protected_page_redirects_to_login(self):
        decision = resolve(_signed_out())

        assert decision == NavigationDecision(
            kind=DecisionKind.REDIRECT,
            state=ResolverState.UNAUTHENTICATED,
            redirect_to="/login",
        )

    @pytest.mark.parametrize(
        "path", ["/", "/login", "/verify", "/about", "/auth/magic/error"]
    )
    def test_public_pages_render(self, path):
        decision = resolve(_signed_out(path))

        assert decision.kind == DecisionKind.RENDER


class TestWelcomeAndBusiness:
    def test_unseen_welcome_redirects(self):
        decision = resolve(_inputs(welcome_seen=False))

        assert decision.redirect_to == "/welcome"
        assert decision.state == ResolverState.NEEDS_WELCOME

    def test_welcome_page_itself_renders(self):
        decision = resolve(_inputs("/welcome", welcome_seen=False))

        assert decision.kind == DecisionKind.RENDER

    def test_no_business_redirects_to_setup(self):
        decision = resolve(_inputs(has_business_profile=False))

        assert decision == NavigationDecision(
            kind=DecisionKind.REDIRECT,
            state=ResolverState.NEEDS_BUSINESS,
            redirect_to="/setup",
        )

    def test_setup_page_renders_without_business(self):
        decision = resolve(_inputs("/setup", has_business_profile=False))

        assert decision.kind == DecisionKind.RENDER
        assert decision.state == ResolverState.NEEDS_BUSINESS


class TestSettled:
    def test_protected_page_renders(self):
        decision = resolve(_inputs("/app/reports"))

        assert decision == NavigationDecision(
            kind=DecisionKind.RENDER, state=ResolverState.SETTLED
        )

    @pytest.mark.parametrize("path", ["/login", "/verify", "/setup"])
    def test_login_and_setup_redirect_home(self, path):
        decision = resolve(_inputs(path))

        assert decision.kind == DecisionKind.REDIRECT
        assert decision.redirect_to == "/app"

    def test_query_and_trailing_slash_ignored(self):
        assert resolve(_inputs("/login/?next=/x")).redirect_to == "/app"


class TestRouteTable:
    def test_custom_routes(self):
        routes = RouteTable(
            home="/dashboard", login="/signin", login_paths=frozenset({"/signin"})
        )

        assert resolve(_signed_out("/dashboard"), routes).redirect_to == "/signin"

    def test_default_routes_are_used(self):
        assert DEFAULT_ROUTES.home == "/app"


class TestProperties:
    def test_same_inputs_same_decision(self):
        inputs = _inputs(welcome_seen=False, is_loading_auth=True, auth_wait_seconds=1)

        assert resolve(inputs) == resolve(inputs)

    def test_redirect_always_has_target_and_never_raises(self):
        paths = ["/", "/app", "/login", "/setup", "/welcome", "/onboarding/country"]
        flags = [False, True]
        for (
            path,
            signed_in,
            is_guest,
            has_locale,
            business,
            loading_auth,
            loading_business,
        ) in itertools.product(
            paths, flags, flags, flags, [None, False, True], flags, flags
        ):
            decision = resolve(
                SessionInputs(
                    path=path,
                    user_id=_USER if signed_in else None,
                    is_guest=is_guest,
                    has_country=has_locale,
                    has_language=has_locale,
                    has_business_profile=business,
                    is_loading_auth=loading_auth,
                    is_loading_business=loading_business,
                    welcome_seen=True,
                )
            )
            if decision.kind == DecisionKind.REDIRECT:
                assert decision.redirect_to
            else:
                assert decision.redirect_to is None
