"""Tests for MagicLinkService issuance and redemption.

Runs against the in-memory token store with a controllable clock and a
recording gateway; no database or network.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from tally.core.email import NotificationError
from tally.core.errors import (
    EmailDeliveryError,
    RateLimitedError,
    TokenStoreError,
    ValidationError,
)
from tally.services.magic_link import (
    MAGIC_LINK_PATH,
    MIN_TOKEN_LENGTH,
    MagicLinkService,
    RedeemFailure,
    RedeemSuccess,
    generate_token,
    hash_token,
    normalize_email,
)
from tally.services.magic_link_store import InMemoryMagicLinkTokenStore
from tests.conftest import FakeGateway

_BASE_URL = "https://api.tally.test"
_EMAIL = "u@test.com"


class FakeClock:
    """Settable UTC clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryMagicLinkTokenStore:
    return InMemoryMagicLinkTokenStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def service(store, gateway, clock) -> MagicLinkService:
    return MagicLinkService(
        store=store,
        gateway=gateway,
        link_base_url=_BASE_URL,
        clock=clock,
    )


def _raw_token(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


async def _issue(
    service: MagicLinkService, gateway: FakeGateway, email: str = _EMAIL
) -> str:
    await service.request_link(email)
    return _raw_token(gateway.last_link)


# ===================================================================
# Helpers
# ===================================================================


class TestTokenHelpers:
    def test_generated_token_is_long_enough(self):
        raw, hashed = generate_token()
        assert len(raw) >= MIN_TOKEN_LENGTH
        assert hashed == hash_token(raw)
        assert len(hashed) == 64

    def test_generated_tokens_differ(self):
        assert generate_token()[0] != generate_token()[0]

    def test_normalize_email_trims_and_lowercases(self):
        assert normalize_email("  U@Test.COM ") == "u@test.com"


# ===================================================================
# request_link
# ===================================================================


class TestRequestLink:
    async def test_stores_hash_not_raw_token(self, service, store, gateway):
        raw = await _issue(service, gateway)

        rows = store.all()
        assert len(rows) == 1
        assert rows[0].hashed_token == hash_token(raw)
        assert rows[0].hashed_token != raw
        assert rows[0].used_at is None

    async def test_link_points_at_redeem_endpoint(self, service, gateway):
        await service.request_link(_EMAIL)

        to_email, link = gateway.sent[0]
        parsed = urlparse(link)
        assert to_email == _EMAIL
        assert f"{parsed.scheme}://{parsed.netloc}" == _BASE_URL
        assert parsed.path == MAGIC_LINK_PATH

    async def test_expiry_is_ten_minutes_after_issue(self, service, store, clock):
        await service.request_link(_EMAIL)

        row = store.all()[0]
        assert row.created_at == clock.now
        assert row.expires_at == clock.now + timedelta(minutes=10)

    async def test_email_is_normalized_before_storing(self, service, store, gateway):
        await service.request_link("  Mixed@Example.COM ")

        assert store.all()[0].email == "mixed@example.com"
        assert gateway.sent[0][0] == "mixed@example.com"

    @pytest.mark.parametrize(
        "bad",
        [
            "",
            "   ",
            "no-at-sign",
            "a@b",
            "@example.com",
            "a@b@c.com",
            "x@.",
            "a@b.",
            "<script>@x.y",
            "two words@example.com",
        ],
    )
    async def test_invalid_email_rejected_without_side_effects(
        self, service, store, gateway, bad
    ):
        with pytest.raises(ValidationError):
            await service.request_link(bad)

        assert store.all() == []
        assert gateway.sent == []

    async def test_unknown_address_gets_same_outcome(self, service, store, gateway):
        """No enumeration: any valid address gets a stored token and an email."""
        await service.request_link("never-seen-before@example.com")

        assert len(store.all()) == 1
        assert len(gateway.sent) == 1


class TestRateLimit:
    async def test_fourth_request_in_window_is_rejected(self, service, store, gateway):
        for _ in range(3):
            await service.request_link(_EMAIL)

        with pytest.raises(RateLimitedError) as exc_info:
            await service.request_link(_EMAIL)

        assert exc_info.value.retry_after_seconds == 15 * 60
        assert exc_info.value.status_code == 429
        assert len(store.all()) == 3
        assert len(gateway.sent) == 3

    async def test_limit_is_per_email(self, service):
        for _ in range(3):
            await service.request_link(_EMAIL)

        await service.request_link("other@test.com")

    async def test_limit_applies_across_case_variants(self, service):
        await service.request_link("u@test.com")
        await service.request_link("U@TEST.COM")
        await service.request_link(" u@Test.com ")

        with pytest.raises(RateLimitedError):
            await service.request_link("u@test.com")

    async def test_window_slides(self, service, clock):
        for _ in range(3):
            await service.request_link(_EMAIL)

        clock.advance(minutes=15, seconds=1)
        await service.request_link(_EMAIL)

    async def test_rate_limited_request_creates_no_token(self, service, store):
        for _ in range(3):
            await service.request_link(_EMAIL)
        before = len(store.all())

        with pytest.raises(RateLimitedError):
            await service.request_link(_EMAIL)

        assert len(store.all()) == before


class TestRequestLinkFailures:
    async def test_count_failure_is_store_error(self, gateway, clock):
        store = AsyncMock()
        store.count_recent.side_effect = ConnectionError("db down")
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        with pytest.raises(TokenStoreError):
            await service.request_link(_EMAIL)

        store.create.assert_not_awaited()
        assert gateway.sent == []

    async def test_insert_failure_is_store_error_and_no_email(self, gateway, clock):
        store = AsyncMock()
        store.count_recent.return_value = 0
        store.create.side_effect = ConnectionError("db down")
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        with pytest.raises(TokenStoreError):
            await service.request_link(_EMAIL)

        assert gateway.sent == []

    async def test_gateway_failure_keeps_row(self, store, clock):
        gateway = FakeGateway(fail_with=NotificationError("provider 503"))
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        with pytest.raises(EmailDeliveryError) as exc_info:
            await service.request_link(_EMAIL)

        assert exc_info.value.status_code == 500
        rows = store.all()
        assert len(rows) == 1
        assert rows[0].used_at is None

    async def test_error_messages_are_generic(self, store, clock):
        gateway = FakeGateway(fail_with=NotificationError("secret provider detail"))
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        with pytest.raises(EmailDeliveryError) as exc_info:
            await service.request_link(_EMAIL)

        assert exc_info.value.message == "Failed to send magic link"


# ===================================================================
# redeem
# ===================================================================


class TestRedeem:
    async def test_success_returns_email_and_marks_used(
        self, service, store, gateway, clock
    ):
        raw = await _issue(service, gateway)

        result = await service.redeem(raw)

        assert result == RedeemSuccess(email=_EMAIL)
        assert result.ok is True
        assert store.all()[0].used_at == clock.now

    async def test_second_redemption_reports_used(self, service, gateway):
        raw = await _issue(service, gateway)
        await service.redeem(raw)

        result = await service.redeem(raw)

        assert result == RedeemFailure(reason="used")
        assert result.ok is False

    async def test_expired_token(self, service, gateway, clock):
        raw = await _issue(service, gateway)
        clock.advance(minutes=11)

        assert await service.redeem(raw) == RedeemFailure(reason="expired")

    async def test_exact_expiry_instant_is_still_valid(self, service, gateway, clock):
        raw = await _issue(service, gateway)
        clock.advance(minutes=10)

        assert isinstance(await service.redeem(raw), RedeemSuccess)

    async def test_expired_token_is_not_consumed(self, service, store, gateway, clock):
        raw = await _issue(service, gateway)
        clock.advance(minutes=11)

        await service.redeem(raw)

        assert store.all()[0].used_at is None

    async def test_used_takes_precedence_over_expired(self, service, gateway, clock):
        raw = await _issue(service, gateway)
        await service.redeem(raw)
        clock.advance(hours=1)

        assert await service.redeem(raw) == RedeemFailure(reason="used")

    async def test_unknown_token_is_invalid(self, service):
        raw, _ = generate_token()

        assert await service.redeem(raw) == RedeemFailure(reason="invalid")

    @pytest.mark.parametrize("raw", [None, "", "short", "x" * (MIN_TOKEN_LENGTH - 1)])
    async def test_malformed_token_rejected_without_lookup(self, gateway, clock, raw):
        store = AsyncMock()
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        assert await service.redeem(raw) == RedeemFailure(reason="invalid")
        store.get_by_hash.assert_not_awaited()

    async def test_overlong_token_rejected_without_lookup(self, gateway, clock):
        store = AsyncMock()
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        assert await service.redeem("a" * 257) == RedeemFailure(reason="invalid")
        store.get_by_hash.assert_not_awaited()

    async def test_lookup_failure_is_invalid(self, gateway, clock):
        store = AsyncMock()
        store.get_by_hash.side_effect = ConnectionError("db down")
        service = MagicLinkService(
            store=store, gateway=gateway, link_base_url=_BASE_URL, clock=clock
        )

        assert await service.redeem("a" * 43) == RedeemFailure(reason="invalid")

    async def test_mark_used_failure_is_invalid_not_success(
        self, service, store, gateway, monkeypatch
    ):
        raw = await _issue(service, gateway)
        monkeypatch.setattr(
            store, "mark_used", AsyncMock(side_effect=ConnectionError("db down"))
        )

        assert await service.redeem(raw) == RedeemFailure(reason="invalid")

    async def test_losing_the_mark_used_race_reports_used(
        self, service, store, gateway, monkeypatch
    ):
        raw = await _issue(service, gateway)
        monkeypatch.setattr(store, "mark_used", AsyncMock(return_value=False))

        assert await service.redeem(raw) == RedeemFailure(reason="used")

    async def test_concurrent_redemptions_have_one_winner(self, service, gateway):
        raw = await _issue(service, gateway)

        results = await asyncio.gather(*(service.redeem(raw) for _ in range(5)))

        successes = [r for r in results if r.ok]
        assert len(successes) == 1
        assert all(r == RedeemFailure(reason="used") for r in results if not r.ok)


class TestEndToEndScenario:
    async def test_issue_redeem_reuse_and_expiry(self, service, store, gateway, clock):
        await service.request_link("u@test.com")
        rows = store.all()
        assert len(rows) == 1
        assert rows[0].used_at is None

        first = _raw_token(gateway.last_link)
        assert await service.redeem(first) == RedeemSuccess(email="u@test.com")
        assert store.all()[0].used_at is not None

        assert await service.redeem(first) == RedeemFailure(reason="used")

        await service.request_link("u@test.com")
        fresh = _raw_token(gateway.last_link)
        clock.advance(minutes=11)
        assert await service.redeem(fresh) == RedeemFailure(reason="expired")
