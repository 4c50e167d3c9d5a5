"""Magic link issuance and redemption.

Passwordless sign-in: the server issues a single-use, time-boxed token,
emails it embedded in a URL, and consumes it exactly once on redemption.

Pipeline:
- request_link: normalize → per-email rate limit → generate → persist hash
  → send raw token via the notification gateway
- redeem: validate shape → hash → lookup → used? → expired? → atomic
  mark-used (the only step that grants success)

Security:
- Only SHA-256(raw) is persisted. Lookups are by hash.
- The raw token lives in memory for the duration of request_link and is
  never logged.
- request_link has one success shape for every syntactically valid address
  (no account enumeration).
"""

import hashlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Literal, Protocol
from urllib.parse import quote, urlencode

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from tally.core.email import NotificationError
from tally.core.errors import (
    EmailDeliveryError,
    RateLimitedError,
    TokenStoreError,
    ValidationError,
)
from tally.services.magic_link_store import MagicLinkTokenStore

logger = logging.getLogger(__name__)

# 32 bytes of entropy; token_urlsafe encodes to 43 characters
TOKEN_BYTES = 32

# Anything shorter cannot have come from generate_token()
MIN_TOKEN_LENGTH = 32
MAX_TOKEN_LENGTH = 256

DEFAULT_TOKEN_TTL = timedelta(minutes=10)
DEFAULT_RATE_LIMIT_WINDOW = timedelta(minutes=15)
DEFAULT_RATE_LIMIT_MAX = 3

MAGIC_LINK_PATH = "/api/v1/auth/magic"

RedeemReason = Literal["invalid", "expired", "used"]


@dataclass(frozen=True)
class RedeemSuccess:
    """Token consumed; ``email`` may now be signed in."""

    email: str
    ok: Literal[True] = True


@dataclass(frozen=True)
class RedeemFailure:
    """Token rejected.

    ``expired`` and ``used`` are recoverable by requesting a new link;
    ``invalid`` means the input was never a live token.
    """

    reason: RedeemReason
    ok: Literal[False] = False


RedeemResult = RedeemSuccess | RedeemFailure


class NotificationGateway(Protocol):
    """Outbound email boundary (see tally.core.email.ZeptoMailGateway)."""

    async def send_magic_link(self, *, to_email: str, magic_link: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_email(email: str) -> str:
    """Trim and lower-case an address."""
    return email.strip().lower()


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def generate_token() -> tuple[str, str]:
    """Generate a magic link token and its SHA-256 hash.

    Returns:
        (raw_token, hashed_token): raw for the email, hash for the store.
    """
    raw = secrets.token_urlsafe(TOKEN_BYTES)
    return raw, hash_token(raw)


_EMAIL_ADAPTER = TypeAdapter(EmailStr)


class MagicLinkService:
    """Issues and redeems magic link tokens.

    Args:
        store: Token persistence.
        gateway: Email sender.
        link_base_url: Public origin of the API, prefixed to MAGIC_LINK_PATH.
        token_ttl: Lifetime of an issued token.
        rate_limit_window: Trailing window for the per-email cap.
        rate_limit_max: Tokens allowed per email per window.
        clock: Returns the current UTC time (injected for tests).
    """

    def __init__(
        self,
        *,
        store: MagicLinkTokenStore,
        gateway: NotificationGateway,
        link_base_url: str,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        rate_limit_window: timedelta = DEFAULT_RATE_LIMIT_WINDOW,
        rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._link_base_url = link_base_url.rstrip("/")
        self._token_ttl = token_ttl
        self._rate_limit_window = rate_limit_window
        self._rate_limit_max = rate_limit_max
        self._clock = clock

    def build_link(self, raw_token: str) -> str:
        """URL the recipient clicks; carries the raw token as a query param."""
        query = urlencode({"token": raw_token}, quote_via=quote)
        return f"{self._link_base_url}{MAGIC_LINK_PATH}?{query}"

    async def request_link(self, email: str) -> None:
        """Issue a token for ``email`` and send it.

        Args:
            email: Recipient address, any case / surrounding whitespace.

        Raises:
            ValidationError: Address is not syntactically an email.
            RateLimitedError: Cap reached for this address in the window.
                No token is created.
            TokenStoreError: Count or insert failed.
            EmailDeliveryError: Gateway failed after the token was stored.
                The row is left in place and expires on its own.
        """
        normalized = normalize_email(email)
        try:
            _EMAIL_ADAPTER.validate_python(normalized)
        except PydanticValidationError as exc:
            raise ValidationError("Invalid email") from exc

        now = self._clock()
        try:
            recent = await self._store.count_recent(
                normalized, now - self._rate_limit_window
            )
        except Exception as exc:
            logger.error("Magic link rate-limit count failed", exc_info=True)
            raise TokenStoreError() from exc

        if recent >= self._rate_limit_max:
            logger.info("Magic link rate limit reached (%d in window)", recent)
            raise RateLimitedError(
                retry_after_seconds=int(self._rate_limit_window.total_seconds())
            )

        raw_token, hashed = generate_token()
        try:
            await self._store.create(
                email=normalized,
                hashed_token=hashed,
                created_at=now,
                expires_at=now + self._token_ttl,
            )
        except Exception as exc:
            logger.error("Magic link token insert failed", exc_info=True)
            raise TokenStoreError() from exc

        try:
            await self._gateway.send_magic_link(
                to_email=normalized, magic_link=self.build_link(raw_token)
            )
        except NotificationError as exc:
            # Row is kept and expires unused
            logger.error("Magic link email delivery failed: %s", exc)
            raise EmailDeliveryError() from exc

    async def redeem(self, raw_token: str | None) -> RedeemResult:
        """Validate and consume a raw token.

        Decision order: malformed → invalid (no lookup); no row → invalid;
        used → used; past expiry → expired; otherwise the atomic mark-used
        write decides. A redemption that loses that write reports ``used``;
        a failed write reports ``invalid``. Never raises.

        Args:
            raw_token: Value of the ``token`` query parameter, if any.

        Returns:
            RedeemSuccess with the recipient, or RedeemFailure with a reason.
        """
        if (
            not raw_token
            or len(raw_token) < MIN_TOKEN_LENGTH
            or len(raw_token) > MAX_TOKEN_LENGTH
        ):
            return RedeemFailure(reason="invalid")

        hashed = hash_token(raw_token)
        try:
            row = await self._store.get_by_hash(hashed)
        except Exception:
            logger.error("Magic link lookup failed", exc_info=True)
            return RedeemFailure(reason="invalid")

        if row is None:
            return RedeemFailure(reason="invalid")
        if row.used_at is not None:
            return RedeemFailure(reason="used")

        now = self._clock()
        if row.expires_at < now:
            return RedeemFailure(reason="expired")

        try:
            won = await self._store.mark_used(row.id, now)
        except Exception:
            logger.error("Magic link mark-used write failed", exc_info=True)
            return RedeemFailure(reason="invalid")

        if not won:
            return RedeemFailure(reason="used")
        return RedeemSuccess(email=row.email)
