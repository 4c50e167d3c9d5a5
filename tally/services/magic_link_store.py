"""Token store abstraction for magic link tokens.

The service only talks to the ``MagicLinkTokenStore`` protocol:

- ``SqlMagicLinkTokenStore``: PostgreSQL via MagicLinkTokenRepository.
  Commits after every write so issuance and consumption are durable before
  the caller acts on them.
- ``InMemoryMagicLinkTokenStore``: dict-backed, for local runs and tests.
  Safe for a single asyncio event loop (no awaits inside a mutation), not for
  multi-threaded or multi-process use.
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from tally.repositories.magic_link_token_repository import MagicLinkTokenRepository


@dataclass(frozen=True)
class StoredToken:
    """Snapshot of a token row, detached from any session.

    Attributes:
        id: Store-generated identifier.
        email: Normalized recipient.
        hashed_token: SHA-256 hex digest of the raw token.
        created_at: Issuance time.
        expires_at: Expiry time.
        used_at: Consumption time, None while unconsumed.
    """

    id: uuid.UUID
    email: str
    hashed_token: str
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None = None


class MagicLinkTokenStore(Protocol):
    """Persistence contract used by MagicLinkService."""

    async def create(
        self,
        *,
        email: str,
        hashed_token: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> StoredToken: ...

    async def get_by_hash(self, hashed_token: str) -> StoredToken | None: ...

    async def mark_used(self, token_id: uuid.UUID, used_at: datetime) -> bool:
        """Consume the token; True only for the call that flipped used_at."""
        ...

    async def count_recent(self, email: str, since: datetime) -> int: ...


class SqlMagicLinkTokenStore:
    """Store backed by the magic_link_tokens table.

    Args:
        db: Request-scoped async session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create(
        self,
        *,
        email: str,
        hashed_token: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> StoredToken:
        row = await MagicLinkTokenRepository.create(
            self._db,
            email=email,
            hashed_token=hashed_token,
            created_at=created_at,
            expires_at=expires_at,
        )
        await self._db.commit()
        return StoredToken(
            id=row.id,
            email=row.email,
            hashed_token=row.hashed_token,
            created_at=row.created_at,
            expires_at=row.expires_at,
            used_at=row.used_at,
        )

    async def get_by_hash(self, hashed_token: str) -> StoredToken | None:
        row = await MagicLinkTokenRepository.get_by_hash(self._db, hashed_token)
        if row is None:
            return None
        return StoredToken(
            id=row.id,
            email=row.email,
            hashed_token=row.hashed_token,
            created_at=row.created_at,
            expires_at=row.expires_at,
            used_at=row.used_at,
        )

    async def mark_used(self, token_id: uuid.UUID, used_at: datetime) -> bool:
        won = await MagicLinkTokenRepository.mark_used(
            self._db, token_id=token_id, used_at=used_at
        )
        await self._db.commit()
        return won

    async def count_recent(self, email: str, since: datetime) -> int:
        return await MagicLinkTokenRepository.count_created_since(
            self._db, email=email, since=since
        )


class InMemoryMagicLinkTokenStore:
    """Dict-backed store with the same semantics as the SQL store."""

    def __init__(self) -> None:
        self._rows: dict[uuid.UUID, StoredToken] = {}
        self._by_hash: dict[str, uuid.UUID] = {}

    async def create(
        self,
        *,
        email: str,
        hashed_token: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> StoredToken:
        if hashed_token in self._by_hash:
            raise ValueError("hashed_token must be unique")
        row = StoredToken(
            id=uuid.uuid4(),
            email=email,
            hashed_token=hashed_token,
            created_at=created_at,
            expires_at=expires_at,
        )
        self._rows[row.id] = row
        self._by_hash[hashed_token] = row.id
        return row

    async def get_by_hash(self, hashed_token: str) -> StoredToken | None:
        token_id = self._by_hash.get(hashed_token)
        if token_id is None:
            return None
        return self._rows[token_id]

    async def mark_used(self, token_id: uuid.UUID, used_at: datetime) -> bool:
        row = self._rows.get(token_id)
        if row is None or row.used_at is not None:
            return False
        self._rows[token_id] = replace(row, used_at=used_at)
        return True

    async def count_recent(self, email: str, since: datetime) -> int:
        return sum(
            1
            for row in self._rows.values()
            if row.email == email and row.created_at >= since
        )

    def all(self) -> list[StoredToken]:
        """Every stored row, in insertion order."""
        return list(self._rows.values())

    def clear(self) -> None:
        """Drop all rows (for testing)."""
        self._rows.clear()
        self._by_hash.clear()
