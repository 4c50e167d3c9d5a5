"""Repository for MagicLinkToken operations.

Tokens are looked up by hash only; the raw token never reaches the database.
``mark_used`` is a conditional UPDATE so that exactly one of several
concurrent redemptions can win, across any number of API instances.
"""

import uuid
from datetime import datetime
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.magic_link_token import MagicLinkToken


class MagicLinkTokenRepository:
    """Stateless repository for magic_link_tokens table operations.

    All methods are static — no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        hashed_token: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> MagicLinkToken:
        """Store a new token row.

        Args:
            db: Async database session.
            email: Normalized recipient.
            hashed_token: SHA-256 hex digest of the raw token.
            created_at: Issuance time (application clock).
            expires_at: Expiry time.

        Returns:
            Created MagicLinkToken with its server-generated id.
        """
        row = MagicLinkToken(
            email=email,
            hashed_token=hashed_token,
            created_at=created_at,
            expires_at=expires_at,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return row

    @staticmethod
    async def get_by_hash(
        db: AsyncSession,
        hashed_token: str,
    ) -> MagicLinkToken | None:
        """Look up a token by its hash.

        Returns:
            MagicLinkToken if found, None otherwise.
        """
        stmt = select(MagicLinkToken).where(
            MagicLinkToken.hashed_token == hashed_token
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_used(
        db: AsyncSession,
        *,
        token_id: uuid.UUID,
        used_at: datetime,
    ) -> bool:
        """Atomically consume a token.

        Uses WHERE used_at IS NULL so a concurrent redemption that already
        consumed the row makes this call a no-op.

        Args:
            db: Async database session.
            token_id: Row to consume.
            used_at: Consumption timestamp.

        Returns:
            True if this call consumed the token, False if it was already used
            (or the row does not exist).
        """
        result = cast(
            CursorResult[Any],
            await db.execute(
                update(MagicLinkToken)
                .where(
                    MagicLinkToken.id == token_id,
                    MagicLinkToken.used_at.is_(None),
                )
                .values(used_at=used_at)
                .execution_options(synchronize_session=False)
            ),
        )
        rows_updated: int = result.rowcount
        return rows_updated == 1

    @staticmethod
    async def count_created_since(
        db: AsyncSession,
        *,
        email: str,
        since: datetime,
    ) -> int:
        """Count tokens issued to ``email`` at or after ``since``.

        Args:
            db: Async database session.
            email: Normalized recipient.
            since: Start of the trailing rate-limit window.

        Returns:
            Number of rows in the window.
        """
        stmt = select(func.count()).where(
            MagicLinkToken.email == email,
            MagicLinkToken.created_at >= since,
        )
        result = await db.execute(stmt)
        return int(result.scalar_one())
