"""Magic link token model.

One row per issuance. Only the SHA-256 hash of the raw token is stored.
Rows are never deleted by the identity subsystem: consumed and expired
rows stay for audit and for the per-email rate-limit count.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Index, String, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from tally.models.base import Base


class MagicLinkToken(Base):
    """Single-use, time-limited sign-in token.

    Attributes:
        id: UUID primary key, generated by the database.
        email: Normalized recipient address.
        hashed_token: Hex SHA-256 of the raw token (unique).
        created_at: Issuance time.
        expires_at: created_at + TTL. Immutable.
        used_at: Consumption time. NULL = unconsumed; set at most once.
    """

    __tablename__ = "magic_link_tokens"
    __table_args__ = (
        Index("ix_magic_link_tokens_email_created_at", "email", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    hashed_token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    @property
    def is_used(self) -> bool:
        """True once the token has been redeemed."""
        return self.used_at is not None
