"""User model - identity minted by a successful magic link redemption."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tally.models.business import Business


class User(Base, TimestampMixin):
    """Authenticated account.

    Attributes:
        id: UUID primary key.
        email: Unique, normalized (lower-cased) email address.
        email_verified: Set on first successful redemption. NULL = unverified.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    email_verified: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    businesses: Mapped[list["Business"]] = relationship(
        "Business",
        back_populates="user",
        cascade="all, delete-orphan",
    )
