"""Repository for User lookups and the find-or-create step of sign-in."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.user import User


class UserRepository:
    """Stateless repository for users table operations."""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key."""
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == email.strip().lower())
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_verified(
        db: AsyncSession,
        *,
        email: str,
        verified_at: datetime,
    ) -> User:
        """Return the user for ``email``, creating it if needed.

        Marks the address verified: receiving and redeeming the link proves
        control of the mailbox.

        Args:
            db: Async database session.
            email: Normalized email from a successful redemption.
            verified_at: Timestamp to record as email_verified.

        Returns:
            Existing or newly created User.
        """
        user = await UserRepository.get_by_email(db, email)
        if user is None:
            user = User(email=email.strip().lower(), email_verified=verified_at)
            db.add(user)
            await db.flush()
            await db.refresh(user)
        elif user.email_verified is None:
            user.email_verified = verified_at
            await db.flush()
        return user
