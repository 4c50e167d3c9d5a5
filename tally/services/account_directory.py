"""Account lookups behind the auth, session and guest-import endpoints.

Endpoints depend on the ``AccountDirectory`` protocol so tests can swap the
database for ``InMemoryAccountDirectory``.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from tally.repositories.business_repository import BusinessRepository
from tally.repositories.user_repository import UserRepository
from tally.schemas.guest_import import GuestImportRow, GuestInventoryRow


@dataclass(frozen=True)
class AccountSummary:
    id: uuid.UUID
    email: str
    email_verified: bool


@dataclass(frozen=True)
class BusinessSummary:
    id: uuid.UUID
    name: str


class AccountDirectory(Protocol):
    async def sign_in(self, email: str) -> AccountSummary:
        """Find or create the verified account for a redeemed email."""
        ...

    async def get_account(self, user_id: uuid.UUID) -> AccountSummary | None: ...

    async def get_business(self, user_id: uuid.UUID) -> BusinessSummary | None: ...

    async def import_transactions(
        self, *, business_id: uuid.UUID, rows: list[GuestImportRow]
    ) -> int: ...

    async def import_inventory_items(
        self, *, business_id: uuid.UUID, rows: list[GuestInventoryRow]
    ) -> int: ...


def _row_values(row: GuestImportRow | GuestInventoryRow, now: datetime) -> dict:
    values = row.model_dump(exclude={"created_at"})
    values["created_at"] = row.created_at or now
    return values


class SqlAccountDirectory:
    """Directory backed by the users, businesses and guest import tables.

    Args:
        db: Request-scoped async session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def sign_in(self, email: str) -> AccountSummary:
        user = await UserRepository.get_or_create_verified(
            self._db, email=email, verified_at=datetime.now(UTC)
        )
        await self._db.commit()
        return AccountSummary(id=user.id, email=user.email, email_verified=True)

    async def get_account(self, user_id: uuid.UUID) -> AccountSummary | None:
        user = await UserRepository.get_by_id(self._db, user_id)
        if user is None:
            return None
        return AccountSummary(
            id=user.id,
            email=user.email,
            email_verified=user.email_verified is not None,
        )

    async def get_business(self, user_id: uuid.UUID) -> BusinessSummary | None:
        business = await BusinessRepository.get_active_for_user(self._db, user_id)
        if business is None:
            return None
        return BusinessSummary(id=business.id, name=business.name)

    async def import_transactions(
        self, *, business_id: uuid.UUID, rows: list[GuestImportRow]
    ) -> int:
        now = datetime.now(UTC)
        written = await BusinessRepository.upsert_transactions(
            self._db,
            business_id=business_id,
            rows=[_row_values(row, now) for row in rows],
        )
        await self._db.commit()
        return written

    async def import_inventory_items(
        self, *, business_id: uuid.UUID, rows: list[GuestInventoryRow]
    ) -> int:
        now = datetime.now(UTC)
        written = await BusinessRepository.upsert_inventory_items(
            self._db,
            business_id=business_id,
            rows=[{**_row_values(row, now), "updated_at": now} for row in rows],
        )
        await self._db.commit()
        return written


class InMemoryAccountDirectory:
    """Dict-backed directory for local runs and tests."""

    def __init__(self) -> None:
        self.accounts: dict[uuid.UUID, AccountSummary] = {}
        self.businesses: dict[uuid.UUID, BusinessSummary] = {}
        # business_id -> client_ref -> row
        self.transactions: dict[uuid.UUID, dict[str, GuestImportRow]] = {}
        self.inventory_items: dict[uuid.UUID, dict[str, GuestInventoryRow]] = {}

    def add_business(
        self, user_id: uuid.UUID, name: str = "Kedai Test"
    ) -> BusinessSummary:
        business = BusinessSummary(id=uuid.uuid4(), name=name)
        self.businesses[user_id] = business
        return business

    async def sign_in(self, email: str) -> AccountSummary:
        for account in self.accounts.values():
            if account.email == email:
                return account
        account = AccountSummary(id=uuid.uuid4(), email=email, email_verified=True)
        self.accounts[account.id] = account
        return account

    async def get_account(self, user_id: uuid.UUID) -> AccountSummary | None:
        return self.accounts.get(user_id)

    async def get_business(self, user_id: uuid.UUID) -> BusinessSummary | None:
        return self.businesses.get(user_id)

    async def import_transactions(
        self, *, business_id: uuid.UUID, rows: list[GuestImportRow]
    ) -> int:
        stored = self.transactions.setdefault(business_id, {})
        for row in rows:
            stored[row.client_ref] = row
        return len({row.client_ref for row in rows})

    async def import_inventory_items(
        self, *, business_id: uuid.UUID, rows: list[GuestInventoryRow]
    ) -> int:
        stored = self.inventory_items.setdefault(business_id, {})
        for row in rows:
            stored[row.client_ref] = row
        return len({row.client_ref for row in rows})
