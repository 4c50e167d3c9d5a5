"""Repository for business lookups and guest data import."""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from tally.models.business import Business, InventoryItem, Transaction

# Columns a re-sent guest row may overwrite on (business_id, client_ref)
_TRANSACTION_UPSERT_COLUMNS: tuple[str, ...] = (
    "transaction_type",
    "amount",
    "payment_method",
    "payment_reference",
    "expense_category",
    "notes",
    "transaction_date",
    "inventory_item_ref",
    "quantity_sold",
)

_INVENTORY_UPSERT_COLUMNS: tuple[str, ...] = (
    "name",
    "quantity",
    "unit",
    "low_stock_threshold",
    "cost_price",
    "selling_price",
    "updated_at",
)


class BusinessRepository:
    """Stateless repository for businesses and their imported guest data."""

    @staticmethod
    async def get_active_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> Business | None:
        """Fetch the user's active business, if any.

        Args:
            db: Async database session.
            user_id: Owner.

        Returns:
            The first active Business, or None.
        """
        stmt = (
            select(Business)
            .where(Business.user_id == user_id, Business.is_active.is_(True))
            .order_by(Business.created_at)
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def upsert_transactions(
        db: AsyncSession,
        *,
        business_id: uuid.UUID,
        rows: list[dict[str, Any]],
    ) -> int:
        """Insert or update transactions keyed by (business_id, client_ref).

        Args:
            db: Async database session.
            business_id: Destination business (ownership checked by caller).
            rows: Column dicts; each must carry a ``client_ref``. When a
                client_ref repeats, the last row wins.

        Returns:
            Number of rows written.
        """
        return await _upsert(
            db,
            Transaction,
            constraint="uq_transactions_business_client_ref",
            columns=_TRANSACTION_UPSERT_COLUMNS,
            business_id=business_id,
            rows=rows,
        )

    @staticmethod
    async def upsert_inventory_items(
        db: AsyncSession,
        *,
        business_id: uuid.UUID,
        rows: list[dict[str, Any]],
    ) -> int:
        """Insert or update inventory items keyed by (business_id, client_ref).

        Same contract as upsert_transactions.
        """
        return await _upsert(
            db,
            InventoryItem,
            constraint="uq_inventory_items_business_client_ref",
            columns=_INVENTORY_UPSERT_COLUMNS,
            business_id=business_id,
            rows=rows,
        )


async def _upsert(
    db: AsyncSession,
    model: type[Transaction] | type[InventoryItem],
    *,
    constraint: str,
    columns: tuple[str, ...],
    business_id: uuid.UUID,
    rows: list[dict[str, Any]],
) -> int:
    # ON CONFLICT cannot touch the same row twice in one statement
    by_ref = {row["client_ref"]: row for row in rows}
    if not by_ref:
        return 0
    values = [{**row, "business_id": business_id} for row in by_ref.values()]
    stmt = insert(model).values(values)
    stmt = stmt.on_conflict_do_update(
        constraint=constraint,
        set_={col: getattr(stmt.excluded, col) for col in columns},
    )
    await db.execute(stmt)
    return len(values)
