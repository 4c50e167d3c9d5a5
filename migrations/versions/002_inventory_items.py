"""Create inventory_items; link transactions to the stock they drew from.

Revision ID: 002_inventory_items
Revises: 001_identity_tables
Create Date: 2026-10-19

- inventory_items: guest import target for current stock, unique per
  (business_id, client_ref)
- transactions.inventory_item_ref / quantity_sold: sale-to-item link carried
  over from guest mode
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "002_inventory_items"
down_revision: str | None = "001_identity_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================================
    # inventory_items
    # =========================================================================
    op.create_table(
        "inventory_items",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "business_id",
            UUID(as_uuid=True),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("client_ref", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "quantity", sa.Numeric(14, 3), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("unit", sa.String(32), nullable=True),
        sa.Column("low_stock_threshold", sa.Numeric(14, 3), nullable=True),
        sa.Column(
            "cost_price", sa.Numeric(14, 2), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("selling_price", sa.Numeric(14, 2), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "cost_price >= 0", name="ck_inventory_items_cost_non_negative"
        ),
        sa.UniqueConstraint(
            "business_id",
            "client_ref",
            name="uq_inventory_items_business_client_ref",
        ),
    )
    op.create_index(
        "ix_inventory_items_business_id", "inventory_items", ["business_id"]
    )

    # =========================================================================
    # transactions
    # =========================================================================
    op.add_column(
        "transactions",
        sa.Column("inventory_item_ref", sa.String(64), nullable=True),
    )
    op.add_column(
        "transactions",
        sa.Column("quantity_sold", sa.Numeric(14, 3), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("transactions", "quantity_sold")
    op.drop_column("transactions", "inventory_item_ref")
    op.drop_index("ix_inventory_items_business_id", table_name="inventory_items")
    op.drop_table("inventory_items")
