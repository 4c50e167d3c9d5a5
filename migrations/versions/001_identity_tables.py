"""Create identity tables: users, magic_link_tokens, businesses, transactions.

Revision ID: 001_identity_tables
Revises: 000_enable_extensions
Create Date: 2026-10-19

- users: accounts minted by magic link redemption
- magic_link_tokens: hashed single-use tokens; (email, created_at) index
  backs the per-email issuance count
- businesses: "has business profile" session signal
- transactions: guest import target, unique per (business_id, client_ref)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_identity_tables"
down_revision: str | None = "000_enable_extensions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamps() -> list[sa.Column]:
    return [
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
    ]


def upgrade() -> None:
    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_verified", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    # =========================================================================
    # magic_link_tokens
    # =========================================================================
    op.create_table(
        "magic_link_tokens",
        _uuid_pk(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_token", sa.String(64), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("hashed_token", name="uq_magic_link_tokens_hashed_token"),
    )
    op.create_index(
        "ix_magic_link_tokens_email_created_at",
        "magic_link_tokens",
        ["email", "created_at"],
    )

    # =========================================================================
    # businesses
    # =========================================================================
    op.create_table(
        "businesses",
        _uuid_pk(),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        *_timestamps(),
    )
    op.create_index("ix_businesses_user_id", "businesses", ["user_id"])

    # =========================================================================
    # transactions
    # =========================================================================
    op.create_table(
        "transactions",
        _uuid_pk(),
        sa.Column(
            "business_id",
            UUID(as_uuid=True),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("client_ref", sa.String(64), nullable=True),
        sa.Column("transaction_type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=False),
        sa.Column("payment_reference", sa.String(255), nullable=True),
        sa.Column("expense_category", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "transaction_type IN ('sale', 'expense')",
            name="ck_transactions_type",
        ),
        sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
        sa.UniqueConstraint(
            "business_id", "client_ref", name="uq_transactions_business_client_ref"
        ),
    )
    op.create_index("ix_transactions_business_id", "transactions", ["business_id"])


def downgrade() -> None:
    op.drop_index("ix_transactions_business_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_businesses_user_id", table_name="businesses")
    op.drop_table("businesses")
    op.drop_index(
        "ix_magic_link_tokens_email_created_at", table_name="magic_link_tokens"
    )
    op.drop_table("magic_link_tokens")
    op.drop_table("users")
