"""Enable pgcrypto for gen_random_uuid().

Revision ID: 000_enable_extensions
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "000_enable_extensions"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")


def downgrade() -> None:
    # Fails if tables still rely on gen_random_uuid() defaults
    op.execute("DROP EXTENSION IF EXISTS pgcrypto")
