"""Business profile and transaction models.

Only the parts the identity subsystem touches: whether a user has an
active business (a session-resolution signal) and the inventory and
transaction rows that guest reconciliation writes into.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tally.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from tally.models.user import User


class Business(Base, TimestampMixin):
    """A user's business profile.

    Attributes:
        id: UUID primary key.
        user_id: Owning user.
        name: Display name.
        is_active: Only active businesses count as "has business profile".
    """

    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )

    user: Mapped["User"] = relationship("User", back_populates="businesses")


class Transaction(Base):
    """A sale or expense recorded against a business.

    Attributes:
        client_ref: Identifier assigned on the device before the row had a
            server identity. Unique per business so a re-sent batch updates
            rather than duplicates.
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint(
            "business_id", "client_ref", name="uq_transactions_business_client_ref"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_reference: Mapped[str | None] = mapped_column(String(255))
    expense_category: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text())
    transaction_date: Mapped[date] = mapped_column(Date(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
    )
    inventory_item_ref: Mapped[str | None] = mapped_column(String(64))
    quantity_sold: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))


class InventoryItem(Base, TimestampMixin):
    """Current stock of one item.

    Attributes:
        client_ref: Device-assigned id; transactions point at it through
            ``inventory_item_ref``. Unique per business.
        quantity: Stock on hand. Movement history is not kept here.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint(
            "business_id",
            "client_ref",
            name="uq_inventory_items_business_client_ref",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(14, 3), nullable=False, server_default=text("0")
    )
    unit: Mapped[str | None] = mapped_column(String(32))
    low_stock_threshold: Mapped[Decimal | None] = mapped_column(Numeric(14, 3))
    cost_price: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, server_default=text("0")
    )
    selling_price: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
