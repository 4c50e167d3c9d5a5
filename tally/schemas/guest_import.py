"""Guest import request/response schemas.

Shared by the client-side reconciliation (which builds batches) and the
``POST /guest-import`` endpoints (which validate and write them).
"""

import uuid
from collections import Counter
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Rows per request; larger imports are split into sequential batches
IMPORT_BATCH_SIZE = 50

# Column limits of the transactions and inventory_items tables
PAYMENT_REFERENCE_MAX = 255
EXPENSE_CATEGORY_MAX = 64
NOTES_MAX = 2000
ITEM_NAME_MAX = 255
ITEM_UNIT_MAX = 32

PaymentMethod = Literal["cash", "bank_transfer", "card", "e_wallet", "other"]


def _require_unique_refs(refs: list[str]) -> None:
    duplicates = sorted(ref for ref, count in Counter(refs).items() if count > 1)
    if duplicates:
        raise ValueError(f"Duplicate client_ref in batch: {', '.join(duplicates)}")


class GuestImportRow(BaseModel):
    """One guest transaction in server shape.

    Attributes:
        client_ref: Guest-local id, used to make re-sent rows update in place.
        inventory_item_ref: client_ref of the inventory item the sale drew
            stock from, if any.
    """

    model_config = ConfigDict(extra="forbid")

    client_ref: str = Field(min_length=1, max_length=64)
    transaction_type: Literal["sale", "expense"]
    amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    payment_method: PaymentMethod
    payment_reference: str | None = Field(
        default=None, max_length=PAYMENT_REFERENCE_MAX
    )
    expense_category: str | None = Field(default=None, max_length=EXPENSE_CATEGORY_MAX)
    notes: str | None = Field(default=None, max_length=NOTES_MAX)
    transaction_date: date
    created_at: datetime | None = None
    inventory_item_ref: str | None = Field(default=None, max_length=64)
    quantity_sold: Decimal | None = Field(default=None, max_digits=14, decimal_places=3)


class GuestImportRequest(BaseModel):
    """Body for POST /guest-import."""

    model_config = ConfigDict(extra="forbid")

    business_id: uuid.UUID
    transactions: list[GuestImportRow] = Field(
        min_length=1, max_length=IMPORT_BATCH_SIZE
    )

    @model_validator(mode="after")
    def _unique_client_refs(self) -> "GuestImportRequest":
        _require_unique_refs([row.client_ref for row in self.transactions])
        return self


class GuestInventoryRow(BaseModel):
    """One guest inventory item in server shape (current stock only)."""

    model_config = ConfigDict(extra="forbid")

    client_ref: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=ITEM_NAME_MAX)
    quantity: Decimal = Field(max_digits=14, decimal_places=3)
    unit: str | None = Field(default=None, max_length=ITEM_UNIT_MAX)
    low_stock_threshold: Decimal | None = Field(
        default=None, max_digits=14, decimal_places=3
    )
    cost_price: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    selling_price: Decimal | None = Field(
        default=None, ge=0, max_digits=14, decimal_places=2
    )
    created_at: datetime | None = None


class GuestInventoryImportRequest(BaseModel):
    """Body for POST /guest-import/inventory."""

    model_config = ConfigDict(extra="forbid")

    business_id: uuid.UUID
    items: list[GuestInventoryRow] = Field(min_length=1, max_length=IMPORT_BATCH_SIZE)

    @model_validator(mode="after")
    def _unique_client_refs(self) -> "GuestInventoryImportRequest":
        _require_unique_refs([item.client_ref for item in self.items])
        return self


class GuestImportResult(BaseModel):
    """Response data for the guest import endpoints."""

    model_config = ConfigDict(extra="forbid")

    imported: int
