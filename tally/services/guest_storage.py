"""Guest-mode storage on the device.

Guest transactions and inventory items are shaped like their server
counterparts but have no server identity. They belong to the device until
reconciliation imports them or the user discards them.

Lists are validated row by row: a row that no longer parses is skipped on
read and written back untouched, so one bad row never hides or destroys
the rest. A list whose JSON cannot be read at all is moved aside to
``<key>.unreadable`` before the key is written again.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from tally.services.device_storage import DeviceStorage, StorageKeys

logger = logging.getLogger(__name__)

# business_id carried by inventory items created in guest mode
GUEST_BUSINESS_ID = "guest"

UNREADABLE_SUFFIX = ".unreadable"


class GuestTransaction(BaseModel):
    """A sale or expense recorded in guest mode."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1, max_length=64)
    transaction_type: Literal["sale", "expense"]
    amount: Decimal = Field(ge=0)
    payment_type: str = "cash"
    payment_method: str | None = None
    payment_provider: str | None = None
    payment_reference: str | None = None
    expense_category: str | None = None
    notes: str | None = None
    transaction_date: str
    created_at: datetime
    inventory_item_id: str | None = None
    quantity_sold: float | None = None


class GuestInventoryItem(BaseModel):
    """A stock item kept on the device.

    Older clients wrote ``lowStockThreshold``; both spellings are read.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1, max_length=64)
    business_id: str = GUEST_BUSINESS_ID
    name: str = Field(min_length=1)
    quantity: float = 0
    unit: str | None = None
    low_stock_threshold: float | None = Field(
        default=None,
        validation_alias=AliasChoices("low_stock_threshold", "lowStockThreshold"),
    )
    cost_price: Decimal = Decimal(0)
    selling_price: Decimal | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("cost_price", mode="before")
    @classmethod
    def _missing_cost_is_zero(cls, value: Any) -> Any:
        if value is None or value == "":
            return Decimal(0)
        return value


class GuestBusiness(BaseModel):
    """Business profile sketched during guest onboarding."""

    name: str
    type: str | None = None
    country: str | None = None
    language: str | None = None


_RAW_LIST = TypeAdapter(list[Any])

_Row = TypeVar("_Row", bound=BaseModel)


class GuestStorage:
    """Typed access to the guest keys of a DeviceStorage.

    Args:
        storage: Underlying device storage.
    """

    def __init__(self, storage: DeviceStorage) -> None:
        self._storage = storage

    def is_guest_mode(self) -> bool:
        return self._storage.get(StorageKeys.GUEST_MODE) == "true"

    def enable_guest_mode(self) -> None:
        self._storage.set(StorageKeys.GUEST_MODE, "true")

    def disable_guest_mode(self) -> None:
        """Leave guest mode and drop all guest data."""
        self.end_guest_session()
        self.clear_transactions()
        self.remove_inventory_items({item.id for item in self.get_inventory_items()})

    def end_guest_session(self) -> None:
        """Clear the guest flag, profile and stock movements; keep rows."""
        self._storage.remove(StorageKeys.GUEST_MODE)
        self._storage.remove(StorageKeys.GUEST_BUSINESS)
        self._storage.remove(StorageKeys.INVENTORY_MOVEMENTS)

    def get_business(self) -> GuestBusiness | None:
        raw = self._storage.get(StorageKeys.GUEST_BUSINESS)
        if not raw:
            return None
        try:
            return GuestBusiness.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("Ignoring unreadable guest business profile")
            return None

    def save_business(self, business: GuestBusiness) -> None:
        self._storage.set(StorageKeys.GUEST_BUSINESS, business.model_dump_json())

    # =========================================================================
    # Row lists
    # =========================================================================

    def _read_rows(self, key: str) -> list[Any] | None:
        """Raw list entries under ``key``; None when the list is unreadable."""
        raw = self._storage.get(key)
        if not raw:
            return []
        try:
            return _RAW_LIST.validate_json(raw)
        except PydanticValidationError:
            logger.warning("Guest list %s is unreadable", key)
            return None

    def _parse_rows(self, key: str, model: type[_Row]) -> tuple[list[_Row], list[Any]]:
        """Split stored rows into (parsed, skipped raw entries)."""
        parsed: list[_Row] = []
        skipped: list[Any] = []
        for entry in self._read_rows(key) or []:
            try:
                parsed.append(model.model_validate(entry))
            except PydanticValidationError:
                skipped.append(entry)
        if skipped:
            logger.warning("Skipping %d unreadable rows in %s", len(skipped), key)
        return parsed, skipped

    def _write_rows(
        self, key: str, rows: Sequence[BaseModel], skipped: list[Any]
    ) -> None:
        if self._read_rows(key) is None:
            self._storage.set(key + UNREADABLE_SUFFIX, self._storage.get(key) or "")
        entries = [row.model_dump(mode="json") for row in rows] + skipped
        if entries:
            self._storage.set(key, _RAW_LIST.dump_json(entries).decode("utf-8"))
        else:
            self._storage.remove(key)

    # =========================================================================
    # Transactions
    # =========================================================================

    def get_transactions(self) -> list[GuestTransaction]:
        """Readable guest transactions; rows that fail validation are skipped."""
        return self._parse_rows(StorageKeys.GUEST_TRANSACTIONS, GuestTransaction)[0]

    def replace_transactions(self, transactions: list[GuestTransaction]) -> None:
        """Overwrite the readable guest transactions.

        Skipped rows are kept as they were.
        """
        _, skipped = self._parse_rows(StorageKeys.GUEST_TRANSACTIONS, GuestTransaction)
        self._write_rows(StorageKeys.GUEST_TRANSACTIONS, transactions, skipped)

    def save_transaction(
        self,
        *,
        transaction_type: Literal["sale", "expense"],
        amount: Decimal,
        transaction_date: str,
        **fields: object,
    ) -> GuestTransaction:
        """Append a new guest transaction.

        Returns:
            The stored transaction with its generated id.
        """
        transaction = GuestTransaction.model_validate(
            {
                **fields,
                "id": str(uuid.uuid4()),
                "transaction_type": transaction_type,
                "amount": amount,
                "transaction_date": transaction_date,
                "created_at": datetime.now(UTC),
            }
        )
        self.replace_transactions([*self.get_transactions(), transaction])
        return transaction

    def delete_transaction(self, transaction_id: str) -> None:
        self.remove_transactions({transaction_id})

    def remove_transactions(self, transaction_ids: set[str]) -> None:
        self.replace_transactions(
            [t for t in self.get_transactions() if t.id not in transaction_ids]
        )

    def clear_transactions(self) -> None:
        """Drop every guest transaction, readable or not."""
        self._storage.remove(StorageKeys.GUEST_TRANSACTIONS)

    def transaction_count(self) -> int:
        return len(self.get_transactions())

    # =========================================================================
    # Inventory
    # =========================================================================

    def get_inventory_items(self) -> list[GuestInventoryItem]:
        """Readable inventory items that belong to the guest business."""
        items, _ = self._parse_rows(StorageKeys.INVENTORY_ITEMS, GuestInventoryItem)
        return [item for item in items if item.business_id == GUEST_BUSINESS_ID]

    def save_inventory_item(
        self, *, name: str, quantity: float = 0, **fields: object
    ) -> GuestInventoryItem:
        """Append a new guest inventory item."""
        now = datetime.now(UTC)
        item = GuestInventoryItem.model_validate(
            {
                **fields,
                "id": str(uuid.uuid4()),
                "business_id": GUEST_BUSINESS_ID,
                "name": name,
                "quantity": quantity,
                "created_at": now,
                "updated_at": now,
            }
        )
        items, skipped = self._parse_rows(
            StorageKeys.INVENTORY_ITEMS, GuestInventoryItem
        )
        self._write_rows(StorageKeys.INVENTORY_ITEMS, [*items, item], skipped)
        return item

    def remove_inventory_items(self, item_ids: set[str]) -> None:
        """Drop guest items by id; other businesses' items are untouched."""
        if not item_ids:
            return
        items, skipped = self._parse_rows(
            StorageKeys.INVENTORY_ITEMS, GuestInventoryItem
        )
        kept = [
            item
            for item in items
            if item.business_id != GUEST_BUSINESS_ID or item.id not in item_ids
        ]
        self._write_rows(StorageKeys.INVENTORY_ITEMS, kept, skipped)

    def inventory_count(self) -> int:
        return len(self.get_inventory_items())
