"""Guest reconciliation: one-shot import of guest data into an account.

Offered when a business profile becomes available while guest transactions
or inventory items exist on the device. The user chooses:

- accept: inventory items, then transactions, are pushed in sequential
  batches of IMPORT_BATCH_SIZE. Local data is cleared only after every
  batch succeeded; any failure leaves it fully intact and reports how far
  the import got.
- discard: local guest data is cleared without any remote write.

Both outcomes disable guest mode. Once settled, the offer does not recur.
Guest rows that no longer parse are never imported and stay on the device.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Protocol, TypeVar

from tally.schemas.guest_import import (
    EXPENSE_CATEGORY_MAX,
    IMPORT_BATCH_SIZE,
    ITEM_NAME_MAX,
    ITEM_UNIT_MAX,
    NOTES_MAX,
    PAYMENT_REFERENCE_MAX,
    GuestImportRow,
    GuestInventoryRow,
)
from tally.services.guest_storage import (
    GuestInventoryItem,
    GuestStorage,
    GuestTransaction,
)

logger = logging.getLogger(__name__)

_DIRECT_METHODS = frozenset({"cash", "bank_transfer", "card", "e_wallet", "other"})
_WALLET_BRANDS = frozenset(
    {"duitnow", "tng", "boost", "grabpay", "shopeepay", "mobile_money"}
)

_CENT = Decimal("0.01")
_MILLI = Decimal("0.001")

_T = TypeVar("_T")


class ImportTarget(Protocol):
    """Authenticated storage that receives imported rows."""

    async def push_batch(
        self, *, business_id: str, rows: list[GuestImportRow]
    ) -> None: ...

    async def push_inventory_batch(
        self, *, business_id: str, rows: list[GuestInventoryRow]
    ) -> None: ...


class ReconciliationStatus(str, Enum):
    IMPORTED = "imported"
    DISCARDED = "discarded"
    FAILED = "failed"
    NOTHING_TO_IMPORT = "nothing_to_import"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of accept() or discard().

    Attributes:
        status: What happened.
        total_rows: Guest rows considered.
        imported_batches: Batches the target accepted.
        total_batches: Batches the import was split into.
        error: Failure description when status is FAILED.
    """

    status: ReconciliationStatus
    total_rows: int = 0
    imported_batches: int = 0
    total_batches: int = 0
    error: str | None = None


class ReconciliationInProgress(Exception):
    """accept() was called while another accept() is still running."""


def map_payment_method(payment: str | None) -> str:
    """Map a guest payment type onto the server's payment methods."""
    value = (payment or "").strip().lower()
    if value in _DIRECT_METHODS:
        return value
    if value == "credit":
        return "card"
    if value in _WALLET_BRANDS:
        return "e_wallet"
    return "other"


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _measure(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)).quantize(_MILLI, rounding=ROUND_HALF_UP)


def _clip(value: str | None, limit: int) -> str | None:
    return value[:limit] if value is not None else None


def to_import_row(transaction: GuestTransaction) -> GuestImportRow:
    """Convert a guest transaction into the import wire shape.

    Amounts are rounded half-up to cents and free text is cut to the
    server's column limits, so anything the device accepted can be sent.
    """
    return GuestImportRow(
        client_ref=transaction.id,
        transaction_type=transaction.transaction_type,
        amount=_money(transaction.amount),
        payment_method=map_payment_method(
            transaction.payment_method or transaction.payment_type
        ),
        payment_reference=_clip(transaction.payment_reference, PAYMENT_REFERENCE_MAX),
        expense_category=_clip(transaction.expense_category, EXPENSE_CATEGORY_MAX),
        notes=_clip(transaction.notes, NOTES_MAX),
        transaction_date=transaction.transaction_date[:10],
        created_at=transaction.created_at,
        inventory_item_ref=transaction.inventory_item_id,
        quantity_sold=_measure(transaction.quantity_sold),
    )


def to_inventory_row(item: GuestInventoryItem) -> GuestInventoryRow:
    """Convert a guest inventory item into the import wire shape."""
    return GuestInventoryRow(
        client_ref=item.id,
        name=item.name[:ITEM_NAME_MAX],
        quantity=_measure(item.quantity),
        unit=_clip(item.unit, ITEM_UNIT_MAX),
        low_stock_threshold=_measure(item.low_stock_threshold),
        cost_price=_money(item.cost_price),
        selling_price=(
            _money(item.selling_price) if item.selling_price is not None else None
        ),
        created_at=item.created_at,
    )


def _batches(rows: list[_T], size: int) -> list[list[_T]]:
    return [rows[i : i + size] for i in range(0, len(rows), size)]


class GuestReconciliation:
    """Runs the guest-to-account import at most once per transition.

    Args:
        guest: Guest storage on this device.
        target: Where accepted rows are written.
        batch_size: Rows per push.
    """

    def __init__(
        self,
        guest: GuestStorage,
        target: ImportTarget,
        *,
        batch_size: int = IMPORT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._guest = guest
        self._target = target
        self._batch_size = batch_size
        self._running = False
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def _pending_count(self) -> int:
        return self._guest.transaction_count() + self._guest.inventory_count()

    def should_offer(self, *, has_business_profile: bool | None) -> bool:
        """True when the accept/discard choice should be shown."""
        if not has_business_profile or self._settled or self._running:
            return False
        return self._pending_count() > 0

    async def accept(self, business_id: str) -> ReconciliationResult:
        """Import every guest inventory item and transaction into ``business_id``.

        Raises:
            ReconciliationInProgress: Another accept() is running.

        Returns:
            IMPORTED on full success, FAILED with local data untouched
            otherwise, NOTHING_TO_IMPORT if there was no guest data.
        """
        if self._running:
            raise ReconciliationInProgress()

        items = self._guest.get_inventory_items()
        transactions = self._guest.get_transactions()
        if not items and not transactions:
            return ReconciliationResult(status=ReconciliationStatus.NOTHING_TO_IMPORT)

        self._running = True
        try:
            return await self._import(business_id, items, transactions)
        finally:
            self._running = False

    async def _import(
        self,
        business_id: str,
        items: list[GuestInventoryItem],
        transactions: list[GuestTransaction],
    ) -> ReconciliationResult:
        total = len(items) + len(transactions)
        try:
            item_rows = [to_inventory_row(i) for i in items]
            rows = [to_import_row(t) for t in transactions]
        except ValueError as exc:
            logger.warning("Guest data could not be converted for import: %s", exc)
            return ReconciliationResult(
                status=ReconciliationStatus.FAILED,
                total_rows=total,
                error="Guest data could not be converted",
            )

        # Items first so imported sales can point at them
        pushes: list[tuple[Callable[..., Awaitable[None]], list[Any]]] = [
            (self._target.push_inventory_batch, batch)
            for batch in _batches(item_rows, self._batch_size)
        ] + [
            (self._target.push_batch, batch)
            for batch in _batches(rows, self._batch_size)
        ]
        for done, (push, batch) in enumerate(pushes):
            try:
                await push(business_id=business_id, rows=batch)
            except Exception as exc:
                logger.warning(
                    "Guest import failed at batch %d/%d",
                    done + 1,
                    len(pushes),
                    exc_info=True,
                )
                return ReconciliationResult(
                    status=ReconciliationStatus.FAILED,
                    total_rows=total,
                    imported_batches=done,
                    total_batches=len(pushes),
                    error=str(exc) or type(exc).__name__,
                )

        self._clear_imported(
            item_ids={i.id for i in items},
            transaction_ids={t.id for t in transactions},
        )
        logger.info(
            "Guest import completed: %d items, %d transactions in %d batches",
            len(items),
            len(transactions),
            len(pushes),
        )
        return ReconciliationResult(
            status=ReconciliationStatus.IMPORTED,
            total_rows=total,
            imported_batches=len(pushes),
            total_batches=len(pushes),
        )

    def _clear_imported(self, *, item_ids: set[str], transaction_ids: set[str]) -> None:
        # Rows written on the device while the import ran are kept
        self._guest.remove_inventory_items(item_ids)
        self._guest.remove_transactions(transaction_ids)
        self._guest.end_guest_session()
        self._settled = self._pending_count() == 0

    def discard(self) -> ReconciliationResult:
        """Drop guest data without importing it.

        Raises:
            ReconciliationInProgress: An accept() is running.
        """
        if self._running:
            raise ReconciliationInProgress()
        total = self._pending_count()
        self._guest.disable_guest_mode()
        self._settled = True
        return ReconciliationResult(
            status=ReconciliationStatus.DISCARDED, total_rows=total
        )
