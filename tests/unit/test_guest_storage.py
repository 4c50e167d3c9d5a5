"""Tests for GuestStorage."""

import json
from decimal import Decimal

import pytest
from pydantic import ValidationError

from tally.services.device_storage import InMemoryDeviceStorage, StorageKeys
from tally.services.guest_storage import UNREADABLE_SUFFIX, GuestBusiness, GuestStorage


@pytest.fixture
def device() -> InMemoryDeviceStorage:
    return InMemoryDeviceStorage()


@pytest.fixture
def guest(device) -> GuestStorage:
    return GuestStorage(device)


class TestGuestMode:
    def test_off_by_default(self, guest):
        assert not guest.is_guest_mode()

    def test_enable(self, guest, device):
        guest.enable_guest_mode()

        assert guest.is_guest_mode()
        assert device.get(StorageKeys.GUEST_MODE) == "true"

    def test_disable_clears_all_guest_data(self, guest, device):
        guest.enable_guest_mode()
        guest.save_business(GuestBusiness(name="Kedai Ali"))
        guest.save_inventory_item(name="Gula", quantity=3)
        device.set(StorageKeys.INVENTORY_MOVEMENTS, "[]")
        guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("5.00"),
            transaction_date="2026-03-01",
        )
        device.set(StorageKeys.COUNTRY, "MY")

        guest.disable_guest_mode()

        assert device.snapshot() == {StorageKeys.COUNTRY: "MY"}


class TestTransactions:
    def test_save_assigns_id_and_appends(self, guest):
        first = guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("10.50"),
            transaction_date="2026-03-01",
        )
        second = guest.save_transaction(
            transaction_type="expense",
            amount=Decimal("3"),
            transaction_date="2026-03-02",
            expense_category="supplies",
        )

        stored = guest.get_transactions()
        assert [t.id for t in stored] == [first.id, second.id]
        assert first.id != second.id
        assert stored[1].expense_category == "supplies"
        assert stored[0].amount == Decimal("10.50")
        assert guest.transaction_count() == 2

    def test_negative_amount_rejected(self, guest):
        with pytest.raises(ValidationError):
            guest.save_transaction(
                transaction_type="sale",
                amount=Decimal("-1"),
                transaction_date="2026-03-01",
            )

        assert guest.transaction_count() == 0

    def test_delete(self, guest):
        keep = guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("1"),
            transaction_date="2026-03-01",
        )
        drop = guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("2"),
            transaction_date="2026-03-01",
        )

        guest.delete_transaction(drop.id)

        assert [t.id for t in guest.get_transactions()] == [keep.id]

    def test_invalid_row_reads_as_empty(self, guest, device):
        device.set(StorageKeys.GUEST_TRANSACTIONS, '[{"id": 1}]')

        assert guest.get_transactions() == []

    def test_unknown_fields_ignored(self, guest, device):
        device.set(
            StorageKeys.GUEST_TRANSACTIONS,
            '[{"id": "t1", "transaction_type": "sale", "amount": "4.00",'
            ' "transaction_date": "2026-03-01",'
            ' "created_at": "2026-03-01T08:00:00Z", "legacy_field": 1}]',
        )

        [transaction] = guest.get_transactions()
        assert transaction.id == "t1"
        assert transaction.payment_type == "cash"

    def test_replace_transactions(self, guest):
        saved = guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("1"),
            transaction_date="2026-03-01",
        )

        guest.replace_transactions([])
        assert guest.transaction_count() == 0

        guest.replace_transactions([saved])
        assert guest.get_transactions() == [saved]


def _raw_transaction(transaction_id: str, amount: str = "4.00") -> dict:
    return {
        "id": transaction_id,
        "transaction_type": "sale",
        "amount": amount,
        "transaction_date": "2026-03-01",
        "created_at": "2026-03-01T08:00:00Z",
    }


class TestUnreadableRows:
    """One bad row must neither hide nor destroy the others."""

    @pytest.fixture
    def mixed(self, device) -> list[dict]:
        rows = [_raw_transaction(f"t{i}") for i in range(5)]
        rows.insert(2, _raw_transaction("bad", amount="-1"))
        device.set(StorageKeys.GUEST_TRANSACTIONS, json.dumps(rows))
        return rows

    def test_bad_row_skipped_on_read(self, guest, mixed):
        assert [t.id for t in guest.get_transactions()] == [
            "t0",
            "t1",
            "t2",
            "t3",
            "t4",
        ]
        assert guest.transaction_count() == 5

    def test_save_keeps_bad_row(self, guest, device, mixed):
        guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("1"),
            transaction_date="2026-03-02",
        )

        stored = json.loads(device.get(StorageKeys.GUEST_TRANSACTIONS))
        assert len(stored) == 7
        assert _raw_transaction("bad", amount="-1") in stored
        assert guest.transaction_count() == 6

    def test_delete_keeps_bad_row(self, guest, device, mixed):
        guest.delete_transaction("t0")

        stored = json.loads(device.get(StorageKeys.GUEST_TRANSACTIONS))
        assert [row["id"] for row in stored] == ["t1", "t2", "t3", "t4", "bad"]

    def test_unparseable_list_is_moved_aside_before_writing(self, guest, device):
        device.set(StorageKeys.GUEST_TRANSACTIONS, "{not json")

        assert guest.get_transactions() == []
        saved = guest.save_transaction(
            transaction_type="sale",
            amount=Decimal("1"),
            transaction_date="2026-03-02",
        )

        assert device.get(StorageKeys.GUEST_TRANSACTIONS + UNREADABLE_SUFFIX) == (
            "{not json"
        )
        assert guest.get_transactions() == [saved]


class TestInventory:
    def test_save_and_count(self, guest):
        item = guest.save_inventory_item(
            name="Teh tarik", quantity=12, unit="cup", cost_price="1.20"
        )

        [stored] = guest.get_inventory_items()
        assert stored == item
        assert stored.business_id == "guest"
        assert stored.cost_price == Decimal("1.20")
        assert guest.inventory_count() == 1

    def test_only_guest_items_are_listed(self, guest, device):
        device.set(
            StorageKeys.INVENTORY_ITEMS,
            json.dumps(
                [
                    {"id": "i1", "business_id": "guest", "name": "Gula"},
                    {"id": "i2", "business_id": "b-123", "name": "Kopi"},
                ]
            ),
        )

        assert [item.id for item in guest.get_inventory_items()] == ["i1"]

    def test_legacy_fields_are_read(self, guest, device):
        device.set(
            StorageKeys.INVENTORY_ITEMS,
            json.dumps(
                [
                    {
                        "id": "i1",
                        "business_id": "guest",
                        "name": "Gula",
                        "quantity": 4,
                        "lowStockThreshold": 2,
                        "cost_price": None,
                    }
                ]
            ),
        )

        [item] = guest.get_inventory_items()
        assert item.low_stock_threshold == 2
        assert item.cost_price == Decimal(0)

    def test_remove_keeps_other_businesses(self, guest, device):
        device.set(
            StorageKeys.INVENTORY_ITEMS,
            json.dumps(
                [
                    {"id": "i1", "business_id": "guest", "name": "Gula"},
                    {"id": "i2", "business_id": "b-123", "name": "Kopi"},
                ]
            ),
        )

        guest.remove_inventory_items({"i1", "i2"})

        stored = json.loads(device.get(StorageKeys.INVENTORY_ITEMS))
        assert [row["id"] for row in stored] == ["i2"]


class TestBusiness:
    def test_round_trip(self, guest):
        guest.save_business(GuestBusiness(name="Kedai Ali", country="MY"))

        assert guest.get_business() == GuestBusiness(name="Kedai Ali", country="MY")

    def test_missing_business(self, guest):
        assert guest.get_business() is None

    def test_unreadable_business(self, guest, device):
        device.set(StorageKeys.GUEST_BUSINESS, "{}")

        assert guest.get_business() is None
