"""Tests for the stock ledger: receipts, listing, patches and allocation."""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from bakery_ledger.models import BatchUsage, RawMaterialBatch
from bakery_ledger.services import Database, StockLedger
from bakery_ledger.services.exceptions import (
    InsufficientStock,
    MaterialNotFound,
    PersistenceError,
    ValidationError,
)


def _stocks(test_db, *batch_ids):
    with test_db.session_scope() as session:
        return [session.get(RawMaterialBatch, batch_id).current_stock for batch_id in batch_ids]


def _price_stamp(test_db, batch_id):
    with test_db.session_scope() as session:
        return session.get(RawMaterialBatch, batch_id).price_updated_at


class TestReceiveStock:
    """Tests for receive_stock create-or-merge behaviour."""

    def test_creates_batch(self, ledger):
        batch = ledger.receive_stock("Flour", Decimal("10"), 30)

        assert batch["name"] == "Flour"
        assert batch["price"] == 10.0
        assert batch["initial_stock"] == 30
        assert batch["current_stock"] == 30
        assert batch["merged"] is False

    def test_same_price_merges_into_existing_batch(self, ledger):
        first = ledger.receive_stock("Flour", Decimal("10"), 30)
        second = ledger.receive_stock("Flour", "10.00", 20)

        assert second["id"] == first["id"]
        assert second["merged"] is True
        assert second["initial_stock"] == 50
        assert second["current_stock"] == 50
        assert len(ledger.list_materials()) == 1

    def test_new_price_creates_new_batch(self, ledger):
        first = ledger.receive_stock("Flour", Decimal("10"), 30)
        second = ledger.receive_stock("Flour", Decimal("12"), 70)

        assert second["id"] != first["id"]
        assert [b["price"] for b in ledger.list_materials()] == [10.0, 12.0]

    def test_same_price_different_name_is_separate(self, ledger):
        ledger.receive_stock("Flour", Decimal("10"), 30)
        ledger.receive_stock("Sugar", Decimal("10"), 5)

        assert len(ledger.list_materials()) == 2

    @pytest.mark.parametrize(
        "name, price, quantity",
        [
            ("", Decimal("1"), 5),
            (None, Decimal("1"), 5),
            ("Flour", "abc", 5),
            ("Flour", Decimal("-1"), 5),
            ("Flour", Decimal("1"), 0),
            ("Flour", Decimal("1"), 2.5),
            ("Flour", "4.005", 5),
        ],
    )
    def test_rejects_invalid_input(self, ledger, name, price, quantity):
        with pytest.raises(ValidationError):
            ledger.receive_stock(name, price, quantity)

        assert ledger.list_materials() == []

    def test_two_decimal_prices_merge_exactly(self, ledger):
        first = ledger.receive_stock("Sugar", "4.50", 10)
        second = ledger.receive_stock("Sugar", Decimal("4.5"), 10)

        assert second["id"] == first["id"]
        assert second["merged"] is True
        assert second["price"] == 4.5

    def test_merge_refreshes_price_timestamp(self, test_db, ledger):
        older = ledger.receive_stock("Flour", Decimal("10"), 30)
        newer = ledger.receive_stock("Flour", Decimal("12"), 70)
        ledger.receive_stock("Flour", Decimal("10"), 5)

        assert _price_stamp(test_db, older["id"]) > _price_stamp(test_db, newer["id"])


class TestListMaterials:
    """Tests for derived stock fields."""

    def test_includes_derived_fields(self, ledger, flour_batches):
        ledger.allocate("Flour", 40)

        older, newer = ledger.list_materials()

        assert older["used"] == 12
        assert older["remaining"] == 18
        assert older["out_of_stock"] is False
        assert older["stock_value"] == 180.0
        assert newer["used"] == 28
        assert newer["remaining"] == 42

    def test_includes_usage_history(self, ledger, flour_batches):
        ledger.allocate("Flour", 40)

        older, _ = ledger.list_materials()

        assert len(older["daily_usage"]) == 1
        assert older["daily_usage"][0]["quantity"] == 12
        assert older["daily_usage"][0]["unit_price"] == 10.0

    def test_exhausted_batch_is_out_of_stock(self, ledger):
        ledger.receive_stock("Yeast", Decimal("3"), 4)
        ledger.allocate("Yeast", 4)

        (batch,) = ledger.list_materials()

        assert batch["remaining"] == 0
        assert batch["out_of_stock"] is True


class TestUpdateMaterial:
    """Tests for update_material patches."""

    def test_updates_price_and_name(self, ledger, sugar_batch):
        batch = ledger.update_material(sugar_batch, {"name": "Brown Sugar", "price": "4.50"})

        assert batch["name"] == "Brown Sugar"
        assert batch["price"] == 4.5

    def test_updates_stock_within_bounds(self, ledger, sugar_batch):
        batch = ledger.update_material(sugar_batch, {"current_stock": 45})

        assert batch["current_stock"] == 45
        assert batch["used"] == 5

    def test_rejects_current_above_initial(self, ledger, sugar_batch):
        with pytest.raises(ValidationError):
            ledger.update_material(sugar_batch, {"current_stock": 51})

    def test_rejects_unknown_field(self, ledger, sugar_batch):
        with pytest.raises(ValidationError) as exc_info:
            ledger.update_material(sugar_batch, {"id": 99})

        assert "id: Field cannot be updated" in exc_info.value.errors

    def test_rejects_empty_patch(self, ledger, sugar_batch):
        with pytest.raises(ValidationError):
            ledger.update_material(sugar_batch, {})

    def test_missing_batch_raises_not_found(self, ledger):
        with pytest.raises(MaterialNotFound):
            ledger.update_material(404, {"price": 1})

    def test_rejects_price_with_more_than_two_decimals(self, ledger, sugar_batch):
        with pytest.raises(ValidationError) as exc_info:
            ledger.update_material(sugar_batch, {"price": "4.125"})

        assert "price: Must have at most 2 decimal places" in exc_info.value.errors
        assert ledger.get_material(sugar_batch)["price"] == 4.0

    def test_price_patch_refreshes_price_timestamp(self, test_db, ledger, flour_batches):
        older, newer = flour_batches

        ledger.update_material(older, {"price": "11"})

        assert _price_stamp(test_db, older) > _price_stamp(test_db, newer)

    def test_renamed_batch_joins_new_pool(self, ledger, flour_batches, sugar_batch):
        ledger.update_material(sugar_batch, {"name": "Flour"})

        consumed = ledger.allocate("Flour", 150)

        assert sorted(item["batch_id"] for item in consumed) == sorted(
            [*flour_batches, sugar_batch]
        )
        assert sum(item["quantity"] for item in consumed) == 150

    def test_get_material_missing_raises_not_found(self, ledger):
        with pytest.raises(MaterialNotFound):
            ledger.get_material(404)


class TestAllocate:
    """Tests for allocate persistence."""

    def test_deducts_across_batches(self, test_db, ledger, flour_batches):
        consumed = ledger.allocate("Flour", 40)

        assert [(c["batch_id"], c["quantity"]) for c in consumed] == [
            (flour_batches[0], 12),
            (flour_batches[1], 28),
        ]
        assert _stocks(test_db, *flour_batches) == [18, 42]

    def test_records_price_of_each_batch(self, ledger, flour_batches):
        consumed = ledger.allocate("Flour", 40)

        assert [Decimal(str(c["unit_price"])) for c in consumed] == [Decimal("10"), Decimal("12")]

    def test_over_request_leaves_stock_unchanged(self, test_db, ledger, flour_batches):
        with pytest.raises(InsufficientStock) as exc_info:
            ledger.allocate("Flour", 101)

        assert exc_info.value.available == 100
        assert _stocks(test_db, *flour_batches) == [30, 70]

    def test_empty_batch_rejects_request(self, test_db, ledger):
        batch = ledger.receive_stock("Flour", Decimal("10"), 5)
        ledger.allocate("Flour", 5)

        with pytest.raises(InsufficientStock):
            ledger.allocate("Flour", 5)

        assert _stocks(test_db, batch["id"]) == [0]

    def test_unknown_material_rejects_positive_request(self, ledger):
        with pytest.raises(InsufficientStock):
            ledger.allocate("Cocoa", 1)

    def test_zero_request_changes_nothing(self, test_db, ledger, flour_batches):
        assert ledger.allocate("Flour", 0) == []
        assert ledger.allocate("Cocoa", 0) == []

        with test_db.session_scope() as session:
            assert session.query(BatchUsage).count() == 0

    def test_storage_failure_rolls_back_every_batch(
        self, test_db, ledger, flour_batches, monkeypatch
    ):
        """A failure on the second batch must undo the first batch's write."""
        original = ledger._apply_allocation
        calls = []

        def failing_apply(batch, quantity, usage_date):
            calls.append(batch.id)
            if len(calls) == 2:
                raise OperationalError("UPDATE raw_material_batches", {}, Exception("disk I/O"))
            original(batch, quantity, usage_date)

        monkeypatch.setattr(ledger, "_apply_allocation", failing_apply)

        with pytest.raises(PersistenceError):
            ledger.allocate("Flour", 40)

        assert _stocks(test_db, *flour_batches) == [30, 70]
        with test_db.session_scope() as session:
            assert session.query(BatchUsage).count() == 0

    def test_concurrent_allocations_never_overdraw(self, tmp_path):
        """Parallel requests against one pool serialize on the material lock."""
        database = Database(f"sqlite:///{tmp_path / 'ledger.db'}").connect()
        database.init_schema()
        ledger = StockLedger(database)
        ledger.receive_stock("Flour", Decimal("10"), 30)
        ledger.receive_stock("Flour", Decimal("12"), 70)

        outcomes = []

        def worker():
            try:
                ledger.allocate("Flour", 15)
                outcomes.append("ok")
            except InsufficientStock:
                outcomes.append("insufficient")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        try:
            remaining = sum(b["current_stock"] for b in ledger.list_materials())
            assert outcomes.count("ok") == 6
            assert outcomes.count("insufficient") == 2
            assert remaining == 10
        finally:
            database.disconnect()
