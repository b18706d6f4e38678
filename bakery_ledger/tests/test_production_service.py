"""Tests for production submissions."""

from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from bakery_ledger.models import ProductionLog, RawMaterialBatch
from bakery_ledger.services.exceptions import (
    InsufficientStock,
    MaterialNotFound,
    PersistenceError,
    ProductionLogNotFound,
    ValidationError,
)
from bakery_ledger.services.production_service import calculate_production_value
from bakery_ledger.utils.datetime_utils import utc_now


def _log_count(test_db):
    with test_db.session_scope() as session:
        return session.query(ProductionLog).count()


class TestCakeProduction:
    """Tests for log_cake_production."""

    def test_value_uses_cake_and_bread_prices(self):
        assert calculate_production_value(10, 4) == Decimal("670")

    def test_records_log(self, production_service):
        log = production_service.log_cake_production(
            "Shift 1", {"standard_cakes": 10, "bread": 4}, log_date="2024-03-01T08:30:00"
        )

        assert log["shift"] == "Shift 1"
        assert log["production"] == {"standard_cakes": 10, "bread": 4}
        assert log["total_value"] == 670.0
        assert log["wages_paid"] is False
        assert log["materials_used"] == []
        assert log["date"] == "2024-03-01T08:30:00"
        assert log["last_updated"] is not None

    def test_missing_count_defaults_to_zero(self, production_service):
        log = production_service.log_cake_production("Shift 2", {"bread": 2})

        assert log["production"] == {"standard_cakes": 0, "bread": 2}
        assert log["total_value"] == 110.0

    def test_date_defaults_to_now(self, production_service):
        before = utc_now().replace(microsecond=0)
        log = production_service.log_cake_production("Shift 1", {"standard_cakes": 1})

        assert datetime.fromisoformat(log["date"]) >= before

    @pytest.mark.parametrize(
        "shift, production",
        [
            ("", {"standard_cakes": 1}),
            (None, {"standard_cakes": 1}),
            ("Shift 1", None),
            ("Shift 1", {}),
            ("Shift 1", {"standard_cakes": -1}),
            ("Shift 1", {"standard_cakes": "many"}),
        ],
    )
    def test_rejects_invalid_submission(self, test_db, production_service, shift, production):
        with pytest.raises(ValidationError):
            production_service.log_cake_production(shift, production)

        assert _log_count(test_db) == 0

    def test_rejects_bad_date(self, production_service):
        with pytest.raises(ValidationError):
            production_service.log_cake_production("Shift 1", {"bread": 1}, log_date="yesterday")


class TestMaterialsUsage:
    """Tests for log_materials_usage."""

    def test_allocates_and_links_batches(self, production_service, flour_batches):
        log = production_service.log_materials_usage(
            "Shift 1", [{"material_id": flour_batches[1], "quantity": 40}]
        )

        assert log["total_value"] == 0.0
        assert log["production"] is None
        assert [(m["material_id"], m["quantity"]) for m in log["materials_used"]] == [
            (flour_batches[0], 12),
            (flour_batches[1], 28),
        ]

    def test_links_sum_to_requested_quantity_per_material(
        self, production_service, flour_batches, sugar_batch
    ):
        log = production_service.log_materials_usage(
            "Shift 1",
            [
                {"material_id": flour_batches[0], "quantity": 7},
                {"material_id": sugar_batch, "quantity": 3},
            ],
        )

        flour_ids = set(flour_batches)
        flour = sum(m["quantity"] for m in log["materials_used"] if m["material_id"] in flour_ids)
        sugar = sum(m["quantity"] for m in log["materials_used"] if m["material_id"] == sugar_batch)
        assert flour == 7
        assert sugar == 3

    def test_insufficient_stock_writes_nothing(
        self, test_db, production_service, flour_batches, sugar_batch
    ):
        with pytest.raises(InsufficientStock):
            production_service.log_materials_usage(
                "Shift 1",
                [
                    {"material_id": sugar_batch, "quantity": 5},
                    {"material_id": flour_batches[0], "quantity": 500},
                ],
            )

        assert _log_count(test_db) == 0
        with test_db.session_scope() as session:
            assert session.get(RawMaterialBatch, sugar_batch).current_stock == 50

    def test_unknown_material_raises_not_found(self, test_db, production_service):
        with pytest.raises(MaterialNotFound):
            production_service.log_materials_usage(
                "Shift 1", [{"material_id": 999, "quantity": 1}]
            )

        assert _log_count(test_db) == 0

    @pytest.mark.parametrize(
        "materials",
        [None, [], ["flour"], [{"quantity": 1}], [{"material_id": 1, "quantity": -2}]],
    )
    def test_rejects_malformed_materials(self, production_service, materials):
        with pytest.raises(ValidationError):
            production_service.log_materials_usage("Shift 1", materials)

    def test_storage_failure_rolls_back_log_and_stock(
        self, test_db, ledger, production_service, flour_batches, monkeypatch
    ):
        def failing_apply(batch, quantity, usage_date):
            raise OperationalError("UPDATE raw_material_batches", {}, Exception("locked"))

        monkeypatch.setattr(ledger, "_apply_allocation", failing_apply)

        with pytest.raises(PersistenceError):
            production_service.log_materials_usage(
                "Shift 1", [{"material_id": flour_batches[0], "quantity": 10}]
            )

        assert _log_count(test_db) == 0
        with test_db.session_scope() as session:
            stocks = [session.get(RawMaterialBatch, i).current_stock for i in flour_batches]
        assert stocks == [30, 70]

    def test_usage_date_follows_log_date(self, ledger, production_service, flour_batches):
        production_service.log_materials_usage(
            "Shift 1",
            [{"material_id": flour_batches[0], "quantity": 10}],
            log_date=date(2024, 3, 1),
        )

        usage = ledger.list_materials()[0]["daily_usage"]
        assert usage[0]["date"] == "2024-03-01"

    def test_rename_before_locking_allocates_against_current_name(
        self, test_db, ledger, production_service, sugar_batch, monkeypatch
    ):
        caster = ledger.receive_stock("Caster Sugar", Decimal("6"), 10)["id"]
        take_locks = ledger.material_locks
        locked = []

        @contextmanager
        def renaming_locks(names):
            names = sorted(names)
            locked.append(names)
            if len(locked) == 1:
                # Another request renames the batch just before the locks are held
                with test_db.session_scope() as session:
                    session.get(RawMaterialBatch, sugar_batch).name = "Caster Sugar"
            with take_locks(names):
                yield

        monkeypatch.setattr(ledger, "material_locks", renaming_locks)

        log = production_service.log_materials_usage(
            "Shift 1", [{"material_id": sugar_batch, "quantity": 30}]
        )

        assert locked == [["Sugar"], ["Caster Sugar"]]
        assert {m["material_id"]: m["quantity"] for m in log["materials_used"]} == {
            sugar_batch: 25,
            caster: 5,
        }


class TestLogQueries:
    """Tests for get_log and list_logs."""

    def test_get_log(self, production_service):
        created = production_service.log_cake_production("Shift 1", {"bread": 1})

        assert production_service.get_log(created["id"])["id"] == created["id"]

    def test_get_missing_log(self, production_service):
        with pytest.raises(ProductionLogNotFound):
            production_service.get_log(42)

    def test_list_logs_filters_inclusive_days(self, production_service):
        for day in ("2024-03-01T10:00:00", "2024-03-02T23:59:00", "2024-03-03T00:00:00"):
            production_service.log_cake_production("Shift 1", {"bread": 1}, log_date=day)

        logs = production_service.list_logs(date(2024, 3, 1), date(2024, 3, 2))

        assert [log["date"][:10] for log in logs] == ["2024-03-01", "2024-03-02"]

    def test_list_logs_rejects_inverted_range(self, production_service):
        with pytest.raises(ValidationError):
            production_service.list_logs(date(2024, 3, 2), date(2024, 3, 1))
