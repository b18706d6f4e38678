"""Tests for service layer structured logging.

These tests verify that stock, production and wage operations emit
structured log entries with appropriate context information.
"""

import logging
from datetime import date

import pytest

from bakery_ledger.services.exceptions import InsufficientStock
from bakery_ledger.services.logging_utils import get_service_logger, log_operation


class TestLoggingUtilities:
    """Tests for logging utility functions."""

    def test_get_service_logger_returns_logger(self):
        """get_service_logger returns a configured Logger instance."""
        logger = get_service_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "bakery_ledger.services.test_module"

    def test_get_service_logger_extracts_module_name(self):
        """get_service_logger extracts module name from full path."""
        logger = get_service_logger("bakery_ledger.services.stock_ledger_service")
        assert logger.name == "bakery_ledger.services.stock_ledger_service"

    def test_log_operation_logs_at_info_level(self, caplog):
        """log_operation logs at INFO level by default."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="test_op", outcome="success", entity_id=123)

        assert "test_op: success" in caplog.text
        assert caplog.records[0].levelno == logging.INFO

    def test_log_operation_logs_at_custom_level(self, caplog):
        """log_operation respects custom log level."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.DEBUG):
            log_operation(
                logger, operation="debug_op", outcome="debug_outcome", level=logging.DEBUG
            )

        assert "debug_op: debug_outcome" in caplog.text
        assert caplog.records[0].levelno == logging.DEBUG

    def test_log_operation_includes_extra_context(self, caplog):
        """log_operation includes extra context in log records."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(
                logger, operation="context_test", outcome="success", batch_id=42, quantity=24
            )

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.operation == "context_test"
        assert record.outcome == "success"
        assert record.batch_id == 42
        assert record.quantity == 24


class TestServiceOperationLogging:
    """Service operations emit structured entries."""

    def test_allocate_logs_success(self, ledger, flour_batches, caplog):
        with caplog.at_level(logging.DEBUG, logger="bakery_ledger.services"):
            ledger.allocate("Flour", 10)

        records = [r for r in caplog.records if getattr(r, "operation", None) == "allocate"]
        assert records
        assert records[-1].outcome == "success"

    def test_allocate_logs_insufficient_stock_as_warning(self, ledger, flour_batches, caplog):
        with caplog.at_level(logging.INFO, logger="bakery_ledger.services"):
            with pytest.raises(InsufficientStock):
                ledger.allocate("Flour", 500)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any(getattr(r, "operation", None) == "allocate" for r in warnings)

    def test_cake_production_logs_context(self, production_service, caplog):
        with caplog.at_level(logging.INFO, logger="bakery_ledger.services"):
            production_service.log_cake_production("Shift 1", {"standard_cakes": 3})

        record = next(
            r for r in caplog.records if getattr(r, "operation", None) == "log_cake_production"
        )
        assert record.shift == "Shift 1"
        assert record.standard_cakes == 3

    def test_pay_wages_logs_outcome(self, wage_service, caplog):
        with caplog.at_level(logging.INFO, logger="bakery_ledger.services"):
            wage_service.pay_wages("Shift 1", date(2024, 3, 1))

        record = next(r for r in caplog.records if getattr(r, "operation", None) == "pay_wages")
        assert record.outcome == "already_paid"
        assert record.updated == 0
