"""Pytest configuration and fixtures for service and API tests."""

from decimal import Decimal

import pytest

from bakery_ledger.api import create_app
from bakery_ledger.services import (
    Database,
    ProductionService,
    StockLedger,
    SummaryService,
    WageService,
)
from bakery_ledger.utils.config import Config, reset_config


@pytest.fixture(scope="function")
def test_db():
    """Provide a clean in-memory database for each test function.

    This fixture:
    1. Connects an in-memory SQLite database
    2. Creates all tables
    3. Provides the Database handle to the test
    4. Disconnects after the test completes
    """
    database = Database("sqlite:///:memory:").connect()
    database.init_schema()

    yield database

    database.disconnect()


@pytest.fixture
def ledger(test_db):
    return StockLedger(test_db)


@pytest.fixture
def production_service(test_db, ledger):
    return ProductionService(test_db, ledger)


@pytest.fixture
def summary_service(test_db):
    return SummaryService(test_db)


@pytest.fixture
def wage_service(test_db, ledger):
    return WageService(test_db, ledger)


@pytest.fixture
def flour_batches(ledger):
    """Two flour lots: 30 units @ 10 (older) and 70 units @ 12 (newer)."""
    older = ledger.receive_stock("Flour", Decimal("10"), 30)
    newer = ledger.receive_stock("Flour", Decimal("12"), 70)
    return older["id"], newer["id"]


@pytest.fixture
def sugar_batch(ledger):
    """One sugar lot: 50 units @ 4."""
    return ledger.receive_stock("Sugar", Decimal("4"), 50)["id"]


@pytest.fixture
def app(test_db, monkeypatch):
    """Flask application wired to the test database."""
    reset_config()
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    application = create_app(Config("production"), test_db)
    application.config["TESTING"] = True
    yield application
    reset_config()


@pytest.fixture
def client(app):
    return app.test_client()
