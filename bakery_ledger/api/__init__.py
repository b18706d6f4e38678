"""
HTTP boundary for the Bakery Shift Ledger.

create_app() builds the Flask application, wires the services around one
Database handle and registers the blueprints:

- /api/raw-materials  (materials.py)
- /api/production     (production.py)
- /api/health
"""

import logging
from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from ..services import (
    Database,
    ProductionService,
    StockLedger,
    SummaryService,
    WageService,
)
from ..services.exceptions import (
    InsufficientStock,
    NotFoundError,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from ..utils.config import Config, get_config

logger = logging.getLogger(__name__)

EXTENSION_KEY = "bakery_ledger"


@dataclass
class ServiceRegistry:
    """Services sharing one Database handle."""

    database: Database
    ledger: StockLedger
    production: ProductionService
    summaries: SummaryService
    wages: WageService

    @classmethod
    def build(cls, database: Database) -> "ServiceRegistry":
        ledger = StockLedger(database)
        return cls(
            database=database,
            ledger=ledger,
            production=ProductionService(database, ledger),
            summaries=SummaryService(database),
            wages=WageService(database, ledger),
        )


def get_services() -> ServiceRegistry:
    """Services of the current Flask application."""
    return current_app.extensions[EXTENSION_KEY]


def _status_for(error: ServiceError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, InsufficientStock):
        return 409
    if isinstance(error, PersistenceError):
        return 500
    return 400


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(error: ServiceError):
        status = _status_for(error)
        body = {"error": str(error)}
        if isinstance(error, ValidationError):
            body["details"] = error.errors
        if isinstance(error, InsufficientStock):
            body["details"] = {
                "material": error.material_name,
                "required": error.required,
                "available": error.available,
            }
        if status >= 500:
            logger.error(f"Request failed: {error}", exc_info=error)
        return jsonify(body), status

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        logger.exception("Unhandled error while serving request")
        return jsonify({"error": "Internal server error"}), 500


def create_app(
    config: Optional[Config] = None,
    database: Optional[Database] = None,
) -> Flask:
    """
    Application factory.

    Args:
        config: Configuration; defaults to get_config()
        database: Storage handle; defaults to a new Database on config.database_url.
            The handle is connected and its schema created here.

    Returns:
        Configured Flask application
    """
    config = config or get_config()
    app = Flask(__name__)
    app.json.sort_keys = False

    if database is None:
        database = Database(config.database_url, echo=config.sql_echo)
    database.connect()
    database.init_schema()

    app.extensions[EXTENSION_KEY] = ServiceRegistry.build(database)

    from .materials import materials_bp
    from .production import production_bp

    app.register_blueprint(materials_bp)
    app.register_blueprint(production_bp)

    @app.route("/api/health")
    def health():
        healthy = get_services().database.verify()
        status = 200 if healthy else 503
        body = {"status": "ok" if healthy else "unavailable", "version": config.app_version}
        return jsonify(body), status

    _register_error_handlers(app)
    return app
