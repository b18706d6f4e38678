"""
Main entry point for the Bakery Shift Ledger service.

This module loads environment settings, configures logging, connects the
database and serves the HTTP API.
"""

import logging
import sys

from dotenv import load_dotenv

from bakery_ledger.api import create_app
from bakery_ledger.services.database import initialize_app_database
from bakery_ledger.utils.config import get_config

logger = logging.getLogger("bakery_ledger")


def configure_logging(level: int) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main():
    """
    Main application entry point.

    Connects the database and runs the Flask server until interrupted.
    """
    load_dotenv()

    config = get_config()
    configure_logging(config.log_level)
    logger.info(f"Starting {config.app_name} v{config.app_version}")
    logger.info(f"Environment: {config.environment}")

    try:
        database = initialize_app_database(config.database_url, echo=config.sql_echo)
    except Exception:
        logger.exception("Failed to initialize database")
        sys.exit(1)

    app = create_app(config, database)
    try:
        app.run(host=config.host, port=config.port, debug=config.is_development)
    finally:
        database.disconnect()
        logger.info("Service stopped")


if __name__ == "__main__":
    main()
