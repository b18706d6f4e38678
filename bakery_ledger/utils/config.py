"""
Configuration management for the Bakery Shift Ledger application.

This module handles:
- Database URL configuration
- HTTP server settings (host, port)
- Logging settings
- Environment-specific configuration (development vs. production)

Values come from environment variables. A ``.env`` file is loaded by
``bakery_ledger.main`` before the configuration is first read.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
)

ENV_VARIABLE = "BAKERY_LEDGER_ENV"


class Config:
    """
    Application configuration manager.

    Handles all configuration settings including database location,
    server binding and logging verbosity.
    """

    def __init__(self, environment: str = "production"):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if environment == "development":
            # Use project data/ directory for development
            self._data_dir = self._get_project_data_dir()
        else:
            # Use a per-user directory for production
            self._data_dir = Path(
                os.environ.get("BAKERY_LEDGER_DATA_DIR", Path.home() / ".bakery_ledger")
            )

        self._database_url = os.environ.get("DATABASE_URL") or None
        self._host = os.environ.get("HOST", "0.0.0.0")
        self._port = self._read_port()
        self._log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        self._sql_echo = os.environ.get("SQL_ECHO", "").lower() in ("1", "true", "yes")

    def _read_port(self) -> int:
        """Port from PORT, falling back to 5000 with a warning when invalid."""
        value = os.environ.get("PORT", "5000")
        try:
            return int(value)
        except ValueError:
            logging.getLogger(__name__).warning(f"Invalid PORT '{value}', using 5000")
            return 5000

    def _get_project_data_dir(self) -> Path:
        """
        Get the project's data directory for development.

        Returns:
            Path to project data/ directory
        """
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _ensure_directories(self):
        """Create the data directory if it doesn't exist."""
        self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        """Application name."""
        return self._app_name

    @property
    def app_version(self) -> str:
        """Application version."""
        return self._app_version

    @property
    def database_version(self) -> str:
        """Database schema version."""
        return self._database_version

    @property
    def database_path(self) -> Path:
        """Path of the default SQLite file (unused when DATABASE_URL is set)."""
        return self._data_dir / DATABASE_FILENAME

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            DATABASE_URL if set, otherwise a SQLite file URL in the data directory
        """
        if self._database_url:
            return self._database_url

        self._ensure_directories()
        # Use forward slashes for SQLite URL
        db_path_str = str(self.database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def host(self) -> str:
        """Interface the HTTP server binds to."""
        return self._host

    @property
    def port(self) -> int:
        """Port the HTTP server listens on."""
        return self._port

    @property
    def log_level(self) -> int:
        """Numeric logging level parsed from LOG_LEVEL."""
        return getattr(logging, self._log_level, logging.INFO)

    @property
    def sql_echo(self) -> bool:
        """Whether SQLAlchemy should log every statement."""
        return self._sql_echo

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def __repr__(self) -> str:
        """String representation of config."""
        return f"Config(environment='{self.environment}', port={self._port})"


# Global configuration instance
_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents accidental database
    switching mid-process.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    BAKERY_LEDGER_ENV or defaults to production. Ignored if
                    singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VARIABLE, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger = logging.getLogger(__name__)
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton to prevent database switching."
        )

    return _config_instance


def reset_config():
    """
    Reset the global configuration instance.

    Useful for testing.
    """
    global _config_instance
    _config_instance = None
