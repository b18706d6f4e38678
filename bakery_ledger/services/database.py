"""
Database connection and session management for the Bakery Shift Ledger.

This module provides the Database handle, which owns:
- Database engine creation and configuration
- Session factory for database operations
- Database initialization (create tables)
- SQLite pragma configuration (WAL mode, foreign keys)
- Explicit connect/disconnect lifecycle

A Database instance is created by the application entry point (or a test
fixture) and passed to every service; nothing in this module holds a
process-wide engine.
"""

from typing import Iterator, Optional
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..utils.config import get_config
from ..models.base import Base

logger = logging.getLogger(__name__)

EXPECTED_TABLES = ("raw_material_batches", "production_logs")


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Set SQLite pragmas on connection.

    Enables foreign key constraints and WAL mode for every new connection.
    """
    cursor = dbapi_connection.cursor()

    cursor.execute("PRAGMA foreign_keys=ON")

    # WAL does not apply to in-memory databases; SQLite ignores it there
    cursor.execute("PRAGMA journal_mode=WAL")

    cursor.execute("PRAGMA synchronous=NORMAL")

    cursor.close()


def create_database_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create and configure the database engine.

    Args:
        database_url: SQLAlchemy database URL
        echo: If True, log all SQL statements (useful for debugging)

    Returns:
        Configured SQLAlchemy Engine
    """
    logger.info(f"Creating database engine: {database_url}")

    if database_url.startswith("sqlite"):
        if ":memory:" in database_url or "mode=memory" in database_url:
            # For in-memory databases (testing), share one connection
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
        event.listen(engine, "connect", _set_sqlite_pragma)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    return engine


class Database:
    """
    Storage handle shared by the stock ledger and production services.

    Lifecycle:
        db = Database("sqlite:///bakery.db")
        db.connect()
        db.init_schema()
        with db.session_scope() as session:
            ...
        db.disconnect()
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        """
        Args:
            database_url: Optional database URL. If None, uses config default.
            echo: If True, log all SQL statements
        """
        self._database_url = database_url
        self._echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def database_url(self) -> str:
        if self._database_url is None:
            self._database_url = get_config().database_url
        return self._database_url

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._engine

    def connect(self) -> "Database":
        """
        Create the engine and session factory. Safe to call more than once.

        Returns:
            self, so ``Database(url).connect()`` chains
        """
        if self._engine is None:
            self._engine = create_database_engine(self.database_url, echo=self._echo)
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self

    def init_schema(self) -> None:
        """
        Create all tables if they don't exist.

        It's safe to call multiple times - existing tables won't be recreated.
        """
        # Import all models so they're registered with Base
        from .. import models  # noqa: F401

        logger.info("Initializing database tables")
        Base.metadata.create_all(self.engine)
        logger.info("Database tables initialized successfully")

    def get_session(self) -> Session:
        """
        Create a new database session.

        Returns:
            New Session instance; the caller commits and closes it
        """
        if self._session_factory is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Provide a transactional scope for database operations.

        - Creates a new session
        - Commits on success
        - Rolls back on exception
        - Always closes the session

        Yields:
            Database session

        Example:
            with db.session_scope() as session:
                session.add(RawMaterialBatch(name="Flour", ...))
                # Commit happens automatically if no exception
        """
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def verify(self) -> bool:
        """
        Verify that the database is accessible and has tables.

        Returns:
            True if database is valid, False otherwise
        """
        try:
            tables = inspect(self.engine).get_table_names()
        except SQLAlchemyError as e:
            logger.error(f"Database verification failed: {e}")
            return False
        return all(table in tables for table in EXPECTED_TABLES)

    def reset(self, confirm: bool = False) -> None:
        """
        Drop all tables and recreate the database.

        WARNING: This will delete all data!

        Args:
            confirm: Must be True to actually reset. Safety check.

        Raises:
            ValueError: If confirm is not True
        """
        if not confirm:
            raise ValueError("Must pass confirm=True to reset database. This will delete all data!")

        logger.warning("RESETTING DATABASE - ALL DATA WILL BE LOST")

        from .. import models  # noqa: F401

        Base.metadata.drop_all(self.engine)
        logger.info("All tables dropped")

        Base.metadata.create_all(self.engine)
        logger.info("Tables recreated")

    def disconnect(self) -> None:
        """Dispose the engine and forget the session factory."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database connections closed")

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "disconnected"
        return f"Database(url='{self._database_url}', {state})"


def initialize_app_database(database_url: Optional[str] = None, echo: bool = False) -> Database:
    """
    Connect to the application database and make sure its tables exist.

    This is the main entry point for setting up the database when the app starts.

    Returns:
        Connected Database handle
    """
    database = Database(database_url, echo=echo).connect()
    database.init_schema()

    if database.verify():
        logger.info("Database initialized and verified successfully")
    else:
        logger.warning("Database verification failed - tables may not exist")

    return database
