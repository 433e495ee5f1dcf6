"""Database repository owning the ledger engine and sessions."""

import logging
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from small_ledger.domain.numeric import register_sqlite_functions

logger = logging.getLogger(__name__)

# Isolation giving snapshot jobs a consistent read of the movement log.
SNAPSHOT_ISOLATION_LEVELS = {
    "postgresql": "REPEATABLE READ",
}


def _configure_sqlite_connection(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
    register_sqlite_functions(dbapi_connection)


class LedgerRepository:
    """Repository for ledger engine and session management.

    Args:
        database_url: SQLAlchemy connection URL (PostgreSQL in production).
        echo: Whether to echo SQL statements (default: False).
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self._engine = create_engine(database_url, echo=echo)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _configure_sqlite_connection)
        logger.info(f"LedgerRepository initialized ({self._engine.dialect.name})")

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_tables(self) -> None:
        """Create all tables defined in SQLModel metadata."""
        from small_ledger.domain import models  # noqa: F401

        SQLModel.metadata.create_all(self._engine)
        logger.info("Database tables created")

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            SQLModel Session instance.
        """
        return Session(self._engine)

    def get_snapshot_session(self) -> Session:
        """Get a session whose transaction reads a consistent view of the log.

        Returns:
            SQLModel Session bound with repeatable-read isolation where the
            backend supports it.
        """
        isolation_level = SNAPSHOT_ISOLATION_LEVELS.get(self._engine.dialect.name)
        if isolation_level is None:
            return Session(self._engine)
        return Session(self._engine.execution_options(isolation_level=isolation_level))

    def get_count(self, table_name: str) -> int:
        """Get the count of rows in a table.

        Args:
            table_name: Name of the table to count.

        Returns:
            Number of rows in the table.
        """
        with Session(self._engine) as session:
            result = session.execute(text(f"SELECT COUNT(*) FROM {table_name}"))  # pyrefly: ignore[deprecated]
            return result.scalar() or 0

    def close(self) -> None:
        """Dispose of the database engine."""
        self._engine.dispose()
        logger.info("LedgerRepository connection closed")
