"""Database setup utilities for Small Ledger.

Creates the ledger database on a PostgreSQL server for development and test
environments. Tables are created by ``LedgerRepository.create_tables`` or, in
production, by Alembic.
"""

import logging
from typing import Any

from sqlalchemy import text
from sqlmodel import create_engine

logger = logging.getLogger(__name__)


def create_database_if_not_exists(
    host: str = "localhost",
    port: int = 15432,
    user: str = "ledger",
    password: str = "ledgerpass",
    database: str = "ledger_test_db",
) -> bool:
    """Create a PostgreSQL database if it doesn't exist.

    Connects to the 'postgres' database to check and create the target database.

    Args:
        host: Database host.
        port: Database port.
        user: Database user.
        password: Database password.
        database: Name of the database to create.

    Returns:
        True if database was created, False if it already exists.
    """
    admin_url = f"postgresql://{user}:{password}@{host}:{port}/postgres"
    engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with engine.connect() as conn:
            result = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :dbname"),
                {"dbname": database},
            )
            if result.fetchone():
                logger.info(f"Database '{database}' already exists")
                return False

            conn.execute(text(f'CREATE DATABASE "{database}" OWNER "{user}"'))
            logger.info(f"Database '{database}' created successfully")
            return True
    finally:
        engine.dispose()


def ensure_database(db_config: dict[str, Any]) -> bool:
    """Create the configured PostgreSQL database when missing.

    Args:
        db_config: The ``db`` config section.

    Returns:
        True if a database was created. SQLite and other backends create
        their database on first connect, so nothing is done for them.
    """
    if not str(db_config.get("url", "")).startswith("postgresql"):
        return False
    return create_database_if_not_exists(
        host=db_config.get("host", "localhost"),
        port=int(db_config.get("port", 5432)),
        user=db_config["user"],
        password=db_config["password"],
        database=db_config["database"],
    )
