"""Data access layer - database engine and setup."""

from small_ledger.data_access.db_setup import create_database_if_not_exists, ensure_database
from small_ledger.data_access.ledger_repository import LedgerRepository

__all__ = [
    "LedgerRepository",
    "create_database_if_not_exists",
    "ensure_database",
]
