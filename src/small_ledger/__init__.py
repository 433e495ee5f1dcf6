"""small_ledger - double-entry bookkeeping and balance reconciliation for trading strategies."""

from small_ledger.application import ImportResult, LedgerService
from small_ledger.domain import Account, AccountKind, Projection, Trade, Transfer
from small_ledger.services import BalanceRow, LoadResult, SnapshotResult, ValidationResult

__version__ = "0.1.0"

__all__ = [
    "LedgerService",
    "ImportResult",
    "Account",
    "Transfer",
    "Trade",
    "AccountKind",
    "Projection",
    "BalanceRow",
    "SnapshotResult",
    "ValidationResult",
    "LoadResult",
]
