"""Application layer - ledger facade."""

from small_ledger.application.ledger import ImportResult, LedgerService

__all__ = [
    "LedgerService",
    "ImportResult",
]
