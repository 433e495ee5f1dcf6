"""Services layer - ledger business logic."""

from small_ledger.services.accounts import AccountService
from small_ledger.services.aggregator import BalanceAggregator, BalanceRow
from small_ledger.services.denormaliser import DenormalisationResult, DenormalisationService
from small_ledger.services.loader import LoaderService, LoadResult
from small_ledger.services.movements import MovementLog
from small_ledger.services.snapshots import SnapshotManager, SnapshotResult
from small_ledger.services.validator import ValidationResult, ValidatorService

__all__ = [
    "AccountService",
    "MovementLog",
    "DenormalisationService",
    "DenormalisationResult",
    "BalanceAggregator",
    "BalanceRow",
    "SnapshotManager",
    "SnapshotResult",
    "ValidatorService",
    "ValidationResult",
    "LoaderService",
    "LoadResult",
]
