"""Domain layer - data models, enums, errors and validation schemas."""

from small_ledger.domain.enums import ALL_PROJECTIONS, VALID_ACCOUNT_KINDS, AccountKind, Projection
from small_ledger.domain.models import (
    Account,
    EmsOrder,
    StrategyBalanceSnapshot,
    StrategyVenueBalanceSnapshot,
    Trade,
    Transfer,
    VenueBalanceSnapshot,
    VenueOrder,
)
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.schemas import TradeSchema, TransferSchema

__all__ = [
    "AccountKind",
    "Projection",
    "ALL_PROJECTIONS",
    "VALID_ACCOUNT_KINDS",
    "Account",
    "Transfer",
    "Trade",
    "EmsOrder",
    "VenueOrder",
    "StrategyBalanceSnapshot",
    "VenueBalanceSnapshot",
    "StrategyVenueBalanceSnapshot",
    "ReferenceRegistry",
    "TransferSchema",
    "TradeSchema",
]
