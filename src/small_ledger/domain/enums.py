"""Enum definitions for Small Ledger domain."""

from enum import StrEnum


class AccountKind(StrEnum):
    """Account specialization.

    Strategy accounts are the internal (asset) side, venue accounts the
    external (liability) side. A positive venue balance means the venue owes us.
    """

    STRATEGY = "strategy"
    VENUE = "venue"

    @property
    def is_internal(self) -> bool:
        return self is AccountKind.STRATEGY

    @property
    def is_external(self) -> bool:
        return self is AccountKind.VENUE


class Projection(StrEnum):
    """Account-pairing view used by the balance aggregator and snapshots."""

    STRATEGY = "strategy"
    VENUE = "venue"
    STRATEGY_VENUE = "strategy_venue"


# Valid values sets for validation
VALID_ACCOUNT_KINDS = frozenset(k.value for k in AccountKind)
ALL_PROJECTIONS = tuple(Projection)
