"""Exception hierarchy for ledger operations.

Three families mirror how a caller is expected to react:

- ``LedgerValidationError``: bad input, fix and resubmit.
- ``LedgerConflictError``: the natural key already exists, resubmitting the
  same input collides again.
- ``LedgerReferenceError``: an id, asset or venue does not resolve.

All of them carry the offending values as attributes so callers can log or
inspect them without parsing messages.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class for all ledger errors."""


class LedgerValidationError(LedgerError, ValueError):
    """Input rejected before anything was written."""


class LedgerConflictError(LedgerError):
    """Uniqueness violation on a natural key."""


class LedgerReferenceError(LedgerError, LookupError):
    """Referenced entity does not exist or has the wrong kind."""


class InvalidAmount(LedgerValidationError):
    def __init__(self, amount: Decimal) -> None:
        self.amount = amount
        super().__init__(f"Transfer amount must be strictly positive, got {amount}")


class InvalidPrice(LedgerValidationError):
    def __init__(self, price: Decimal) -> None:
        self.price = price
        super().__init__(f"Trade price must be strictly positive, got {price}")


class SameAccount(LedgerValidationError):
    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(f"Credit and debit account are both {account_id}")


class InconsistentCommission(LedgerValidationError):
    def __init__(self, commission_asset: str | None, commission_amount: Decimal | None) -> None:
        self.commission_asset = commission_asset
        self.commission_amount = commission_amount
        super().__init__(
            "Commission asset and amount must both be set or both be empty "
            f"(asset={commission_asset!r}, amount={commission_amount!r})"
        )


class InvalidTrade(LedgerValidationError):
    """Trade legs are inconsistent with each other."""

    def __init__(self, reason: str, **fields: Any) -> None:
        self.reason = reason
        self.fields = fields
        super().__init__(f"Invalid trade: {reason} {fields}")


class DuplicateAccountName(LedgerConflictError):
    def __init__(self, kind: str, natural_key: str) -> None:
        self.kind = kind
        self.natural_key = natural_key
        super().__init__(f"A {kind} account named {natural_key!r} already exists")


class DuplicateTrade(LedgerConflictError):
    def __init__(self, venue_account_id: int, external_trade_id: dict[str, Any]) -> None:
        self.venue_account_id = venue_account_id
        self.external_trade_id = external_trade_id
        super().__init__(
            f"Trade {external_trade_id} already recorded for venue account {venue_account_id}"
        )


class DuplicateVenueOrder(LedgerConflictError):
    def __init__(self, venue_account_id: int, venue_order_id: str) -> None:
        self.venue_account_id = venue_account_id
        self.venue_order_id = venue_order_id
        super().__init__(
            f"Venue order {venue_order_id!r} already recorded for venue account {venue_account_id}"
        )


class UnknownAccount(LedgerReferenceError):
    def __init__(self, account: int | str) -> None:
        self.account = account
        super().__init__(f"Unknown account: {account!r}")


class UnknownAsset(LedgerReferenceError):
    def __init__(self, asset: str) -> None:
        self.asset = asset
        super().__init__(f"Unknown asset: {asset!r}")


class UnknownVenue(LedgerReferenceError):
    def __init__(self, venue: str) -> None:
        self.venue = venue
        super().__init__(f"Unknown venue: {venue!r}")


class UnknownEmsOrder(LedgerReferenceError):
    def __init__(self, ems_order_id: int) -> None:
        self.ems_order_id = ems_order_id
        super().__init__(f"Unknown EMS order: {ems_order_id}")


class AccountKindMismatch(LedgerReferenceError):
    def __init__(self, account_id: int, expected: str, actual: str) -> None:
        self.account_id = account_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Account {account_id} is a {actual} account, expected {expected}")


class SnapshotOrderError(LedgerError, ValueError):
    """Snapshot instant is older than the latest snapshot of the projection."""

    def __init__(self, projection: str, instant: datetime, latest: datetime) -> None:
        self.projection = projection
        self.instant = instant
        self.latest = latest
        super().__init__(
            f"Cannot snapshot {projection} at {instant.isoformat()}: "
            f"latest snapshot is at {latest.isoformat()}"
        )
