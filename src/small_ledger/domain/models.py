"""SQLModel data models for Small Ledger."""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, CheckConstraint, Column, Computed, DateTime, Index, UniqueConstraint, literal_column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from small_ledger.domain.enums import AccountKind
from small_ledger.domain.numeric import ExactDecimal, decimal_neg, decimal_product

JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")

# Stored quote leg of a trade, "price * -base_amount".
QUOTE_AMOUNT_SQL = decimal_product(literal_column("price"), decimal_neg(literal_column("base_amount")))


def _amount_column(nullable: bool = False) -> Column:  # type: ignore[type-arg]
    return Column(ExactDecimal(), nullable=nullable)


def _utc_column(**kwargs: Any) -> Column:  # type: ignore[type-arg]
    return Column(DateTime(timezone=True), nullable=False, **kwargs)


def derive_quote_amount(price: Decimal, base_amount: Decimal) -> Decimal:
    """Quote leg of a trade: ``price * -base_amount``."""
    return price * -base_amount


def canonical_trade_key(external_trade_id: dict[str, Any]) -> str:
    """Serialise a structured external trade id so equal ids compare equal."""
    return json.dumps(external_trade_id, sort_keys=True, separators=(",", ":"), default=str)


class Account(SQLModel, table=True):
    """Ledger account.

    Attributes:
        id: Primary key, auto-generated.
        kind: Specialization discriminator (strategy/venue), fixed at creation.
        natural_key: Strategy name or venue name, unique per kind.
        description: Free-form description.
        created_at: Creation timestamp (UTC).
    """

    __table_args__ = (
        UniqueConstraint("kind", "natural_key", name="uq_account_kind_natural_key"),
        CheckConstraint("kind IN ('strategy', 'venue')", name="ck_account_kind"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str = Field(index=True, max_length=16)
    natural_key: str = Field(max_length=64)
    description: str = Field(default="", max_length=256)
    created_at: datetime = Field(sa_column=_utc_column())

    @property
    def account_kind(self) -> AccountKind:
        return AccountKind(self.kind)

    @property
    def is_internal(self) -> bool:
        return self.account_kind.is_internal

    @property
    def is_external(self) -> bool:
        return self.account_kind.is_external


class Transfer(SQLModel, table=True):
    """Single-asset movement between two accounts.

    The debit account's balance increases by ``amount``, the credit account's
    balance decreases by it.
    """

    __tablename__ = "tx"  # type: ignore[assignment]
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_tx_amount_positive"),
        CheckConstraint("credit_account_id <> debit_account_id", name="ck_tx_distinct_accounts"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    credit_account_id: int = Field(foreign_key="account.id", index=True)
    debit_account_id: int = Field(foreign_key="account.id", index=True)
    asset: str = Field(max_length=32)
    amount: Decimal = Field(sa_column=_amount_column())
    timestamp: datetime = Field(sa_column=_utc_column(index=True))
    via_account_id: Optional[int] = Field(default=None, foreign_key="account.id")


class Trade(SQLModel, table=True):
    """Two-asset movement filled on one venue order.

    Attributes:
        strategy_account_id: Owning strategy, back-filled from order lineage.
        venue_account_id: Venue account the fill happened on.
        venue_order_id: Venue-assigned order id.
        price: Fill price (> 0).
        base_asset: Asset bought or sold.
        base_amount: Signed base quantity, positive when bought.
        quote_asset: Asset paid or received.
        quote_amount: Generated by the store as ``price * -base_amount``.
        commission_asset: Commission asset, set together with the amount.
        commission_amount: Commission amount, set together with the asset.
        timestamp: Fill timestamp (UTC).
        external_trade_id: Venue trade id as a JSON object.
        external_trade_key: Canonical form of ``external_trade_id`` for uniqueness.
    """

    __table_args__ = (
        UniqueConstraint("venue_account_id", "external_trade_key", name="uq_trade_venue_external_id"),
        CheckConstraint("price > 0", name="ck_trade_price_positive"),
        CheckConstraint("base_asset <> quote_asset", name="ck_trade_distinct_assets"),
        CheckConstraint(
            "(commission_asset IS NULL) = (commission_amount IS NULL)",
            name="ck_trade_commission_co_null",
        ),
        Index("ix_trade_venue_order", "venue_account_id", "venue_order_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    strategy_account_id: Optional[int] = Field(default=None, foreign_key="account.id", index=True)
    venue_account_id: int = Field(foreign_key="account.id")
    venue_order_id: str = Field(max_length=64)
    price: Decimal = Field(sa_column=_amount_column())
    base_asset: str = Field(max_length=32)
    base_amount: Decimal = Field(sa_column=_amount_column())
    quote_asset: str = Field(max_length=32)
    quote_amount: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(ExactDecimal(), Computed(QUOTE_AMOUNT_SQL, persisted=True)),
    )
    commission_asset: Optional[str] = Field(default=None, max_length=32)
    commission_amount: Optional[Decimal] = Field(default=None, sa_column=_amount_column(nullable=True))
    timestamp: datetime = Field(sa_column=_utc_column(index=True))
    external_trade_id: dict[str, Any] = Field(sa_column=Column(JSON_TYPE, nullable=False))
    external_trade_key: str = Field(max_length=512)

    @property
    def is_buy(self) -> bool:
        return self.base_amount > 0


class EmsOrder(SQLModel, table=True):
    """Order as tracked by the execution-management layer, owned by one strategy."""

    __tablename__ = "ems_order"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    strategy_account_id: int = Field(foreign_key="account.id", index=True)
    created_at: datetime = Field(sa_column=_utc_column())
    detail: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON_TYPE, nullable=False))


class VenueOrder(SQLModel, table=True):
    """Order as known to a venue, belonging to exactly one EMS order."""

    __tablename__ = "venue_order"  # type: ignore[assignment]

    venue_account_id: int = Field(foreign_key="account.id", primary_key=True)
    venue_order_id: str = Field(max_length=64, primary_key=True)
    ems_order_id: int = Field(foreign_key="ems_order.id", index=True)


class StrategyBalanceSnapshot(SQLModel, table=True):
    """Net strategy balance per asset as of a snapshot instant."""

    __tablename__ = "strategy_balance_snapshot"  # type: ignore[assignment]

    as_of: datetime = Field(sa_column=Column(DateTime(timezone=True), primary_key=True))
    strategy_account_id: int = Field(foreign_key="account.id", primary_key=True)
    asset: str = Field(max_length=32, primary_key=True)
    amount: Decimal = Field(sa_column=_amount_column())


class VenueBalanceSnapshot(SQLModel, table=True):
    """Net venue balance per asset as of a snapshot instant."""

    __tablename__ = "venue_balance_snapshot"  # type: ignore[assignment]

    as_of: datetime = Field(sa_column=Column(DateTime(timezone=True), primary_key=True))
    venue_account_id: int = Field(foreign_key="account.id", primary_key=True)
    asset: str = Field(max_length=32, primary_key=True)
    amount: Decimal = Field(sa_column=_amount_column())


class StrategyVenueBalanceSnapshot(SQLModel, table=True):
    """Net strategy balance held at one venue, per asset, as of a snapshot instant."""

    __tablename__ = "strategy_venue_balance_snapshot"  # type: ignore[assignment]

    as_of: datetime = Field(sa_column=Column(DateTime(timezone=True), primary_key=True))
    strategy_account_id: int = Field(foreign_key="account.id", primary_key=True)
    venue_account_id: int = Field(foreign_key="account.id", primary_key=True)
    asset: str = Field(max_length=32, primary_key=True)
    amount: Decimal = Field(sa_column=_amount_column())


class SnapshotPendingTrade(SQLModel, table=True):
    """Trade a strategy-keyed snapshot left out because it had no strategy yet.

    Once the trade is attributed, balances composed from that snapshot add it
    back, since its timestamp puts it before the snapshot's delta window.
    """

    __tablename__ = "snapshot_pending_trade"  # type: ignore[assignment]

    projection: str = Field(max_length=16, primary_key=True)
    as_of: datetime = Field(sa_column=Column(DateTime(timezone=True), primary_key=True))
    trade_id: int = Field(foreign_key="trade.id", primary_key=True)
