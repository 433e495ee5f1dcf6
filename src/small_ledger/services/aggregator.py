"""Balance aggregator: net movement per account and asset within a time window.

Every projection is the sum of signed "legs" taken from the movement log:

========================  ===========================  ===============================
projection                transfer legs                trade legs
========================  ===========================  ===============================
strategy                  debit +amount, credit        +base, +quote on the attributed
                          -amount, strategy endpoints  strategy
venue                     debit +amount, credit        -base, -quote on the venue
                          -amount, venue endpoints     account
strategy_venue            strategy<->venue transfers,  +base, +quote on (strategy,
                          from the strategy side       venue account)
========================  ===========================  ===============================

Windows are half-open: ``after`` is exclusive and ``until`` inclusive, so
``diff_till(S)`` and ``diff_since(S)`` partition the log exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import Select, select, union_all
from sqlalchemy.sql.elements import ColumnElement

from small_ledger.domain.enums import AccountKind, Projection
from small_ledger.domain.models import Account, Trade, Transfer
from small_ledger.domain.numeric import decimal_neg, decimal_sign, decimal_sum
from small_ledger.domain.timestamps import as_utc

if TYPE_CHECKING:
    from sqlmodel import Session

    from small_ledger.data_access.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)

KEY_COLUMNS: dict[Projection, tuple[str, ...]] = {
    Projection.STRATEGY: ("strategy_account_id",),
    Projection.VENUE: ("venue_account_id",),
    Projection.STRATEGY_VENUE: ("strategy_account_id", "venue_account_id"),
}

_tx = Transfer.__table__  # type: ignore[attr-defined]
_trade = Trade.__table__  # type: ignore[attr-defined]
_account = Account.__table__  # type: ignore[attr-defined]


@dataclass(frozen=True)
class BalanceRow:
    """Net amount of one asset for one projection key.

    Attributes:
        key: Account id(s) in the order given by ``KEY_COLUMNS``.
        asset: Asset symbol.
        amount: Signed net amount.
    """

    key: tuple[int, ...]
    asset: str
    amount: Decimal


def _window(column: Any, after: datetime | None, until: datetime | None) -> list[ColumnElement[bool]]:
    clauses: list[ColumnElement[bool]] = []
    if after is not None:
        clauses.append(column > after)
    if until is not None:
        clauses.append(column <= until)
    return clauses


def _single_kind_transfer_legs(kind: AccountKind, key: str, after: datetime | None, until: datetime | None) -> list[Select]:
    window = _window(_tx.c.timestamp, after, until)
    debit = select(
        _tx.c.debit_account_id.label(key),
        _tx.c.asset.label("asset"),
        _tx.c.amount.label("amount"),
    ).select_from(
        _tx.join(_account, _account.c.id == _tx.c.debit_account_id)
    ).where(_account.c.kind == kind.value, *window)
    credit = select(
        _tx.c.credit_account_id.label(key),
        _tx.c.asset.label("asset"),
        decimal_neg(_tx.c.amount).label("amount"),
    ).select_from(
        _tx.join(_account, _account.c.id == _tx.c.credit_account_id)
    ).where(_account.c.kind == kind.value, *window)
    return [debit, credit]


def _strategy_legs(after: datetime | None, until: datetime | None) -> list[Select]:
    window = _window(_trade.c.timestamp, after, until)
    attributed = _trade.c.strategy_account_id.is_not(None)
    return _single_kind_transfer_legs(AccountKind.STRATEGY, "strategy_account_id", after, until) + [
        select(
            _trade.c.strategy_account_id,
            _trade.c.base_asset.label("asset"),
            _trade.c.base_amount.label("amount"),
        ).where(attributed, *window),
        select(
            _trade.c.strategy_account_id,
            _trade.c.quote_asset.label("asset"),
            _trade.c.quote_amount.label("amount"),
        ).where(attributed, *window),
    ]


def _venue_legs(after: datetime | None, until: datetime | None) -> list[Select]:
    window = _window(_trade.c.timestamp, after, until)
    return _single_kind_transfer_legs(AccountKind.VENUE, "venue_account_id", after, until) + [
        select(
            _trade.c.venue_account_id,
            _trade.c.base_asset.label("asset"),
            decimal_neg(_trade.c.base_amount).label("amount"),
        ).where(*window),
        select(
            _trade.c.venue_account_id,
            _trade.c.quote_asset.label("asset"),
            decimal_neg(_trade.c.quote_amount).label("amount"),
        ).where(*window),
    ]


def _strategy_venue_legs(after: datetime | None, until: datetime | None) -> list[Select]:
    tx_window = _window(_tx.c.timestamp, after, until)
    trade_window = _window(_trade.c.timestamp, after, until)
    strategy = _account.alias("strategy")
    venue = _account.alias("venue")
    attributed = _trade.c.strategy_account_id.is_not(None)

    # Only direct strategy <-> venue transfers count here.
    to_strategy = select(
        _tx.c.debit_account_id.label("strategy_account_id"),
        _tx.c.credit_account_id.label("venue_account_id"),
        _tx.c.asset.label("asset"),
        _tx.c.amount.label("amount"),
    ).select_from(
        _tx.join(strategy, strategy.c.id == _tx.c.debit_account_id).join(venue, venue.c.id == _tx.c.credit_account_id)
    ).where(strategy.c.kind == AccountKind.STRATEGY.value, venue.c.kind == AccountKind.VENUE.value, *tx_window)
    from_strategy = select(
        _tx.c.credit_account_id.label("strategy_account_id"),
        _tx.c.debit_account_id.label("venue_account_id"),
        _tx.c.asset.label("asset"),
        decimal_neg(_tx.c.amount).label("amount"),
    ).select_from(
        _tx.join(strategy, strategy.c.id == _tx.c.credit_account_id).join(venue, venue.c.id == _tx.c.debit_account_id)
    ).where(strategy.c.kind == AccountKind.STRATEGY.value, venue.c.kind == AccountKind.VENUE.value, *tx_window)

    return [
        to_strategy,
        from_strategy,
        select(
            _trade.c.strategy_account_id,
            _trade.c.venue_account_id,
            _trade.c.base_asset.label("asset"),
            _trade.c.base_amount.label("amount"),
        ).where(attributed, *trade_window),
        select(
            _trade.c.strategy_account_id,
            _trade.c.venue_account_id,
            _trade.c.quote_asset.label("asset"),
            _trade.c.quote_amount.label("amount"),
        ).where(attributed, *trade_window),
    ]


_LEG_BUILDERS = {
    Projection.STRATEGY: _strategy_legs,
    Projection.VENUE: _venue_legs,
    Projection.STRATEGY_VENUE: _strategy_venue_legs,
}


def movement_legs(projection: Projection, after: datetime | None = None, until: datetime | None = None) -> list[Select]:
    """Signed movement legs of a projection within ``(after, until]``.

    Each select yields the projection's key columns, ``asset`` and ``amount``.
    """
    return _LEG_BUILDERS[projection](after, until)


def aggregate_legs(
    legs: list[Select],
    projection: Projection,
    key_filter: dict[str, int] | None = None,
    asset: str | None = None,
    nonzero_only: bool = False,
) -> Select:
    """Group legs by projection key and asset and sum their amounts.

    Args:
        legs: Selects with the projection's key columns, asset and amount.
        projection: Projection the legs belong to.
        key_filter: Optional equality filter on key columns.
        asset: Optional asset filter.
        nonzero_only: Drop groups whose sum is exactly zero.

    Returns:
        Select yielding key columns, asset and summed amount.
    """
    movements = union_all(*legs).subquery("movements")
    keys = [movements.c[name] for name in KEY_COLUMNS[projection]]
    total = decimal_sum(movements.c.amount)

    stmt = (
        select(*keys, movements.c.asset, total.label("amount"))
        .group_by(*keys, movements.c.asset)
        .order_by(*keys, movements.c.asset)
    )
    for name, value in (key_filter or {}).items():
        stmt = stmt.where(movements.c[name] == value)
    if asset is not None:
        stmt = stmt.where(movements.c.asset == asset)
    if nonzero_only:
        stmt = stmt.having(decimal_sign(total) != 0)
    return stmt


def to_balance_rows(projection: Projection, rows: Any) -> list[BalanceRow]:
    """Convert aggregate result rows to BalanceRow instances."""
    width = len(KEY_COLUMNS[projection])
    result = []
    for row in rows:
        values = tuple(row)
        amount = values[width + 1]
        result.append(
            BalanceRow(
                key=values[:width],
                asset=values[width],
                amount=amount if isinstance(amount, Decimal) else Decimal(str(amount)),
            )
        )
    return result


class BalanceAggregator:
    """Window queries over the movement log for each projection.

    All methods are read-only. When ``session`` is given the query runs inside
    it, which is how snapshots get a consistent read.

    Args:
        repository: Ledger repository.
    """

    def __init__(self, repository: LedgerRepository) -> None:
        self._repo = repository

    def diff_till(self, projection: Projection, instant: datetime, session: Session | None = None) -> list[BalanceRow]:
        """Net movement with timestamp <= ``instant``, zero-sum groups included."""
        return self.diff_between(projection, after=None, until=instant, session=session)

    def diff_since(self, projection: Projection, instant: datetime, session: Session | None = None) -> list[BalanceRow]:
        """Net movement with timestamp > ``instant``, zero-sum groups included."""
        return self.diff_between(projection, after=instant, until=None, session=session)

    def diff_between(
        self,
        projection: Projection,
        after: datetime | None,
        until: datetime | None,
        session: Session | None = None,
    ) -> list[BalanceRow]:
        """Net movement with ``after < timestamp <= until``; ``None`` leaves a side open."""
        stmt = aggregate_legs(
            movement_legs(
                projection,
                after=as_utc(after) if after is not None else None,
                until=as_utc(until) if until is not None else None,
            ),
            projection,
        )
        if session is not None:
            return to_balance_rows(projection, session.execute(stmt))  # pyrefly: ignore[deprecated]

        with self._repo.get_session() as own_session:
            rows = to_balance_rows(projection, own_session.execute(stmt))  # pyrefly: ignore[deprecated]
        logger.debug(f"Aggregated {len(rows)} {projection.value} groups in ({after}, {until}]")
        return rows
