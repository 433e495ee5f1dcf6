"""Snapshot manager: periodic materialisation of balances plus tail deltas."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Select, func, insert, select

from small_ledger.domain.enums import ALL_PROJECTIONS, Projection
from small_ledger.domain.errors import SnapshotOrderError
from small_ledger.domain.models import (
    SnapshotPendingTrade,
    StrategyBalanceSnapshot,
    StrategyVenueBalanceSnapshot,
    Trade,
    VenueBalanceSnapshot,
)
from small_ledger.domain.timestamps import as_utc
from small_ledger.services.aggregator import (
    KEY_COLUMNS,
    BalanceAggregator,
    BalanceRow,
    aggregate_legs,
    movement_legs,
    to_balance_rows,
)

if TYPE_CHECKING:
    from sqlmodel import Session, SQLModel

    from small_ledger.data_access.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)

SNAPSHOT_MODELS: dict[Projection, type[SQLModel]] = {
    Projection.STRATEGY: StrategyBalanceSnapshot,
    Projection.VENUE: VenueBalanceSnapshot,
    Projection.STRATEGY_VENUE: StrategyVenueBalanceSnapshot,
}

# Projections that only see trades once the denormalisation pass attributed them.
ATTRIBUTED_PROJECTIONS = (Projection.STRATEGY, Projection.STRATEGY_VENUE)

_trade = Trade.__table__  # type: ignore[attr-defined]
_pending = SnapshotPendingTrade.__table__  # type: ignore[attr-defined]


def late_attribution_legs(projection: Projection, snapshot_at: datetime) -> list[Select]:
    """Legs of trades left out of the snapshot at ``snapshot_at`` but attributed since."""
    keys = [_trade.c[k] for k in KEY_COLUMNS[projection]]
    source = _trade.join(_pending, _pending.c.trade_id == _trade.c.id)
    where = (
        _pending.c.projection == projection.value,
        _pending.c.as_of == snapshot_at,
        _trade.c.strategy_account_id.is_not(None),
    )
    return [
        select(*keys, _trade.c.base_asset.label("asset"), _trade.c.base_amount.label("amount"))
        .select_from(source)
        .where(*where),
        select(*keys, _trade.c.quote_asset.label("asset"), _trade.c.quote_amount.label("amount"))
        .select_from(source)
        .where(*where),
    ]


@dataclass
class SnapshotResult:
    """Result of a snapshot run.

    Attributes:
        as_of: Snapshot instant (UTC).
        row_counts: Rows appended per projection.
        skipped: Projections that already had a snapshot at ``as_of``.
        unattributed_trades: Trades up to ``as_of`` still missing strategy
            attribution. Strategy-keyed snapshots record them as pending and
            balances pick them up once they are attributed.
    """

    as_of: datetime
    row_counts: dict[str, int] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    unattributed_trades: int = 0

    @property
    def total_rows(self) -> int:
        return sum(self.row_counts.values())


class SnapshotManager:
    """Takes balance snapshots and serves balances as snapshot plus delta.

    A snapshot batch is computed and appended in one transaction, so a crash
    leaves either the whole batch or nothing. Snapshots only capture movements
    with timestamp <= the instant; callers pick an instant far enough in the
    past that no movement at or before it is still being ingested. Trades not
    yet attributed to a strategy are recorded with strategy-keyed snapshots
    and added to balances composed from them once the pass attributes them.

    Args:
        repository: Ledger repository.
        aggregator: Balance aggregator used for ``diff_till``.
    """

    def __init__(self, repository: LedgerRepository, aggregator: BalanceAggregator | None = None) -> None:
        self._repo = repository
        self._aggregator = aggregator or BalanceAggregator(repository)

    def latest_snapshot_at(
        self,
        projection: Projection,
        not_after: datetime | None = None,
        session: Session | None = None,
    ) -> datetime | None:
        """Instant of the latest snapshot of a projection.

        Args:
            projection: Projection to look up.
            not_after: Only consider snapshots taken at or before this instant.
            session: Optional session to run in.

        Returns:
            Latest snapshot instant (UTC), or None if there is none.
        """
        table = SNAPSHOT_MODELS[projection].__table__  # type: ignore[attr-defined]
        stmt = select(func.max(table.c.as_of))
        if not_after is not None:
            stmt = stmt.where(table.c.as_of <= as_utc(not_after))

        if session is not None:
            latest = session.execute(stmt).scalar()  # pyrefly: ignore[deprecated]
        else:
            with self._repo.get_session() as own_session:
                latest = own_session.execute(stmt).scalar()  # pyrefly: ignore[deprecated]
        return as_utc(latest) if latest is not None else None

    def take_snapshot(self, instant: datetime, projections: Iterable[Projection] = ALL_PROJECTIONS) -> SnapshotResult:
        """Append ``diff_till(instant)`` as a new snapshot for each projection.

        All projections are written in a single repeatable-read transaction.
        Re-running at the instant of an existing snapshot is a no-op for that
        projection.

        Args:
            instant: Snapshot instant.
            projections: Projections to snapshot (default: all three).

        Returns:
            SnapshotResult with per-projection row counts.

        Raises:
            SnapshotOrderError: If ``instant`` is older than a projection's
                latest snapshot. Nothing is written in that case.
        """
        instant = as_utc(instant)
        result = SnapshotResult(as_of=instant)

        with self._repo.get_snapshot_session() as session:
            pending_ids = list(
                session.execute(  # pyrefly: ignore[deprecated]
                    select(_trade.c.id).where(_trade.c.strategy_account_id.is_(None), _trade.c.timestamp <= instant)
                ).scalars()
            )
            result.unattributed_trades = len(pending_ids)
            if pending_ids:
                logger.warning(
                    f"{len(pending_ids)} trades up to {instant.isoformat()} have no strategy attribution yet, "
                    "recording them as pending for strategy snapshots"
                )

            for projection in projections:
                latest = self.latest_snapshot_at(projection, session=session)
                if latest is not None and instant < latest:
                    raise SnapshotOrderError(projection.value, instant, latest)
                if latest == instant:
                    logger.info(f"{projection.value} snapshot at {instant.isoformat()} already exists, skipping")
                    result.skipped.append(projection.value)
                    continue

                rows = self._aggregator.diff_till(projection, instant, session=session)
                self._append(session, projection, instant, rows)
                if rows and pending_ids and projection in ATTRIBUTED_PROJECTIONS:
                    session.execute(  # pyrefly: ignore[deprecated]
                        insert(_pending),
                        [{"projection": projection.value, "as_of": instant, "trade_id": i} for i in pending_ids],
                    )
                result.row_counts[projection.value] = len(rows)

            session.commit()

        logger.info(f"Snapshot at {instant.isoformat()} appended {result.total_rows} rows {result.row_counts}")
        return result

    def _append(self, session: Session, projection: Projection, instant: datetime, rows: list[BalanceRow]) -> None:
        if not rows:
            return
        keys = KEY_COLUMNS[projection]
        table = SNAPSHOT_MODELS[projection].__table__  # type: ignore[attr-defined]
        session.execute(  # pyrefly: ignore[deprecated]
            insert(table),
            [
                {"as_of": instant, **dict(zip(keys, row.key)), "asset": row.asset, "amount": row.amount}
                for row in rows
            ],
        )

    def current_balance(
        self,
        projection: Projection,
        key_filter: dict[str, int] | None = None,
        asset: str | None = None,
    ) -> list[BalanceRow]:
        """Latest snapshot plus ``diff_since`` of its instant, zero groups removed.

        Args:
            projection: Projection to compute.
            key_filter: Optional equality filter on key columns.
            asset: Optional asset filter.

        Returns:
            Non-zero balances per key and asset.
        """
        with self._repo.get_session() as session:
            snapshot_at = self.latest_snapshot_at(projection, session=session)
            return self._compose(session, projection, snapshot_at, None, key_filter, asset)

    def balance_at(
        self,
        projection: Projection,
        as_of: datetime,
        key_filter: dict[str, int] | None = None,
        asset: str | None = None,
    ) -> list[BalanceRow]:
        """Balances as of an instant, from the latest snapshot not after it.

        Args:
            projection: Projection to compute.
            as_of: Point in time (inclusive).
            key_filter: Optional equality filter on key columns.
            asset: Optional asset filter.

        Returns:
            Non-zero balances per key and asset.
        """
        as_of = as_utc(as_of)
        with self._repo.get_session() as session:
            snapshot_at = self.latest_snapshot_at(projection, not_after=as_of, session=session)
            return self._compose(session, projection, snapshot_at, as_of, key_filter, asset)

    def _compose(
        self,
        session: Session,
        projection: Projection,
        snapshot_at: datetime | None,
        until: datetime | None,
        key_filter: dict[str, int] | None,
        asset: str | None,
    ) -> list[BalanceRow]:
        legs = movement_legs(projection, after=snapshot_at, until=until)
        if snapshot_at is not None:
            table = SNAPSHOT_MODELS[projection].__table__  # type: ignore[attr-defined]
            legs.append(
                select(*(table.c[k] for k in KEY_COLUMNS[projection]), table.c.asset, table.c.amount).where(
                    table.c.as_of == snapshot_at
                )
            )
            if projection in ATTRIBUTED_PROJECTIONS:
                legs.extend(late_attribution_legs(projection, snapshot_at))

        stmt = aggregate_legs(legs, projection, key_filter=key_filter, asset=asset, nonzero_only=True)
        rows = to_balance_rows(projection, session.execute(stmt))  # pyrefly: ignore[deprecated]
        logger.debug(
            f"Composed {projection.value} balance from snapshot {snapshot_at} and delta to {until}: {len(rows)} rows"
        )
        return rows
