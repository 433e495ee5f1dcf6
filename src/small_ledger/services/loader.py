"""Loader service recording validated movement batches through the movement log."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from small_ledger.domain.errors import DuplicateTrade, LedgerError
from small_ledger.domain.registry import MovementTypeRegistry

if TYPE_CHECKING:
    import polars as pl

    from small_ledger.services.movements import MovementLog

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Result of data loading operation.

    Attributes:
        success: True if loading completed without errors.
        total_rows: Total number of rows to load.
        loaded_count: Number of rows recorded.
        duplicate_count: Trades skipped because they were already recorded.
        failed_count: Number of rows not attempted or rejected.
        error_message: Error message if loading failed.
    """

    success: bool
    total_rows: int
    loaded_count: int
    duplicate_count: int = 0
    failed_count: int = 0
    error_message: str | None = None


def parse_external_trade_id(value: str) -> dict[str, Any]:
    """Parse a CSV external trade id: a JSON object, or a bare id as ``{"id": value}``."""
    value = value.strip()
    if value.startswith("{"):
        parsed = json.loads(value)
        if isinstance(parsed, dict):
            return parsed
    return {"id": value}


class LoaderService:
    """Service for recording validated transfers and trades.

    Each row is recorded in its own transaction via the movement log. Trades
    already present are counted as duplicates, any other ledger error stops the
    batch.

    Args:
        movements: Movement log to record into.
    """

    def __init__(self, movements: MovementLog) -> None:
        self._movements = movements

    def _record(self, kind: str, row: dict[str, Any]) -> None:
        if kind == "transfer":
            self._movements.record_transfer(
                credit_account_id=row["credit_account_id"],
                debit_account_id=row["debit_account_id"],
                asset=row["asset"],
                amount=row["amount"],
                timestamp=row["timestamp"],
                via_account_id=row.get("via_account_id"),
            )
        elif kind == "trade":
            self._movements.record_trade(
                venue_account_id=row["venue_account_id"],
                venue_order_id=str(row["venue_order_id"]),
                price=row["price"],
                base_asset=row["base_asset"],
                base_amount=row["base_amount"],
                quote_asset=row["quote_asset"],
                timestamp=row["timestamp"],
                external_trade_id=parse_external_trade_id(str(row["external_trade_id"])),
                commission_asset=row.get("commission_asset"),
                commission_amount=row.get("commission_amount"),
            )
        else:
            raise ValueError(f"Unknown movement type: {kind}")

    def load(self, df: pl.DataFrame, kind: str) -> LoadResult:
        """Record every row of a validated DataFrame.

        Args:
            df: DataFrame with validated data.
            kind: Movement kind name ("transfer", "trade").

        Returns:
            LoadResult with loading statistics.
        """
        config = MovementTypeRegistry.get(kind)
        logger.info(f"Loading {len(df)} {kind} records")

        if len(df) == 0:
            return LoadResult(success=True, total_rows=0, loaded_count=0)

        loaded = 0
        duplicates = 0
        columns = [c for c in config.all_columns if c in df.columns]

        for index, row in enumerate(df.select(columns).iter_rows(named=True)):
            for column in config.decimal_columns:
                if row.get(column) is not None:
                    row[column] = Decimal(str(row[column]))
            try:
                self._record(kind, row)
                loaded += 1
            except DuplicateTrade as e:
                logger.info(f"Row {index}: {e}")
                duplicates += 1
            except LedgerError as e:
                logger.error(f"Error loading {kind} row {index}: {e}")
                return LoadResult(
                    success=False,
                    total_rows=len(df),
                    loaded_count=loaded,
                    duplicate_count=duplicates,
                    failed_count=len(df) - loaded - duplicates,
                    error_message=f"Row {index}: {e}",
                )

        logger.info(f"Successfully loaded {loaded} {kind} records ({duplicates} duplicates skipped)")
        return LoadResult(
            success=True,
            total_rows=len(df),
            loaded_count=loaded,
            duplicate_count=duplicates,
        )
