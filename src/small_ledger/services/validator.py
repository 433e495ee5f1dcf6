"""Validator service for reading movement CSV files and validating them with Pandera."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import pandera.errors
import polars as pl

from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.registry import MovementTypeRegistry

logger = logging.getLogger(__name__)

ASSET_COLUMNS = ("asset", "base_asset", "quote_asset", "commission_asset")
TEXT_ID_COLUMNS = ("external_trade_id", "venue_order_id")


@dataclass
class ValidationResult:
    """Result of data validation.

    Attributes:
        is_valid: True if validation passed.
        data: Validated DataFrame (empty if validation failed).
        error_message: Error description if validation failed.
    """

    is_valid: bool
    data: pl.DataFrame
    error_message: str | None = None


class ValidatorService:
    """Service for reading normalised movement CSV files and validating them.

    Args:
        reference: Reference registry used to reject unknown asset symbols.
    """

    def __init__(self, reference: ReferenceRegistry | None = None) -> None:
        self._reference = reference or ReferenceRegistry()

    def read_csv(self, path: str | Path, kind: str) -> pl.DataFrame:
        """Read a movement CSV file using Polars.

        Args:
            path: CSV file path.
            kind: Movement kind name for logging.

        Returns:
            Polars DataFrame from CSV.
        """
        logger.info(f"Reading {kind} CSV from {path}")
        config = MovementTypeRegistry.get(kind)
        # Amounts stay text so no digit is lost to float parsing, trade ids so
        # numeric-looking ids keep their leading zeros.
        text_columns = [*config.decimal_columns, *TEXT_ID_COLUMNS]
        header = pl.scan_csv(path).collect_schema().names()
        overrides = {column: pl.Utf8 for column in text_columns if column in header}
        df = pl.read_csv(path, try_parse_dates=True, schema_overrides=overrides)
        logger.info(f"Read {len(df)} {kind} records")
        return df

    def fetch_and_validate(self, path: str | Path, kind: str) -> ValidationResult:
        """Read a CSV file and validate in one step."""
        return self.validate(self.read_csv(path, kind), kind)

    def _format_error_message(self, schema_errors: pandera.errors.SchemaErrors) -> str:
        """Format Pandera SchemaErrors into a readable error message."""
        failure_cases = schema_errors.failure_cases
        if failure_cases is None or len(failure_cases) == 0:
            return "Validation failed with unknown error"

        errors = []
        for row in failure_cases.head(5).iter_rows(named=True):
            row_idx = row.get("index", "N/A")
            column = row.get("column", "unknown")
            check = row.get("check", "unknown")
            failure_case = row.get("failure_case", "N/A")
            errors.append(f"Row {row_idx}, column '{column}': {check} (value: {failure_case})")

        total_errors = len(failure_cases)
        if total_errors > 5:
            errors.append(f"... and {total_errors - 5} more errors")

        return "; ".join(errors)

    def _with_optional_columns(self, df: pl.DataFrame, kind: str) -> pl.DataFrame:
        """Add absent optional columns as typed nulls."""
        config = MovementTypeRegistry.get(kind)
        missing = [
            pl.lit(None, dtype=dtype).alias(name)
            for name, dtype in config.optional_columns.items()
            if name not in df.columns
        ]
        return df.with_columns(missing) if missing else df

    def _unknown_assets(self, df: pl.DataFrame) -> list[str]:
        if not self._reference.assets:
            return []
        symbols: set[str] = set()
        for column in ASSET_COLUMNS:
            if column in df.columns:
                symbols.update(v for v in df[column].drop_nulls().unique().to_list())
        return sorted(s for s in symbols if not self._reference.is_known_asset(s))

    def validate(self, df: pl.DataFrame, kind: str) -> ValidationResult:
        """Validate data using the registered schema for the movement kind.

        Args:
            df: DataFrame to validate.
            kind: Movement kind name ("transfer", "trade").

        Returns:
            ValidationResult with data if valid, error message if not.
        """
        config = MovementTypeRegistry.get(kind)

        if config.schema_class is None:
            raise ValueError(f"No schema registered for movement type: {kind}")

        logger.info(f"Validating {len(df)} {kind} records with Pandera")

        if len(df) == 0:
            return ValidationResult(is_valid=True, data=df)

        missing_columns = [c for c in config.columns if c not in df.columns]
        if missing_columns:
            error_msg = f"Missing required columns: {missing_columns}"
            logger.error(f"{kind} validation failed: {error_msg}")
            return ValidationResult(is_valid=False, data=df.clear(), error_message=error_msg)

        df = self._with_optional_columns(df, kind)

        try:
            config.schema_class.validate(df, lazy=True)
        except pandera.errors.SchemaErrors as e:
            error_msg = self._format_error_message(e)
            logger.error(f"{kind} validation failed: {error_msg}")
            return ValidationResult(is_valid=False, data=df.clear(), error_message=error_msg)

        # Reference validation
        unknown = self._unknown_assets(df)
        if unknown:
            error_msg = f"Reference validation failed: assets {unknown[:5]} not registered"
            logger.error(f"{kind} validation failed: {error_msg}")
            return ValidationResult(is_valid=False, data=df.clear(), error_message=error_msg)

        logger.info(f"{kind} validation passed: {len(df)} records")
        return ValidationResult(is_valid=True, data=df)
