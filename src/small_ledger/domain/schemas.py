"""Pandera validation schemas for batch movement import."""

import pandera.polars as pa
import polars as pl
from pandera.polars import PolarsData


def _numeric(column: str) -> pl.Expr:
    """Decimal text parsed as a number, null where it is not one."""
    return pl.col(column).str.strip_chars().cast(pl.Float64, strict=False)


class TransferSchema(pa.DataFrameModel):
    """Pandera schema for Transfer rows.

    Validates:
        - Account ids present and positive
        - Amount is a decimal > 0
        - Credit and debit accounts differ
    """

    credit_account_id: int = pa.Field(ge=1)
    debit_account_id: int = pa.Field(ge=1)
    asset: str = pa.Field(str_length={"min_value": 1, "max_value": 32})
    amount: str = pa.Field()
    timestamp: pl.Datetime = pa.Field()
    via_account_id: int = pa.Field(ge=1, nullable=True)

    class Config:  # type: ignore[override]  # pyrefly: ignore[bad-override]
        """Pandera configuration."""

        strict = False
        coerce = True

    @pa.dataframe_check  # type: ignore[misc]
    @classmethod
    def credit_differs_from_debit(cls, data: PolarsData) -> pl.LazyFrame:
        """Check that no row moves value from an account to itself."""
        return data.lazyframe.select(pl.col("credit_account_id") != pl.col("debit_account_id"))

    @pa.check("amount")  # type: ignore[misc]
    @classmethod
    def amount_positive(cls, data: PolarsData) -> pl.LazyFrame:
        return data.lazyframe.select((_numeric(data.key) > 0).fill_null(False))


class TradeSchema(pa.DataFrameModel):
    """Pandera schema for Trade rows.

    Validates:
        - Price is a decimal > 0, amounts are decimals
        - Base and quote asset differ
        - Commission asset and amount are both set or both empty
    """

    venue_account_id: int = pa.Field(ge=1)
    venue_order_id: str = pa.Field(str_length={"min_value": 1, "max_value": 64})
    price: str = pa.Field()
    base_asset: str = pa.Field(str_length={"min_value": 1, "max_value": 32})
    base_amount: str = pa.Field()
    quote_asset: str = pa.Field(str_length={"min_value": 1, "max_value": 32})
    commission_asset: str = pa.Field(nullable=True)
    commission_amount: str = pa.Field(nullable=True)
    timestamp: pl.Datetime = pa.Field()
    external_trade_id: str = pa.Field(str_length={"min_value": 1})

    class Config:  # type: ignore[override] # pyrefly: ignore[bad-override]
        """Pandera configuration."""

        strict = False
        coerce = True

    @pa.dataframe_check  # type: ignore[misc]
    @classmethod
    def distinct_legs(cls, data: PolarsData) -> pl.LazyFrame:
        """Check that base and quote asset differ."""
        return data.lazyframe.select(pl.col("base_asset") != pl.col("quote_asset"))

    @pa.check("price")  # type: ignore[misc]
    @classmethod
    def price_positive(cls, data: PolarsData) -> pl.LazyFrame:
        return data.lazyframe.select((_numeric(data.key) > 0).fill_null(False))

    @pa.check("base_amount")  # type: ignore[misc]
    @classmethod
    def base_amount_is_decimal(cls, data: PolarsData) -> pl.LazyFrame:
        return data.lazyframe.select(_numeric(data.key).is_not_null())

    @pa.check("commission_amount")  # type: ignore[misc]
    @classmethod
    def commission_amount_is_decimal(cls, data: PolarsData) -> pl.LazyFrame:
        return data.lazyframe.select(pl.col(data.key).is_null() | _numeric(data.key).is_not_null())

    @pa.dataframe_check  # type: ignore[misc]
    @classmethod
    def commission_co_null(cls, data: PolarsData) -> pl.LazyFrame:
        """Check that commission asset and amount are jointly nullable."""
        return data.lazyframe.select(
            pl.col("commission_asset").is_null() == pl.col("commission_amount").is_null()
        )
