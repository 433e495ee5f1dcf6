"""Movement type registry for batch import.

Centralises what the validator and loader need to know about each importable
movement kind, so neither hardcodes per-kind column lists.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import polars as pl

if TYPE_CHECKING:
    import pandera.polars as pa
    from sqlmodel import SQLModel


@dataclass
class MovementTypeConfig:
    """Configuration for an importable movement kind.

    Attributes:
        name: Unique identifier for the movement kind ("transfer", "trade").
        table_name: Table the movement is recorded into.
        columns: Columns a CSV row must provide.
        optional_columns: Columns that may be absent, with the dtype used to
            fill them with nulls before validation.
        decimal_columns: Columns converted to Decimal before recording.
        model_class: SQLModel table model.
        schema_class: Pandera schema validating a batch.
    """

    name: str
    table_name: str
    columns: list[str]
    optional_columns: dict[str, pl.DataType] = field(default_factory=dict)
    decimal_columns: list[str] = field(default_factory=list)
    model_class: type["SQLModel"] | None = None
    schema_class: type["pa.DataFrameModel"] | None = None

    @property
    def all_columns(self) -> list[str]:
        return self.columns + [c for c in self.optional_columns if c not in self.columns]


class MovementTypeRegistry:
    """Registry for movement kind configurations."""

    _registry: dict[str, MovementTypeConfig] = {}

    @classmethod
    def register(cls, config: MovementTypeConfig) -> None:
        """Register a movement kind configuration.

        Args:
            config: MovementTypeConfig to register.
        """
        cls._registry[config.name] = config

    @classmethod
    def get(cls, name: str) -> MovementTypeConfig:
        """Get a movement kind configuration by name.

        Args:
            name: Movement kind name.

        Returns:
            MovementTypeConfig for the specified kind.

        Raises:
            KeyError: If the kind is not registered.
        """
        if name not in cls._registry:
            raise KeyError(f"Movement type '{name}' not registered. Available: {list(cls._registry.keys())}")
        return cls._registry[name]

    @classmethod
    def get_all(cls) -> dict[str, MovementTypeConfig]:
        return cls._registry.copy()

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._registry


def _register_default_types() -> None:
    """Register default movement kinds (transfer and trade)."""
    # Import here to avoid circular imports
    from small_ledger.domain.models import Trade, Transfer
    from small_ledger.domain.schemas import TradeSchema, TransferSchema

    MovementTypeRegistry.register(
        MovementTypeConfig(
            name="transfer",
            table_name="tx",
            columns=["credit_account_id", "debit_account_id", "asset", "amount", "timestamp"],
            optional_columns={"via_account_id": pl.Int64},
            decimal_columns=["amount"],
            model_class=Transfer,
            schema_class=TransferSchema,
        )
    )

    MovementTypeRegistry.register(
        MovementTypeConfig(
            name="trade",
            table_name="trade",
            columns=[
                "venue_account_id",
                "venue_order_id",
                "price",
                "base_asset",
                "base_amount",
                "quote_asset",
                "timestamp",
                "external_trade_id",
            ],
            optional_columns={"commission_asset": pl.Utf8, "commission_amount": pl.Utf8},
            decimal_columns=["price", "base_amount", "commission_amount"],
            model_class=Trade,
            schema_class=TradeSchema,
        )
    )


# Register default types on module import
_register_default_types()
