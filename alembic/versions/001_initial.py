"""Initial migration - create account, movement, order lineage and snapshot tables.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from small_ledger.domain.models import QUOTE_AMOUNT_SQL
from small_ledger.domain.numeric import ExactDecimal

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AMOUNT = ExactDecimal()
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create ledger tables."""
    op.create_table(
        "account",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("natural_key", sa.String(64), nullable=False),
        sa.Column("description", sa.String(256), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("kind", "natural_key", name="uq_account_kind_natural_key"),
        sa.CheckConstraint("kind IN ('strategy', 'venue')", name="ck_account_kind"),
    )
    op.create_index("ix_account_kind", "account", ["kind"])

    op.create_table(
        "tx",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("credit_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("debit_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("asset", sa.String(32), nullable=False),
        sa.Column("amount", AMOUNT, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("via_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=True),
        sa.CheckConstraint("amount > 0", name="ck_tx_amount_positive"),
        sa.CheckConstraint("credit_account_id <> debit_account_id", name="ck_tx_distinct_accounts"),
    )
    op.create_index("ix_tx_credit_account_id", "tx", ["credit_account_id"])
    op.create_index("ix_tx_debit_account_id", "tx", ["debit_account_id"])
    op.create_index("ix_tx_timestamp", "tx", ["timestamp"])

    op.create_table(
        "trade",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("strategy_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=True),
        sa.Column("venue_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("venue_order_id", sa.String(64), nullable=False),
        sa.Column("price", AMOUNT, nullable=False),
        sa.Column("base_asset", sa.String(32), nullable=False),
        sa.Column("base_amount", AMOUNT, nullable=False),
        sa.Column("quote_asset", sa.String(32), nullable=False),
        sa.Column("quote_amount", AMOUNT, sa.Computed(QUOTE_AMOUNT_SQL, persisted=True)),
        sa.Column("commission_asset", sa.String(32), nullable=True),
        sa.Column("commission_amount", AMOUNT, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("external_trade_id", JSON_TYPE, nullable=False),
        sa.Column("external_trade_key", sa.String(512), nullable=False),
        sa.UniqueConstraint("venue_account_id", "external_trade_key", name="uq_trade_venue_external_id"),
        sa.CheckConstraint("price > 0", name="ck_trade_price_positive"),
        sa.CheckConstraint("base_asset <> quote_asset", name="ck_trade_distinct_assets"),
        sa.CheckConstraint(
            "(commission_asset IS NULL) = (commission_amount IS NULL)",
            name="ck_trade_commission_co_null",
        ),
    )
    op.create_index("ix_trade_strategy_account_id", "trade", ["strategy_account_id"])
    op.create_index("ix_trade_timestamp", "trade", ["timestamp"])
    op.create_index("ix_trade_venue_order", "trade", ["venue_account_id", "venue_order_id"])

    op.create_table(
        "ems_order",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("strategy_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detail", JSON_TYPE, nullable=False),
    )
    op.create_index("ix_ems_order_strategy_account_id", "ems_order", ["strategy_account_id"])

    op.create_table(
        "venue_order",
        sa.Column("venue_account_id", sa.Integer(), sa.ForeignKey("account.id"), primary_key=True),
        sa.Column("venue_order_id", sa.String(64), primary_key=True),
        sa.Column("ems_order_id", sa.Integer(), sa.ForeignKey("ems_order.id"), nullable=False),
    )
    op.create_index("ix_venue_order_ems_order_id", "venue_order", ["ems_order_id"])

    for table, keys in (
        ("strategy_balance_snapshot", ["strategy_account_id"]),
        ("venue_balance_snapshot", ["venue_account_id"]),
        ("strategy_venue_balance_snapshot", ["strategy_account_id", "venue_account_id"]),
    ):
        op.create_table(
            table,
            sa.Column("as_of", sa.DateTime(timezone=True), primary_key=True),
            *(sa.Column(key, sa.Integer(), sa.ForeignKey("account.id"), primary_key=True) for key in keys),
            sa.Column("asset", sa.String(32), primary_key=True),
            sa.Column("amount", AMOUNT, nullable=False),
        )

    op.create_table(
        "snapshot_pending_trade",
        sa.Column("projection", sa.String(16), primary_key=True),
        sa.Column("as_of", sa.DateTime(timezone=True), primary_key=True),
        sa.Column("trade_id", sa.Integer(), sa.ForeignKey("trade.id"), primary_key=True),
    )


def downgrade() -> None:
    """Drop ledger tables."""
    op.drop_table("snapshot_pending_trade")
    op.drop_table("strategy_venue_balance_snapshot")
    op.drop_table("venue_balance_snapshot")
    op.drop_table("strategy_balance_snapshot")
    op.drop_table("venue_order")
    op.drop_table("ems_order")
    op.drop_table("trade")
    op.drop_table("tx")
    op.drop_table("account")
