"""Test fixtures and configuration for Small Ledger.

Each test gets its own file-backed SQLite database, where amounts are stored as
fixed-point text and summed with the registered decimal functions.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Generator

import polars as pl
import pytest
from omegaconf import DictConfig, OmegaConf

from small_ledger.data_access.ledger_repository import LedgerRepository
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.services.accounts import AccountService
from small_ledger.services.aggregator import BalanceAggregator
from small_ledger.services.denormaliser import DenormalisationService
from small_ledger.services.movements import MovementLog
from small_ledger.services.snapshots import SnapshotManager

T1 = datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
T2 = datetime(2024, 1, 1, 11, 0, tzinfo=UTC)
T3 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

ASSETS = ["USD", "USDT", "BTC", "ETH"]
VENUES = ["binance", "kraken"]


@pytest.fixture
def database_url(tmp_path) -> str:
    """URL of a fresh SQLite database file."""
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def repository(database_url) -> Generator[LedgerRepository, None, None]:
    """Ledger repository with all tables created."""
    repo = LedgerRepository(database_url)
    repo.create_tables()
    yield repo
    repo.close()


@pytest.fixture
def reference() -> ReferenceRegistry:
    return ReferenceRegistry(assets=ASSETS, venues=VENUES)


@pytest.fixture
def accounts(repository, reference) -> AccountService:
    return AccountService(repository, reference)


@pytest.fixture
def movements(repository, reference) -> MovementLog:
    return MovementLog(repository, reference)


@pytest.fixture
def denormaliser(repository) -> DenormalisationService:
    return DenormalisationService(repository)


@pytest.fixture
def aggregator(repository) -> BalanceAggregator:
    return BalanceAggregator(repository)


@pytest.fixture
def snapshots(repository, aggregator) -> SnapshotManager:
    return SnapshotManager(repository, aggregator)


@pytest.fixture
def ledger_config(database_url) -> DictConfig:
    """Config as composed by Hydra, pointing at the per-test database."""
    return OmegaConf.create(
        {
            "db": {"url": database_url, "echo": False},
            "ledger": {"snapshot_lag_seconds": 300},
            "reference": {"assets": ASSETS, "venues": VENUES},
            "scheduler": {"max_workers": 1},
        }
    )


@dataclass
class Scenario:
    """Ids of the accounts and movements seeded by ``scenario``."""

    strategy: int
    venue: int
    ems_order: int
    transfer: int
    trade: int


@pytest.fixture
def scenario(accounts, movements, denormaliser) -> Scenario:
    """Strategy S1 funds venue V1 with 1000 USD at T1, then buys 2 BTC at 30000 on order O1 at T2."""
    s1 = accounts.create_strategy_account("S1")
    v1 = accounts.create_venue_account("binance")

    tx_id = movements.record_transfer(
        credit_account_id=v1,
        debit_account_id=s1,
        asset="USD",
        amount=Decimal("1000"),
        timestamp=T1,
    )
    ems_id = movements.record_ems_order(s1, detail={"side": "buy"})
    movements.record_venue_order(v1, "O1", ems_id)
    trade_id = movements.record_trade(
        venue_account_id=v1,
        venue_order_id="O1",
        price=Decimal("30000"),
        base_asset="BTC",
        base_amount=Decimal("2"),
        quote_asset="USD",
        timestamp=T2,
        external_trade_id={"id": "T123"},
    )
    denormaliser.run()
    return Scenario(strategy=s1, venue=v1, ems_order=ems_id, transfer=tx_id, trade=trade_id)


@pytest.fixture
def sample_transfer_data() -> pl.DataFrame:
    """Valid transfer rows as Polars DataFrame (accounts 1 and 2)."""
    return pl.DataFrame(
        {
            "credit_account_id": [2, 1],
            "debit_account_id": [1, 2],
            "asset": ["USD", "USD"],
            "amount": [1000.0, 250.5],
            "timestamp": [datetime(2024, 1, 1, 10, 0), datetime(2024, 1, 1, 10, 30)],
            "via_account_id": pl.Series([None, None], dtype=pl.Int64),
        }
    )


@pytest.fixture
def sample_trade_data() -> pl.DataFrame:
    """Valid trade rows as Polars DataFrame (venue account 2)."""
    return pl.DataFrame(
        {
            "venue_account_id": [2, 2],
            "venue_order_id": ["O1", "O2"],
            "price": [30000.0, 2000.0],
            "base_asset": ["BTC", "ETH"],
            "base_amount": [2.0, -1.5],
            "quote_asset": ["USD", "USD"],
            "commission_asset": pl.Series(["USD", None], dtype=pl.Utf8),
            "commission_amount": pl.Series([12.5, None], dtype=pl.Float64),
            "timestamp": [datetime(2024, 1, 1, 11, 0), datetime(2024, 1, 1, 11, 30)],
            "external_trade_id": ["T1", '{"id": "T2", "venue": "binance"}'],
        }
    )
