"""Ledger facade wiring services together and exposing the query surface."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any

from omegaconf import DictConfig

from small_ledger.data_access.ledger_repository import LedgerRepository
from small_ledger.domain.enums import ALL_PROJECTIONS, AccountKind, Projection
from small_ledger.domain.errors import AccountKindMismatch
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.timestamps import utc_now
from small_ledger.services.accounts import AccountService
from small_ledger.services.aggregator import BalanceAggregator, BalanceRow
from small_ledger.services.denormaliser import DenormalisationResult, DenormalisationService
from small_ledger.services.loader import LoaderService, LoadResult
from small_ledger.services.movements import MovementLog
from small_ledger.services.snapshots import SnapshotManager, SnapshotResult
from small_ledger.services.validator import ValidatorService

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_LAG_SECONDS = 300


@dataclass
class ImportResult:
    """Result of a CSV import."""

    kind: str
    success: bool
    load: LoadResult | None = None
    error_message: str | None = None


class LedgerService:
    """Bookkeeping and balance-reconciliation engine.

    Configuration-driven entry point owning the repository and all services.
    """

    def __init__(self, config: DictConfig) -> None:
        self._config = config

        echo = getattr(config.db, "echo", False)
        self._repo = LedgerRepository(config.db.url, echo=echo)

        self._reference = ReferenceRegistry.from_config(getattr(config, "reference", None))
        self.accounts = AccountService(self._repo, self._reference)
        self.movements = MovementLog(self._repo, self._reference)
        self.aggregator = BalanceAggregator(self._repo)
        self.snapshots = SnapshotManager(self._repo, self.aggregator)
        self._denormaliser = DenormalisationService(self._repo)
        self._validator = ValidatorService(self._reference)
        self._loader = LoaderService(self.movements)

        ledger_cfg = config.get("ledger") or {}
        self._snapshot_lag = timedelta(seconds=ledger_cfg.get("snapshot_lag_seconds", DEFAULT_SNAPSHOT_LAG_SECONDS))

        logger.info("LedgerService initialized")

    @property
    def repository(self) -> LedgerRepository:
        return self._repo

    def init_db(self) -> None:
        """Create ledger tables (development and tests; production uses Alembic)."""
        self._repo.create_tables()

    def run_denormalisation(self) -> DenormalisationResult:
        """Back-fill strategy attribution on trades from their order lineage."""
        return self._denormaliser.run()

    def default_snapshot_instant(self) -> datetime:
        """Now minus the configured ingestion lag."""
        return utc_now() - self._snapshot_lag

    def take_snapshot(
        self,
        instant: datetime | None = None,
        projections: list[Projection] | None = None,
    ) -> SnapshotResult:
        """Snapshot balances at ``instant`` (default: now minus ingestion lag)."""
        return self.snapshots.take_snapshot(
            instant or self.default_snapshot_instant(),
            projections or list(ALL_PROJECTIONS),
        )

    def _account_rows(self, account_id: int, asset: str | None, as_of: datetime | None) -> list[BalanceRow]:
        account = self.accounts.get_account(account_id)
        if account.account_kind is AccountKind.STRATEGY:
            projection, key = Projection.STRATEGY, "strategy_account_id"
        else:
            projection, key = Projection.VENUE, "venue_account_id"

        if as_of is None:
            return self.snapshots.current_balance(projection, key_filter={key: account_id}, asset=asset)
        return self.snapshots.balance_at(projection, as_of, key_filter={key: account_id}, asset=asset)

    def get_account_balance(self, account_id: int, asset: str, as_of: datetime | None = None) -> Decimal:
        """Balance of one account in one asset, now or as of an instant.

        Returns:
            Net amount, zero when the account holds nothing of the asset.

        Raises:
            UnknownAccount: If the account does not exist.
        """
        rows = self._account_rows(account_id, asset, as_of)
        return rows[0].amount if rows else Decimal(0)

    def get_account_balances(self, account_id: int, as_of: datetime | None = None) -> dict[str, Decimal]:
        """Non-zero balances of one account per asset, now or as of an instant."""
        return {row.asset: row.amount for row in self._account_rows(account_id, None, as_of)}

    def get_strategy_venue_balance(
        self,
        strategy_account_id: int,
        venue_account_id: int,
        as_of: datetime | None = None,
    ) -> dict[str, Decimal]:
        """Non-zero balances a strategy holds at one venue, per asset.

        Raises:
            UnknownAccount: If either account does not exist.
            AccountKindMismatch: If the accounts have the wrong kinds.
        """
        for account_id, kind in ((strategy_account_id, AccountKind.STRATEGY), (venue_account_id, AccountKind.VENUE)):
            account = self.accounts.get_account(account_id)
            if account.account_kind is not kind:
                raise AccountKindMismatch(account_id, expected=kind.value, actual=account.kind)

        key_filter = {"strategy_account_id": strategy_account_id, "venue_account_id": venue_account_id}
        if as_of is None:
            rows = self.snapshots.current_balance(Projection.STRATEGY_VENUE, key_filter=key_filter)
        else:
            rows = self.snapshots.balance_at(Projection.STRATEGY_VENUE, as_of, key_filter=key_filter)
        return {row.asset: row.amount for row in rows}

    def import_csv(self, path: str | Path, kind: str) -> ImportResult:
        """Validate a CSV of normalised movements and record it."""
        validation = self._validator.fetch_and_validate(path, kind)
        if not validation.is_valid:
            return ImportResult(kind=kind, success=False, error_message=f"Validation failed: {validation.error_message}")

        load = self._loader.load(validation.data, kind)
        if not load.success:
            return ImportResult(kind=kind, success=False, load=load, error_message=f"Loading failed: {load.error_message}")
        return ImportResult(kind=kind, success=True, load=load)

    def close(self) -> None:
        """Clean up resources."""
        self._repo.close()
        logger.info("LedgerService resources cleaned up")

    def __enter__(self) -> "LedgerService":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
