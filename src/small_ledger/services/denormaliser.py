"""Denormalisation pass back-filling trade strategy attribution from order lineage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update

from small_ledger.domain.models import EmsOrder, Trade, VenueOrder
from small_ledger.domain.timestamps import utc_now

if TYPE_CHECKING:
    from small_ledger.data_access.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass
class DenormalisationResult:
    """Result of one denormalisation pass.

    Attributes:
        resolved_count: Trades that received a strategy in this pass.
        unresolved_count: Trades still without strategy after the pass. This
            counts every trade whose venue order has no EMS order lineage in
            the store yet, including lineage that simply has not been
            ingested and will resolve on a later pass, not only trades that
            can never be attributed.
        started_at: Pass start (UTC).
        completed_at: Pass end (UTC).
    """

    resolved_count: int
    unresolved_count: int
    started_at: datetime
    completed_at: datetime


class DenormalisationService:
    """Copies the owning strategy onto trades by following
    trade -> venue order -> EMS order -> strategy.

    Only rows whose attribution is still empty are updated, and the update is
    conditional on that, so concurrent or repeated passes never overwrite a
    resolved trade.

    Args:
        repository: Ledger repository.
    """

    def __init__(self, repository: LedgerRepository) -> None:
        self._repo = repository

    def run(self) -> DenormalisationResult:
        """Resolve every trade with empty strategy attribution that has lineage.

        Returns:
            DenormalisationResult with resolved and still-unresolved counts.
        """
        started_at = utc_now()

        lineage = (
            select(EmsOrder.strategy_account_id)
            .join(VenueOrder, VenueOrder.ems_order_id == EmsOrder.id)
            .where(
                VenueOrder.venue_account_id == Trade.venue_account_id,
                VenueOrder.venue_order_id == Trade.venue_order_id,
            )
            .correlate(Trade)
            .scalar_subquery()
        )
        stmt = (
            update(Trade)
            .where(Trade.strategy_account_id.is_(None))  # type: ignore[union-attr]
            .where(lineage.is_not(None))
            .values(strategy_account_id=lineage)
            .execution_options(synchronize_session=False)
        )

        with self._repo.get_session() as session:
            result = session.execute(stmt)  # pyrefly: ignore[deprecated]
            resolved = result.rowcount or 0
            session.commit()

            unresolved = session.execute(  # pyrefly: ignore[deprecated]
                select(func.count()).select_from(Trade).where(Trade.strategy_account_id.is_(None))  # type: ignore[union-attr]
            ).scalar_one()

        completed_at = utc_now()
        logger.info(f"Denormalisation pass resolved {resolved} trades")
        if unresolved:
            logger.warning(f"{unresolved} trades have no EMS order lineage yet and remain unattributed")

        return DenormalisationResult(
            resolved_count=resolved,
            unresolved_count=unresolved,
            started_at=started_at,
            completed_at=completed_at,
        )

    def count_unresolved(self, until: datetime | None = None) -> int:
        """Count trades without strategy attribution, optionally up to ``until``."""
        stmt = select(func.count()).select_from(Trade).where(Trade.strategy_account_id.is_(None))  # type: ignore[union-attr]
        if until is not None:
            stmt = stmt.where(Trade.timestamp <= until)
        with self._repo.get_session() as session:
            return session.execute(stmt).scalar_one()  # pyrefly: ignore[deprecated]
