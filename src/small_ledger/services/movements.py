"""Movement log: append-only transfers and trades, plus the order lineage."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from small_ledger.domain.enums import AccountKind
from small_ledger.domain.errors import (
    DuplicateTrade,
    DuplicateVenueOrder,
    InconsistentCommission,
    InvalidAmount,
    InvalidPrice,
    InvalidTrade,
    SameAccount,
    UnknownEmsOrder,
)
from small_ledger.domain.models import EmsOrder, Trade, Transfer, VenueOrder, canonical_trade_key
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.timestamps import as_utc, utc_now
from small_ledger.services.accounts import require_account

if TYPE_CHECKING:
    from small_ledger.data_access.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a numeric input to Decimal without binary float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class MovementLog:
    """Records immutable transfers and trades.

    Every record call runs in its own transaction and either appends exactly one
    row or raises. Nothing here updates or deletes a recorded movement.

    Args:
        repository: Ledger repository.
        reference: Reference registry used to validate asset symbols.
    """

    def __init__(self, repository: LedgerRepository, reference: ReferenceRegistry | None = None) -> None:
        self._repo = repository
        self._reference = reference or ReferenceRegistry()

    def record_transfer(
        self,
        credit_account_id: int,
        debit_account_id: int,
        asset: str,
        amount: Decimal | int | str,
        timestamp: datetime,
        via_account_id: int | None = None,
    ) -> int:
        """Append a single-asset transfer.

        The debit account gains ``amount`` and the credit account loses it.

        Returns:
            Id of the recorded transfer.

        Raises:
            InvalidAmount: If amount <= 0.
            SameAccount: If credit and debit are the same account.
            UnknownAsset: If the asset is not registered.
            UnknownAccount: If any referenced account does not exist.
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise InvalidAmount(amount)
        if credit_account_id == debit_account_id:
            raise SameAccount(credit_account_id)
        self._reference.validate_asset(asset)

        with self._repo.get_session() as session:
            require_account(session, credit_account_id)
            require_account(session, debit_account_id)
            if via_account_id is not None:
                require_account(session, via_account_id)

            transfer = Transfer(
                credit_account_id=credit_account_id,
                debit_account_id=debit_account_id,
                asset=asset,
                amount=amount,
                timestamp=as_utc(timestamp),
                via_account_id=via_account_id,
            )
            session.add(transfer)
            session.commit()
            tx_id: int = transfer.id  # type: ignore[assignment]

        logger.info(f"Recorded tx {tx_id}: {amount} {asset} from {credit_account_id} to {debit_account_id}")
        return tx_id

    def record_trade(
        self,
        venue_account_id: int,
        venue_order_id: str,
        price: Decimal | int | str,
        base_asset: str,
        base_amount: Decimal | int | str,
        quote_asset: str,
        timestamp: datetime,
        external_trade_id: dict[str, Any],
        commission_asset: str | None = None,
        commission_amount: Decimal | int | str | None = None,
    ) -> int:
        """Append a two-asset trade filled on a venue order.

        The quote amount is generated by the store as ``price * -base_amount``
        and cannot be supplied. Strategy attribution is left empty for the
        denormalisation pass.

        Returns:
            Id of the recorded trade.

        Raises:
            InvalidPrice: If price <= 0.
            InconsistentCommission: If exactly one commission field is set.
            InvalidTrade: If both legs use the same asset or the external id is empty.
            DuplicateTrade: If the venue account already has this external trade id.
            AccountKindMismatch: If ``venue_account_id`` is not a venue account.
        """
        price = to_decimal(price)
        base_amount = to_decimal(base_amount)
        if price <= 0:
            raise InvalidPrice(price)
        if (commission_asset is None) != (commission_amount is None):
            raise InconsistentCommission(commission_asset, commission_amount)  # type: ignore[arg-type]
        if base_asset == quote_asset:
            raise InvalidTrade("base and quote asset must differ", base_asset=base_asset, quote_asset=quote_asset)
        if not isinstance(external_trade_id, dict) or not external_trade_id:
            raise InvalidTrade("external trade id must be a non-empty mapping", external_trade_id=external_trade_id)

        for asset in (base_asset, quote_asset, commission_asset):
            if asset is not None:
                self._reference.validate_asset(asset)

        trade_key = canonical_trade_key(external_trade_id)
        with self._repo.get_session() as session:
            require_account(session, venue_account_id, AccountKind.VENUE)

            trade = Trade(
                venue_account_id=venue_account_id,
                venue_order_id=venue_order_id,
                price=price,
                base_asset=base_asset,
                base_amount=base_amount,
                quote_asset=quote_asset,
                commission_asset=commission_asset,
                commission_amount=to_decimal(commission_amount) if commission_amount is not None else None,
                timestamp=as_utc(timestamp),
                external_trade_id=external_trade_id,
                external_trade_key=trade_key,
            )
            session.add(trade)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if self._trade_exists(venue_account_id, trade_key):
                    raise DuplicateTrade(venue_account_id, external_trade_id) from e
                raise
            trade_id: int = trade.id  # type: ignore[assignment]

        logger.info(
            f"Recorded trade {trade_id}: {base_amount} {base_asset} @ {price} {quote_asset} "
            f"on venue account {venue_account_id} (order {venue_order_id})"
        )
        return trade_id

    def _trade_exists(self, venue_account_id: int, trade_key: str) -> bool:
        stmt = select(Trade.id).where(
            Trade.venue_account_id == venue_account_id,
            Trade.external_trade_key == trade_key,
        )
        with self._repo.get_session() as session:
            return session.execute(stmt).first() is not None  # pyrefly: ignore[deprecated]

    def record_ems_order(
        self,
        strategy_account_id: int,
        detail: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> int:
        """Record an EMS order owned by a strategy.

        Returns:
            Id of the EMS order.
        """
        with self._repo.get_session() as session:
            require_account(session, strategy_account_id, AccountKind.STRATEGY)
            order = EmsOrder(
                strategy_account_id=strategy_account_id,
                created_at=as_utc(created_at) if created_at else utc_now(),
                detail=detail or {},
            )
            session.add(order)
            session.commit()
            order_id: int = order.id  # type: ignore[assignment]

        logger.info(f"Recorded EMS order {order_id} for strategy {strategy_account_id}")
        return order_id

    def record_venue_order(self, venue_account_id: int, venue_order_id: str, ems_order_id: int) -> None:
        """Link a venue-assigned order id to the EMS order it executes.

        Raises:
            UnknownEmsOrder: If the EMS order does not exist.
            DuplicateVenueOrder: If the venue order is already linked.
        """
        with self._repo.get_session() as session:
            require_account(session, venue_account_id, AccountKind.VENUE)
            if session.get(EmsOrder, ems_order_id) is None:
                raise UnknownEmsOrder(ems_order_id)
            if session.get(VenueOrder, (venue_account_id, venue_order_id)) is not None:
                raise DuplicateVenueOrder(venue_account_id, venue_order_id)

            session.add(
                VenueOrder(
                    venue_account_id=venue_account_id,
                    venue_order_id=venue_order_id,
                    ems_order_id=ems_order_id,
                )
            )
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateVenueOrder(venue_account_id, venue_order_id) from e

        logger.info(f"Linked venue order {venue_order_id} on account {venue_account_id} to EMS order {ems_order_id}")

    def get_transfer(self, tx_id: int) -> Transfer | None:
        with self._repo.get_session() as session:
            return session.get(Transfer, tx_id)

    def get_trade(self, trade_id: int) -> Trade | None:
        with self._repo.get_session() as session:
            return session.get(Trade, trade_id)
