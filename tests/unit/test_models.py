"""Tests for domain models, enums, errors and reference data."""

from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from small_ledger.domain.enums import ALL_PROJECTIONS, VALID_ACCOUNT_KINDS, AccountKind, Projection
from small_ledger.domain.errors import (
    AccountKindMismatch,
    DuplicateTrade,
    InvalidAmount,
    LedgerConflictError,
    LedgerError,
    LedgerReferenceError,
    LedgerValidationError,
    SnapshotOrderError,
    UnknownAsset,
    UnknownVenue,
)
from small_ledger.domain.models import Account, Trade, canonical_trade_key, derive_quote_amount
from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.domain.timestamps import as_utc, utc_now


class TestEnums:
    """Tests for AccountKind and Projection."""

    def test_account_kind_values(self):
        assert AccountKind.STRATEGY == "strategy"
        assert AccountKind.VENUE == "venue"
        assert VALID_ACCOUNT_KINDS == {"strategy", "venue"}

    def test_internal_and_external(self):
        assert AccountKind.STRATEGY.is_internal
        assert not AccountKind.STRATEGY.is_external
        assert AccountKind.VENUE.is_external
        assert not AccountKind.VENUE.is_internal

    def test_all_projections(self):
        assert ALL_PROJECTIONS == (Projection.STRATEGY, Projection.VENUE, Projection.STRATEGY_VENUE)


class TestDerivedFields:
    """Tests for quote amount and trade key derivation."""

    def test_quote_amount_of_buy(self):
        assert derive_quote_amount(Decimal("100"), Decimal("2")) == Decimal("-200")

    def test_quote_amount_of_sell(self):
        assert derive_quote_amount(Decimal("50"), Decimal("-3")) == Decimal("150")

    def test_canonical_trade_key_ignores_key_order(self):
        assert canonical_trade_key({"b": 1, "a": "x"}) == canonical_trade_key({"a": "x", "b": 1})
        assert canonical_trade_key({"id": "T123"}) == '{"id":"T123"}'

    def test_trade_is_buy(self):
        trade = Trade(
            venue_account_id=1,
            venue_order_id="O1",
            price=Decimal("10"),
            base_asset="BTC",
            base_amount=Decimal("1"),
            quote_asset="USD",
            timestamp=utc_now(),
            external_trade_id={"id": "1"},
            external_trade_key='{"id":"1"}',
        )
        assert trade.is_buy
        trade.base_amount = Decimal("-1")
        assert not trade.is_buy

    def test_account_kind_properties(self):
        account = Account(kind="venue", natural_key="binance", created_at=utc_now())
        assert account.account_kind is AccountKind.VENUE
        assert account.is_external
        assert not account.is_internal


class TestTimestamps:
    """Tests for UTC normalisation."""

    def test_naive_is_taken_as_utc(self):
        assert as_utc(datetime(2024, 1, 1, 12, 0)) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_aware_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = as_utc(datetime(2024, 1, 1, 12, 0, tzinfo=plus_two))
        assert result == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)
        assert result.tzinfo == UTC

    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is not None


class TestErrors:
    """Tests for the ledger error hierarchy."""

    def test_families(self):
        assert issubclass(InvalidAmount, LedgerValidationError)
        assert issubclass(InvalidAmount, ValueError)
        assert issubclass(DuplicateTrade, LedgerConflictError)
        assert issubclass(UnknownAsset, LedgerReferenceError)
        assert issubclass(UnknownAsset, LookupError)
        assert issubclass(SnapshotOrderError, LedgerError)

    def test_errors_carry_fields(self):
        error = DuplicateTrade(1, {"id": "T123"})
        assert error.venue_account_id == 1
        assert error.external_trade_id == {"id": "T123"}
        assert "T123" in str(error)

        mismatch = AccountKindMismatch(7, expected="venue", actual="strategy")
        assert (mismatch.account_id, mismatch.expected, mismatch.actual) == (7, "venue", "strategy")

    def test_snapshot_order_error_message(self):
        latest = datetime(2024, 1, 2, tzinfo=UTC)
        error = SnapshotOrderError("venue", datetime(2024, 1, 1, tzinfo=UTC), latest)
        assert error.latest == latest
        assert "venue" in str(error)


class TestReferenceRegistry:
    """Tests for ReferenceRegistry."""

    def test_empty_registry_accepts_everything(self):
        registry = ReferenceRegistry()
        assert registry.is_known_asset("ANY")
        assert registry.is_known_venue("anywhere")
        registry.validate_asset("ANY")

    def test_unknown_asset(self):
        registry = ReferenceRegistry(assets=["USD", "BTC"])
        registry.validate_asset("BTC")
        with pytest.raises(UnknownAsset) as exc_info:
            registry.validate_asset("DOGE")
        assert exc_info.value.asset == "DOGE"

    def test_unknown_venue(self):
        registry = ReferenceRegistry(venues=["binance"])
        with pytest.raises(UnknownVenue):
            registry.validate_venue("ftx")

    def test_from_config(self):
        registry = ReferenceRegistry.from_config({"assets": ["USD"], "venues": ["kraken"]})
        assert registry.assets == frozenset({"USD"})
        assert registry.venues == frozenset({"kraken"})

    def test_from_missing_config(self):
        registry = ReferenceRegistry.from_config(None)
        assert registry.assets == frozenset()
