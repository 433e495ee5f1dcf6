"""Tests for the balance aggregator."""

from datetime import timedelta
from decimal import Decimal

import pytest

from small_ledger.domain.enums import Projection
from small_ledger.services.aggregator import BalanceRow, to_balance_rows
from tests.conftest import T1, T2, T3


def _as_dict(rows):
    return {(row.key, row.asset): row.amount for row in rows}


class TestScenarioBalances:
    """Strategy funds a venue, then buys BTC there."""

    def test_strategy_projection(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_till(Projection.STRATEGY, T3))
        assert balances == {
            ((scenario.strategy,), "BTC"): Decimal("2"),
            ((scenario.strategy,), "USD"): Decimal("-59000"),
        }

    def test_venue_projection(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_till(Projection.VENUE, T3))
        assert balances == {
            ((scenario.venue,), "BTC"): Decimal("-2"),
            ((scenario.venue,), "USD"): Decimal("59000"),
        }

    def test_strategy_venue_projection(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_till(Projection.STRATEGY_VENUE, T3))
        assert balances == {
            ((scenario.strategy, scenario.venue), "BTC"): Decimal("2"),
            ((scenario.strategy, scenario.venue), "USD"): Decimal("-59000"),
        }

    def test_rows_are_ordered_by_key_and_asset(self, aggregator, scenario):
        rows = aggregator.diff_till(Projection.STRATEGY, T3)
        assert [row.asset for row in rows] == ["BTC", "USD"]
        assert all(isinstance(row.amount, Decimal) for row in rows)


class TestWindows:
    """Tests for diff_till / diff_since window semantics."""

    def test_till_is_inclusive(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_till(Projection.STRATEGY, T1))
        assert balances == {((scenario.strategy,), "USD"): Decimal("1000")}

    def test_since_is_exclusive(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_since(Projection.STRATEGY, T2))
        assert balances == {}

        balances = _as_dict(aggregator.diff_since(Projection.STRATEGY, T1))
        assert balances == {
            ((scenario.strategy,), "BTC"): Decimal("2"),
            ((scenario.strategy,), "USD"): Decimal("-60000"),
        }

    def test_before_first_movement_is_empty(self, aggregator, scenario):
        assert aggregator.diff_till(Projection.VENUE, T1 - timedelta(seconds=1)) == []

    @pytest.mark.parametrize("projection", list(Projection))
    @pytest.mark.parametrize("split", [T1, T1 + timedelta(minutes=30), T2, T3])
    def test_till_plus_since_is_total(self, aggregator, scenario, projection, split):
        total = _as_dict(aggregator.diff_till(projection, T3 + timedelta(days=1)))
        combined: dict = {}
        for rows in (aggregator.diff_till(projection, split), aggregator.diff_since(projection, split)):
            for key, amount in _as_dict(rows).items():
                combined[key] = combined.get(key, Decimal(0)) + amount
        assert combined == total

    def test_diff_between(self, aggregator, scenario):
        balances = _as_dict(aggregator.diff_between(Projection.VENUE, after=T1, until=T2))
        assert balances == {
            ((scenario.venue,), "BTC"): Decimal("-2"),
            ((scenario.venue,), "USD"): Decimal("60000"),
        }

    def test_naive_instant_is_utc(self, aggregator, scenario):
        naive = T1.replace(tzinfo=None)
        assert aggregator.diff_till(Projection.STRATEGY, naive) == aggregator.diff_till(Projection.STRATEGY, T1)


class TestProjectionRules:
    """Tests for which movements each projection includes."""

    def test_zero_sum_groups_are_kept(self, accounts, movements, aggregator):
        s1 = accounts.create_strategy_account("S1")
        v1 = accounts.create_venue_account("binance")
        movements.record_transfer(v1, s1, "USD", 100, T1)
        movements.record_transfer(s1, v1, "USD", 100, T2)

        rows = aggregator.diff_till(Projection.STRATEGY, T3)
        assert rows == [BalanceRow(key=(s1,), asset="USD", amount=Decimal("0"))]

    def test_strategy_to_strategy_transfer(self, accounts, movements, aggregator):
        s1 = accounts.create_strategy_account("S1")
        s2 = accounts.create_strategy_account("S2")
        movements.record_transfer(s1, s2, "USDT", 250, T1)

        assert _as_dict(aggregator.diff_till(Projection.STRATEGY, T3)) == {
            ((s1,), "USDT"): Decimal("-250"),
            ((s2,), "USDT"): Decimal("250"),
        }
        assert aggregator.diff_till(Projection.VENUE, T3) == []
        assert aggregator.diff_till(Projection.STRATEGY_VENUE, T3) == []

    def test_venue_to_venue_transfer(self, accounts, movements, aggregator):
        v1 = accounts.create_venue_account("binance")
        v2 = accounts.create_venue_account("kraken")
        movements.record_transfer(v1, v2, "BTC", 1, T1)

        assert _as_dict(aggregator.diff_till(Projection.VENUE, T3)) == {
            ((v1,), "BTC"): Decimal("-1"),
            ((v2,), "BTC"): Decimal("1"),
        }
        assert aggregator.diff_till(Projection.STRATEGY, T3) == []

    def test_unattributed_trade_only_in_venue_projection(self, accounts, movements, aggregator):
        v1 = accounts.create_venue_account("binance")
        movements.record_trade(
            venue_account_id=v1,
            venue_order_id="O9",
            price=Decimal("2000"),
            base_asset="ETH",
            base_amount=Decimal("-1.5"),
            quote_asset="USD",
            timestamp=T1,
            external_trade_id={"id": "X"},
        )

        assert _as_dict(aggregator.diff_till(Projection.VENUE, T3)) == {
            ((v1,), "ETH"): Decimal("1.5"),
            ((v1,), "USD"): Decimal("-3000"),
        }
        assert aggregator.diff_till(Projection.STRATEGY, T3) == []
        assert aggregator.diff_till(Projection.STRATEGY_VENUE, T3) == []

    def test_commission_is_not_a_balance_leg(self, accounts, movements, aggregator):
        v1 = accounts.create_venue_account("binance")
        movements.record_trade(
            venue_account_id=v1,
            venue_order_id="O1",
            price=Decimal("100"),
            base_asset="BTC",
            base_amount=Decimal("1"),
            quote_asset="USD",
            timestamp=T1,
            external_trade_id={"id": "C1"},
            commission_asset="USDT",
            commission_amount=Decimal("0.5"),
        )
        assets = {row.asset for row in aggregator.diff_till(Projection.VENUE, T3)}
        assert assets == {"BTC", "USD"}


class TestToBalanceRows:
    """Tests for result row conversion."""

    def test_float_amount_converted(self):
        rows = to_balance_rows(Projection.STRATEGY_VENUE, [(1, 2, "USD", 1.5)])
        assert rows == [BalanceRow(key=(1, 2), asset="USD", amount=Decimal("1.5"))]
