"""Tests for validator service."""

from datetime import datetime

import polars as pl
import pytest

from small_ledger.domain.reference import ReferenceRegistry
from small_ledger.services.validator import ValidationResult, ValidatorService
from tests.conftest import ASSETS


class TestValidatorService:
    """Tests for ValidatorService."""

    @pytest.fixture
    def validator(self):
        return ValidatorService(ReferenceRegistry(assets=ASSETS))

    def test_valid_transfers(self, validator, sample_transfer_data):
        result = validator.validate(sample_transfer_data, "transfer")

        assert result.is_valid is True
        assert len(result.data) == 2
        assert result.error_message is None

    def test_valid_trades(self, validator, sample_trade_data):
        result = validator.validate(sample_trade_data, "trade")

        assert result.is_valid is True
        assert len(result.data) == 2

    def test_optional_columns_filled(self, validator, sample_transfer_data):
        result = validator.validate(sample_transfer_data.drop("via_account_id"), "transfer")

        assert result.is_valid is True
        assert result.data["via_account_id"].null_count() == 2

    def test_negative_amount(self, validator, sample_transfer_data):
        data = sample_transfer_data.with_columns(pl.Series("amount", [1000.0, -1.0]))

        result = validator.validate(data, "transfer")

        assert result.is_valid is False
        assert "amount" in result.error_message
        assert len(result.data) == 0

    def test_same_credit_and_debit(self, validator, sample_transfer_data):
        data = sample_transfer_data.with_columns(pl.Series("debit_account_id", [2, 2]))

        result = validator.validate(data, "transfer")

        assert result.is_valid is False

    def test_same_trade_legs(self, validator, sample_trade_data):
        data = sample_trade_data.with_columns(pl.Series("quote_asset", ["BTC", "USD"]))

        result = validator.validate(data, "trade")

        assert result.is_valid is False

    def test_half_set_commission(self, validator, sample_trade_data):
        data = sample_trade_data.with_columns(pl.Series("commission_amount", [12.5, 1.0]))

        result = validator.validate(data, "trade")

        assert result.is_valid is False

    def test_missing_columns(self, validator, sample_trade_data):
        result = validator.validate(sample_trade_data.drop("price"), "trade")

        assert result.is_valid is False
        assert "price" in result.error_message

    def test_unknown_asset(self, validator, sample_trade_data):
        data = sample_trade_data.with_columns(pl.Series("base_asset", ["BTC", "DOGE"]))

        result = validator.validate(data, "trade")

        assert result.is_valid is False
        assert "DOGE" in result.error_message

    def test_empty_dataframe(self, validator, sample_transfer_data):
        result = validator.validate(sample_transfer_data.clear(), "transfer")

        assert result.is_valid is True

    def test_unregistered_kind(self, validator, sample_transfer_data):
        with pytest.raises(KeyError):
            validator.validate(sample_transfer_data, "dividend")

    def test_fetch_and_validate_csv(self, validator, tmp_path):
        path = tmp_path / "trades.csv"
        path.write_text(
            "venue_account_id,venue_order_id,price,base_asset,base_amount,quote_asset,timestamp,external_trade_id\n"
            "2,0001,30000,BTC,2,USD,2024-01-01T11:00:00,00042\n"
        )

        result = validator.fetch_and_validate(path, "trade")

        assert result.is_valid is True
        assert result.data["venue_order_id"][0] == "0001"
        assert result.data["external_trade_id"][0] == "00042"
        assert result.data["timestamp"][0] == datetime(2024, 1, 1, 11, 0)
        assert result.data["price"][0] == "30000"
        assert result.data["commission_amount"].dtype == pl.Utf8

    def test_csv_amounts_keep_every_digit(self, validator, tmp_path):
        path = tmp_path / "transfers.csv"
        path.write_text(
            "credit_account_id,debit_account_id,asset,amount,timestamp\n"
            "2,1,USD,1234567.123456789012345678,2024-01-01T10:00:00\n"
        )

        result = validator.fetch_and_validate(path, "transfer")

        assert result.is_valid is True
        assert result.data["amount"][0] == "1234567.123456789012345678"

    @pytest.mark.parametrize("amount", ["0", "-0.5", "ten"])
    def test_csv_amount_not_positive_decimal(self, validator, tmp_path, amount):
        path = tmp_path / "transfers.csv"
        path.write_text(f"credit_account_id,debit_account_id,asset,amount,timestamp\n2,1,USD,{amount},2024-01-01T10:00:00\n")

        result = validator.fetch_and_validate(path, "transfer")

        assert result.is_valid is False
        assert "amount" in result.error_message


class TestValidationResult:
    """Tests for ValidationResult dataclass."""

    def test_defaults(self):
        result = ValidationResult(is_valid=True, data=pl.DataFrame())
        assert result.error_message is None
