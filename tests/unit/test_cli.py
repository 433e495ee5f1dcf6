"""Tests for CLI module."""

import argparse
from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest
from omegaconf import OmegaConf

from small_ledger.cli import (
    EXIT_ARGS_ERROR,
    EXIT_ERROR,
    EXIT_SUCCESS,
    get_config_dir,
    main,
    parse_args,
    parse_instant,
    run_command,
    run_schedule,
)


@pytest.fixture
def config_dict(ledger_config):
    return OmegaConf.to_container(ledger_config)


@pytest.fixture
def cli(config_dict):
    """Run the CLI against the per-test SQLite database."""

    def invoke(*argv: str) -> int:
        args, overrides = parse_args(list(argv))
        with patch("small_ledger.cli.build_config", return_value=config_dict):
            return run_command(args, overrides)

    return invoke


class TestParseArgs:
    """Tests for argument parsing."""

    def test_hydra_overrides_are_separated(self):
        args, overrides = parse_args(["snapshot", "db=test", "ledger.snapshot_lag_seconds=60"])

        assert args.command == "snapshot"
        assert args.at is None
        assert overrides == ["db=test", "ledger.snapshot_lag_seconds=60"]

    def test_balance_arguments(self):
        args, _ = parse_args(["balance", "--account-id", "3", "--asset", "BTC", "--as-of", "2024-01-01T00:00:00Z"])

        assert args.account_id == 3
        assert args.asset == "BTC"
        assert args.as_of == datetime(2024, 1, 1, tzinfo=UTC)

    def test_no_command_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_args([])
        assert exc_info.value.code == EXIT_ARGS_ERROR

    def test_invalid_kind_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["import", "--kind", "dividend", "--file", "x.csv"])

    def test_parse_instant(self):
        assert parse_instant("2024-01-01T10:00:00+02:00") == datetime(2024, 1, 1, 8, 0, tzinfo=UTC)
        with pytest.raises(argparse.ArgumentTypeError):
            parse_instant("yesterday")


class TestCommands:
    """End-to-end command tests on SQLite."""

    def test_init_and_accounts(self, cli, capsys):
        assert cli("init-db") == EXIT_SUCCESS
        assert cli("account", "add", "--kind", "strategy", "--name", "S1") == EXIT_SUCCESS
        assert cli("account", "add", "--kind", "venue", "--name", "binance") == EXIT_SUCCESS
        assert cli("account", "list") == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Accounts (2)" in out
        assert "binance" in out

    def test_duplicate_account_is_error(self, cli):
        cli("init-db")
        cli("account", "add", "--kind", "strategy", "--name", "S1")

        assert cli("account", "add", "--kind", "strategy", "--name", "S1") == EXIT_ERROR

    def test_account_without_operation(self, cli):
        cli("init-db")
        assert cli("account") == EXIT_ARGS_ERROR

    def test_import_snapshot_and_balance(self, cli, tmp_path, capsys):
        cli("init-db")
        cli("account", "add", "--kind", "strategy", "--name", "S1")
        cli("account", "add", "--kind", "venue", "--name", "binance")
        path = tmp_path / "transfers.csv"
        path.write_text("credit_account_id,debit_account_id,asset,amount,timestamp\n2,1,USD,1000,2024-01-01T10:00:00\n")

        assert cli("import", "--kind", "transfer", "--file", str(path)) == EXIT_SUCCESS
        assert cli("denormalise") == EXIT_SUCCESS
        assert cli("snapshot", "--at", "2024-01-02T00:00:00Z") == EXIT_SUCCESS
        capsys.readouterr()

        assert cli("balance", "--account-id", "1") == EXIT_SUCCESS
        assert "USD" in capsys.readouterr().out
        assert cli("balance", "--account-id", "2", "--asset", "USD", "--as-of", "2024-01-01T09:00:00Z") == EXIT_SUCCESS
        assert "0" in capsys.readouterr().out

    def test_older_snapshot_is_error(self, cli, tmp_path):
        cli("init-db")
        cli("account", "add", "--kind", "strategy", "--name", "S1")
        cli("account", "add", "--kind", "strategy", "--name", "S2")
        path = tmp_path / "transfers.csv"
        path.write_text("credit_account_id,debit_account_id,asset,amount,timestamp\n2,1,USD,5,2024-01-01T10:00:00\n")
        cli("import", "--kind", "transfer", "--file", str(path))

        assert cli("snapshot", "--at", "2024-01-02T00:00:00Z") == EXIT_SUCCESS
        assert cli("snapshot", "--at", "2024-01-01T00:00:00Z") == EXIT_ERROR

    def test_failed_import(self, cli, tmp_path):
        cli("init-db")
        path = tmp_path / "transfers.csv"
        path.write_text("credit_account_id,debit_account_id,asset,amount,timestamp\n2,1,USD,-1,2024-01-01T10:00:00\n")

        assert cli("import", "--kind", "transfer", "--file", str(path)) == EXIT_ERROR

    def test_unknown_account_balance(self, cli):
        cli("init-db")
        assert cli("balance", "--account-id", "7") == EXIT_ERROR

    def test_missing_config_dir(self):
        args, overrides = parse_args(["denormalise"])
        with patch("small_ledger.cli.build_config", side_effect=FileNotFoundError("configs")):
            assert run_command(args, overrides) == EXIT_ARGS_ERROR


class TestRunSchedule:
    """Tests for schedule commands with a mocked scheduler."""

    @pytest.fixture
    def mock_scheduler(self):
        with patch("small_ledger.scheduler.scheduler.LedgerScheduler") as scheduler_cls:
            scheduler = MagicMock()
            scheduler_cls.return_value = scheduler
            yield scheduler

    @pytest.fixture
    def logger(self):
        return MagicMock()

    def _args(self, *argv):
        return parse_args(["schedule", *argv])[0]

    def test_add(self, mock_scheduler, logger, capsys):
        mock_scheduler.add_job.return_value = MagicMock(job_id="hourly", command="snapshot", interval="hour")
        args = self._args("add", "--job-id", "hourly", "--ledger-command", "snapshot", "--interval", "hour")

        assert run_schedule(args, {"db": {"url": "sqlite://"}}, logger) == EXIT_SUCCESS
        mock_scheduler.add_job.assert_called_once_with(
            job_id="hourly", command="snapshot", interval="hour", at_time=None
        )
        assert "Job added: hourly" in capsys.readouterr().out

    def test_add_invalid(self, mock_scheduler, logger):
        mock_scheduler.add_job.side_effect = ValueError("already exists")
        args = self._args("add", "--job-id", "hourly", "--ledger-command", "snapshot", "--interval", "hour")

        assert run_schedule(args, {}, logger) == EXIT_ARGS_ERROR

    def test_list(self, mock_scheduler, logger, capsys):
        mock_scheduler.list_jobs.return_value = [
            MagicMock(job_id="nightly", command="snapshot", interval="day", at_time="02:00", enabled=True)
        ]

        assert run_schedule(self._args("list"), {}, logger) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "[nightly] snapshot every day at 02:00 (enabled)" in out

    @pytest.mark.parametrize("operation", ["remove", "pause", "resume"])
    def test_job_operations(self, mock_scheduler, logger, operation):
        getattr(mock_scheduler, f"{operation}_job").return_value = True
        assert run_schedule(self._args(operation, "--job-id", "x"), {}, logger) == EXIT_SUCCESS

        getattr(mock_scheduler, f"{operation}_job").return_value = False
        assert run_schedule(self._args(operation, "--job-id", "x"), {}, logger) == EXIT_ERROR

    def test_start(self, mock_scheduler, logger):
        mock_scheduler.job_count = 2
        assert run_schedule(self._args("start"), {}, logger) == EXIT_SUCCESS
        mock_scheduler.start.assert_called_once()

    def test_missing_operation(self, mock_scheduler, logger):
        assert run_schedule(self._args(), {}, logger) == EXIT_ARGS_ERROR


class TestMain:
    """Tests for the entry point."""

    def test_main_dispatches(self):
        with (
            patch("small_ledger.cli.parse_args", return_value=(MagicMock(command="denormalise"), [])),
            patch("small_ledger.cli.run_command", return_value=EXIT_SUCCESS) as run,
        ):
            assert main() == EXIT_SUCCESS
        run.assert_called_once()

    def test_config_dir_exists(self):
        assert get_config_dir().name == "configs"
