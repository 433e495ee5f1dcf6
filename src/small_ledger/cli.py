"""Command-line interface for the Small Ledger engine.

Usage:
    python -m small_ledger <command> [hydra_overrides...]

Commands:
    init-db      Create the database (PostgreSQL) and ledger tables
    account      Create or list strategy and venue accounts
    denormalise  Attribute trades to strategies from their order lineage
    snapshot     Snapshot balances of all projections
    balance      Show the balances of one account
    import       Record transfers or trades from a CSV file
    schedule     Manage scheduled ledger tasks

Examples:
    python -m small_ledger init-db db=sqlite
    python -m small_ledger account add --kind venue --name binance
    python -m small_ledger import --kind trade --file trades.csv
    python -m small_ledger snapshot --at 2024-01-01T00:00:00+00:00
    python -m small_ledger balance --account-id 3 --as-of 2024-01-02T00:00:00Z
    python -m small_ledger schedule add --job-id hourly_snapshot --ledger-command snapshot --interval hour
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import TYPE_CHECKING, Any, cast

from hydra import compose, initialize_config_dir
from omegaconf import OmegaConf

from small_ledger.application.ledger import LedgerService
from small_ledger.domain.enums import AccountKind
from small_ledger.domain.errors import LedgerError, LedgerValidationError

if TYPE_CHECKING:
    from pathlib import Path

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_ARGS_ERROR = 2


def get_config_dir() -> Path:
    """Get the configs directory path."""
    from pathlib import Path

    cli_path = Path(__file__).resolve()
    project_root = cli_path.parent.parent.parent
    config_dir = project_root / "configs"

    if config_dir.exists():
        return config_dir

    cwd_config = Path.cwd() / "configs"
    if cwd_config.exists():
        return cwd_config

    raise FileNotFoundError("Cannot find configs directory")


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant for argparse; naive values are taken as UTC."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 instant: {value!r}") from e


def parse_args(args: list[str] | None = None) -> tuple[argparse.Namespace, list[str]]:
    """Parse command-line arguments and separate Hydra overrides."""
    parser = argparse.ArgumentParser(
        prog="small_ledger",
        description="Small Ledger - double-entry bookkeeping and balance reconciliation",
        epilog="""
Hydra config overrides (key=value):
    db=test                          Use test database config
    db=sqlite db.path=ledger.db      Use a local SQLite file
    db.host=192.168.1.100            Override database host
    ledger.snapshot_lag_seconds=60   Override snapshot ingestion lag
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create the database and ledger tables")

    account_parser = subparsers.add_parser("account", help="Manage accounts")
    account_subparsers = account_parser.add_subparsers(dest="account_command", help="Account operations")
    account_add = account_subparsers.add_parser("add", help="Create an account")
    account_add.add_argument("--kind", required=True, choices=[k.value for k in AccountKind], help="Account kind")
    account_add.add_argument("--name", required=True, help="Strategy name or venue name")
    account_add.add_argument("--description", default="", help="Free-text description")
    account_subparsers.add_parser("list", help="List accounts")

    subparsers.add_parser("denormalise", help="Attribute trades to strategies from order lineage")

    snapshot_parser = subparsers.add_parser("snapshot", help="Snapshot balances of all projections")
    snapshot_parser.add_argument("--at", type=parse_instant, help="Snapshot instant (default: now minus lag)")

    balance_parser = subparsers.add_parser("balance", help="Show account balances")
    balance_parser.add_argument("--account-id", required=True, type=int, help="Account id")
    balance_parser.add_argument("--asset", help="Only this asset")
    balance_parser.add_argument("--as-of", type=parse_instant, dest="as_of", help="Point in time (default: now)")

    import_parser = subparsers.add_parser("import", help="Record movements from a CSV file")
    import_parser.add_argument("--kind", required=True, choices=["transfer", "trade"], help="Movement kind")
    import_parser.add_argument("--file", required=True, help="CSV file path")

    schedule_parser = subparsers.add_parser("schedule", help="Manage scheduled ledger tasks")
    schedule_subparsers = schedule_parser.add_subparsers(dest="schedule_command", help="Schedule operations")

    schedule_subparsers.add_parser("start", help="Start the scheduler (blocking)")

    schedule_add = schedule_subparsers.add_parser("add", help="Add a scheduled job")
    schedule_add.add_argument("--job-id", required=True, help="Unique job identifier")
    schedule_add.add_argument(
        "--ledger-command",
        required=True,
        choices=["snapshot", "denormalise"],
        dest="ledger_command",
        help="Ledger command",
    )
    schedule_add.add_argument("--interval", required=True, choices=["day", "hour", "minute"], help="Scheduling interval")
    schedule_add.add_argument("--at", help="Execution time in UTC (e.g., '02:00'), only for day interval")

    schedule_subparsers.add_parser("list", help="List all scheduled jobs")

    for name, verb in (("remove", "remove"), ("pause", "pause"), ("resume", "resume")):
        sub = schedule_subparsers.add_parser(name, help=f"{verb.capitalize()} a scheduled job")
        sub.add_argument("--job-id", required=True, help=f"Job ID to {verb}")

    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(EXIT_ARGS_ERROR)

    # Filter Hydra overrides
    hydra_overrides = [arg for arg in remaining if "=" in arg or arg.startswith("+") or arg.startswith("~")]

    unrecognized = [arg for arg in remaining if arg not in hydra_overrides]
    if unrecognized:
        print(f"Warning: Unrecognized arguments: {unrecognized}", file=sys.stderr)

    return parsed, hydra_overrides


def build_config(hydra_overrides: list[str]) -> dict[str, Any]:
    """Build Hydra config with command-line overrides."""
    config_dir = get_config_dir()

    with initialize_config_dir(config_dir=str(config_dir), version_base=None):
        config = compose(config_name="config", overrides=hydra_overrides)
        return cast(dict[str, Any], OmegaConf.to_container(config, resolve=True))


def setup_logging() -> None:
    """Configure logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_init_db(config: dict[str, Any], ledger: LedgerService) -> int:
    """Create the database if needed and all ledger tables."""
    from small_ledger.data_access.db_setup import ensure_database

    ensure_database(config["db"])
    ledger.init_db()
    print("\nDatabase initialised\n")
    return EXIT_SUCCESS


def run_account(args: argparse.Namespace, ledger: LedgerService) -> int:
    """Create or list accounts."""
    account_cmd = getattr(args, "account_command", None)

    if account_cmd == "add":
        if args.kind == AccountKind.STRATEGY.value:
            account_id = ledger.accounts.create_strategy_account(args.name, args.description)
        else:
            account_id = ledger.accounts.create_venue_account(args.name, args.description)
        print(f"\nCreated {args.kind} account '{args.name}' (id={account_id})\n")
        return EXIT_SUCCESS

    if account_cmd == "list":
        accounts = ledger.accounts.list_accounts()
        print(f"\nAccounts ({len(accounts)}):")
        for account in accounts:
            print(f"  [{account.id}] {account.kind:<8} {account.natural_key}")
        print()
        return EXIT_SUCCESS

    print("Error: Please specify an account operation (add, list)")
    return EXIT_ARGS_ERROR


def run_denormalise(ledger: LedgerService) -> int:
    """Run the denormalisation pass."""
    result = ledger.run_denormalisation()
    print(f"\nDenormalisation: {result.resolved_count} resolved, {result.unresolved_count} unresolved\n")
    return EXIT_SUCCESS


def run_snapshot(args: argparse.Namespace, ledger: LedgerService) -> int:
    """Take a snapshot of every projection."""
    result = ledger.take_snapshot(args.at)

    print("\n" + "=" * 60)
    print(f"Snapshot at {result.as_of.isoformat()}")
    print("=" * 60)
    for projection, count in result.row_counts.items():
        print(f"  {projection}: {count} rows")
    for projection in result.skipped:
        print(f"  {projection}: already taken, skipped")
    if result.unattributed_trades:
        print(f"Warning: {result.unattributed_trades} trades without strategy attribution")
    print("=" * 60 + "\n")
    return EXIT_SUCCESS


def run_balance(args: argparse.Namespace, ledger: LedgerService) -> int:
    """Print balances of one account."""
    if args.asset:
        balances = {args.asset: ledger.get_account_balance(args.account_id, args.asset, as_of=args.as_of)}
    else:
        balances = ledger.get_account_balances(args.account_id, as_of=args.as_of)

    when = args.as_of.isoformat() if args.as_of else "now"
    print(f"\nBalances of account {args.account_id} ({when}):")
    if not balances:
        print("  (none)")
    for asset, amount in sorted(balances.items()):
        print(f"  {asset:<10} {amount}")
    print()
    return EXIT_SUCCESS


def run_import(args: argparse.Namespace, ledger: LedgerService) -> int:
    """Validate and record a CSV of movements."""
    result = ledger.import_csv(args.file, args.kind)

    print("\n" + "=" * 60)
    print(f"Import {args.kind}: {'SUCCESS' if result.success else 'FAILED'}")
    if result.error_message:
        print(f"Error: {result.error_message}")
    print("=" * 60)
    if result.load is not None:
        print(f"Rows: {result.load.total_rows}")
        print(f"Recorded: {result.load.loaded_count}")
        if result.load.duplicate_count:
            print(f"Duplicates skipped: {result.load.duplicate_count}")
    print("=" * 60 + "\n")

    return EXIT_SUCCESS if result.success else EXIT_ERROR


def run_schedule(args: argparse.Namespace, config: dict[str, Any], logger: logging.Logger) -> int:
    """Execute scheduler commands."""
    from small_ledger.scheduler.scheduler import LedgerScheduler

    schedule_cmd = getattr(args, "schedule_command", None)

    if not schedule_cmd:
        print("Error: Please specify a schedule operation (start, add, list, remove, pause, resume)")
        return EXIT_ARGS_ERROR

    try:
        blocking = schedule_cmd == "start"
        scheduler = LedgerScheduler(config, blocking=blocking)

        if schedule_cmd == "start":
            print(f"\nStarting Ledger Scheduler with {scheduler.job_count} jobs... (Ctrl+C to stop)\n")
            try:
                scheduler.start()
            except KeyboardInterrupt:
                scheduler.stop()
                print("\nScheduler stopped")
            return EXIT_SUCCESS

        try:
            if schedule_cmd == "add":
                job = scheduler.add_job(
                    job_id=args.job_id,
                    command=args.ledger_command,
                    interval=args.interval,
                    at_time=getattr(args, "at", None),
                )
                print(f"\nJob added: {job.job_id} ({job.command} every {job.interval})\n")
                return EXIT_SUCCESS

            if schedule_cmd == "list":
                jobs = scheduler.list_jobs()
                print(f"\nScheduled Jobs ({len(jobs)}):")
                for job in jobs:
                    status = "enabled" if job.enabled else "paused"
                    at_str = f" at {job.at_time}" if job.at_time else ""
                    print(f"  [{job.job_id}] {job.command} every {job.interval}{at_str} ({status})")
                print()
                return EXIT_SUCCESS

            actions = {
                "remove": (scheduler.remove_job, "removed"),
                "pause": (scheduler.pause_job, "paused"),
                "resume": (scheduler.resume_job, "resumed"),
            }
            if schedule_cmd not in actions:
                print(f"Error: Unknown schedule command: {schedule_cmd}")
                return EXIT_ARGS_ERROR

            action, past = actions[schedule_cmd]
            if action(args.job_id):
                print(f"\nJob '{args.job_id}' {past}\n")
                return EXIT_SUCCESS
            print(f"\nJob '{args.job_id}' not found\n")
            return EXIT_ERROR
        finally:
            scheduler.shutdown(wait=False)

    except ValueError as e:
        logger.error(f"Schedule error: {e}")
        print(f"\nSchedule: FAILED - {e}\n")
        return EXIT_ARGS_ERROR


def run_command(args: argparse.Namespace, hydra_overrides: list[str]) -> int:
    """Execute a ledger command based on command-line arguments."""
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config_dict = build_config(hydra_overrides)

        logger.info(f"Running command: {args.command}")
        if hydra_overrides:
            logger.info(f"Config overrides: {hydra_overrides}")

        if args.command == "schedule":
            return run_schedule(args, config_dict, logger)

        with LedgerService(OmegaConf.create(config_dict)) as ledger:
            if args.command == "init-db":
                return run_init_db(config_dict, ledger)
            if args.command == "account":
                return run_account(args, ledger)
            if args.command == "denormalise":
                return run_denormalise(ledger)
            if args.command == "snapshot":
                return run_snapshot(args, ledger)
            if args.command == "balance":
                return run_balance(args, ledger)
            if args.command == "import":
                return run_import(args, ledger)

        print(f"Error: Unknown command: {args.command}")
        return EXIT_ARGS_ERROR

    except FileNotFoundError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_ARGS_ERROR
    except LedgerValidationError as e:
        logger.error(f"Invalid input: {e}")
        print(f"\n{args.command}: FAILED - {e}\n")
        return EXIT_ARGS_ERROR
    except LedgerError as e:
        logger.error(f"Ledger error: {e}")
        print(f"\n{args.command}: FAILED - {e}\n")
        return EXIT_ERROR
    except Exception as e:
        logger.exception(f"Command error: {e}")
        return EXIT_ERROR


def main() -> int:
    """CLI entry point."""
    args, hydra_overrides = parse_args()
    return run_command(args, hydra_overrides)


if __name__ == "__main__":
    sys.exit(main())
