"""Entry point for running small_ledger as a module.

Usage:
    python -m small_ledger init-db [options]
    python -m small_ledger snapshot [options]
    python -m small_ledger balance --account-id N [options]
"""

import sys

from small_ledger.cli import main

if __name__ == "__main__":
    sys.exit(main())
