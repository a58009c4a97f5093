#!/usr/bin/env python3
"""
Create the stock ledger schema: tables, CHECK constraints and the
immutability triggers on the movement and correction tables.

For development databases and first-time bootstrap.  Safe to re-run; only
missing tables are created and triggers are replaced in place.

Usage:
  stock-init-schema                    # create missing tables + triggers
  stock-init-schema --config my.yaml   # database from an override file
  stock-init-schema --reset            # DROP everything first (destroys data)

The database URL comes from --config, STOCK_LEDGER_DATABASE_URL or
DATABASE_URL.  Triggers follow ``database.install_triggers``.
"""

import argparse
import sys

from stock_config import get_active_config
from stock_config.bridges import build_database


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the stock ledger schema")
    p.add_argument("--config", help="YAML config override file")
    p.add_argument(
        "--reset",
        action="store_true",
        help="Drop all ledger tables before creating them (destroys data)",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print()
    print("  [1/2] Connecting...")
    with build_database(config.database) as database:
        if args.reset:
            print("  Dropping ledger tables...")
            database.drop_tables()

        print("  [2/2] Creating tables and triggers...")
        database.create_tables(install_triggers=config.database.install_triggers)

    triggers = "with" if config.database.install_triggers else "without"
    print(f"  Schema ready ({database.dialect}, {triggers} immutability triggers).")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
