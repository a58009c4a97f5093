#!/usr/bin/env python3
"""
Reconcile stored stock against the movement ledger.

Replays every material's movements and overwrites any projection that
drifted, recording a correction row per fix.  This is the single repair
path for stock counters; no per-incident fix scripts.

Usage:
  stock-reconcile --owner OWNER_ID                  # one owner
  stock-reconcile --owner OWNER_ID --material UUID  # one material
  stock-reconcile --all-owners                      # every owner in the DB
  stock-reconcile --all-owners --dry-run            # report only
  stock-reconcile --owner OWNER_ID --fail-on-drift  # exit 2 if anything drifted

The database URL comes from --config, STOCK_LEDGER_DATABASE_URL or
DATABASE_URL.

Exit codes:
  0  completed (drift, if any, was corrected)
  1  bad configuration, or one or more materials failed to reconcile
  2  drift found and --fail-on-drift given
"""

import argparse
import json
import sys
from uuid import UUID

from stock_config import get_active_config
from stock_config.bridges import build_ledger
from stock_kernel.exceptions import ReconciliationDriftDetected, StockKernelError


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Rebuild material stock from the movement ledger and correct drift"
    )
    scope = p.add_mutually_exclusive_group(required=True)
    scope.add_argument("--owner", help="Owner (tenant) id to reconcile")
    scope.add_argument(
        "--all-owners",
        action="store_true",
        help="Reconcile every owner that has materials",
    )
    p.add_argument("--material", type=UUID, help="Only this material (requires --owner)")
    p.add_argument("--config", help="YAML config override file")
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="Report drift without writing corrections",
    )
    p.add_argument(
        "--fail-on-drift",
        action="store_true",
        help="Exit with status 2 when any material drifted",
    )
    p.add_argument("--json", action="store_true", help="Print reports as JSON")
    args = p.parse_args(argv)
    if args.material is not None and not args.owner:
        p.error("--material requires --owner")
    return args


def _print_report(report, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    mode = " (dry run)" if report.dry_run else ""
    print(f"Owner {report.owner_id}{mode}: run {report.run_id}")
    print(
        f"  checked: {report.materials_checked}  "
        f"corrected: {report.materials_corrected}  "
        f"failed: {len(report.failures)}"
    )
    for correction in report.corrections:
        flag = "  [clamped]" if correction.clamped else ""
        print(
            f"  {correction.name}: {correction.previous_stock} -> "
            f"{correction.corrected_stock}{flag}"
        )
    for failure in report.failures:
        print(f"  FAILED {failure.material_id}: {failure.code} {failure.message}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    exit_code = 0
    with build_ledger(config) as ledger:
        owners = ledger.owner_ids() if args.all_owners else [args.owner]
        for owner_id in owners:
            try:
                report = ledger.reconcile(
                    owner_id, material_id=args.material, dry_run=args.dry_run
                )
            except StockKernelError as exc:
                print(f"ERROR: {exc}", file=sys.stderr)
                exit_code = 1
                continue

            _print_report(report, args.json)

            if report.failures:
                exit_code = 1
            if args.fail_on_drift:
                try:
                    report.raise_for_drift()
                except ReconciliationDriftDetected as exc:
                    print(f"DRIFT: {exc}", file=sys.stderr)
                    exit_code = max(exit_code, 2)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
