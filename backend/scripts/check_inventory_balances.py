#!/usr/bin/env python3
"""
CycleLedger Inventory Balance Check and Rebuild

Compares every cached inventory balance with the sum of its ledger
movements and, with --fix, rebuilds the drifted balances (quantity and
moving-average cost) by replaying the ledger.

Usage:
  cd backend
  python scripts/check_inventory_balances.py
  python scripts/check_inventory_balances.py --organization-id 3 --fix
"""
import argparse
import sys
from pathlib import Path

# Add backend/ to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from cycleledger.db.session import SessionLocal, unit_of_work
from cycleledger.logging_config import get_logger, setup_logging
from cycleledger.services.inventory_service import validate_balance_consistency

logger = get_logger(__name__)


def check_balances(db, organization_id=None, fix=False):
    """Run the consistency check in its own transaction and return the findings."""
    with unit_of_work(db):
        issues = validate_balance_consistency(db, organization_id=organization_id, auto_fix=fix)
    return issues


def print_report(issues, fix):
    print("CycleLedger Inventory Balance Check")
    print("=" * 50)
    if not issues:
        print("All balances match the ledger.")
        return

    for issue in issues:
        balance = "missing" if issue["balance_quantity"] is None else issue["balance_quantity"]
        status = "rebuilt" if issue["fixed"] else "drift"
        print(
            f"  [{status}] org {issue['organization_id']} project {issue['project_id']} "
            f"cycle {issue['cycle_id']} variant {issue['variant_id']}: "
            f"balance {balance}, ledger {issue['ledger_quantity']}"
        )

    print(f"\n{len(issues)} inconsistent balance(s) found.")
    if not fix:
        print("Run again with --fix to rebuild them from the ledger.")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Check inventory balances against the movement ledger")
    parser.add_argument("--organization-id", type=int, help="Only check this organization")
    parser.add_argument("--fix", action="store_true", help="Rebuild inconsistent balances from the ledger")
    args = parser.parse_args(argv)

    setup_logging()
    db = SessionLocal()
    try:
        issues = check_balances(db, organization_id=args.organization_id, fix=args.fix)
    except Exception:
        logger.exception("Inventory balance check failed")
        return 2
    finally:
        db.close()

    print_report(issues, args.fix)
    # Non-zero exit only when drift remains
    return 1 if issues and not args.fix else 0


if __name__ == "__main__":
    sys.exit(main())
