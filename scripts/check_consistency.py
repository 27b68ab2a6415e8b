#!/usr/bin/env python
"""
Check and repair reservation state drift.

Runs the reconciler once: line items whose approval/payment differ from
their group are repaired, everything else (orphan references, overlapping
confirmed reservations) is reported and written to the audit log.

Usage:
    python scripts/check_consistency.py [--dry-run]

Options:
    --dry-run    Show what would be repaired without making changes
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models.reconciliation import run_reconciliation


def print_violations(violations):
    for violation in violations:
        print(f"  {violation['entity_type']} #{violation['entity_id']}: {violation['kind']}")
        if violation.get('before'):
            print(f"    before: {violation['before']}")
        if violation.get('after'):
            print(f"    after:  {violation['after']}")
        print(f"    {'repairable' if violation['repairable'] else 'needs review'}")
        print()


def main():
    dry_run = '--dry-run' in sys.argv

    print("=" * 60)
    print("Reservation Consistency Check")
    print("=" * 60)
    print()

    if dry_run:
        print("DRY RUN MODE - No changes will be made\n")

    app = create_app()

    with app.app_context():
        summary = run_reconciliation(dry_run=dry_run)

    if not summary['violations']:
        print("No inconsistent records found.")
    else:
        print(f"Found {len(summary['violations'])} violation(s):\n")
        print_violations(summary['violations'])

    if dry_run:
        print(f"Would repair {summary['repairable_count']} record(s).")
    else:
        print(f"Repaired {summary['repaired_count']} record(s).")
    if summary['flagged_count']:
        print(f"WARNING: {summary['flagged_count']} record(s) flagged for review.")

    print("\nDone.")
    return 1 if summary['flagged_count'] else 0


if __name__ == '__main__':
    sys.exit(main())
