#!/usr/bin/env python3
"""
Invoice hosts for the platform fees and tips they collected last month.

Meant to run from cron on the first day of each month. In production the
run is skipped on any other day.

Usage:
  cd backend
  export DATABASE_URL="postgresql://..."
  PYTHONPATH=. python scripts/invoice_platform_tips.py

  Invoice the month before a given date (START_DATE works too):
  PYTHONPATH=. python scripts/invoice_platform_tips.py --date 2026-10-01

  Dry-run (log the invoices, write nothing):
  PYTHONPATH=. python scripts/invoice_platform_tips.py --dry-run
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date, datetime, timezone

# Run from repo root or backend; ensure backend is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fiscalhost.core.dependencies import SessionLocal
from fiscalhost.services.platform_tips_invoicing import invoice_platform_tips


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def main() -> None:
    parser = argparse.ArgumentParser(description="Invoice hosts for last month's platform fees and tips.")
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=os.getenv("START_DATE") or None,
        help="Run as if today were this date (YYYY-MM-DD). Defaults to START_DATE or today.",
    )
    parser.add_argument("--dry-run", action="store_true", help="Only log what would be invoiced.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if SessionLocal is None:
        print("Error: DATABASE_URL is not set.", file=sys.stderr)
        sys.exit(1)

    run_date = args.date or datetime.now(timezone.utc).date()

    db = SessionLocal()
    try:
        settlements = invoice_platform_tips(db, run_date, dry_run=args.dry_run)
        prefix = "Dry-run: would invoice" if args.dry_run else "Invoiced"
        print(f"{prefix} {len(settlements)} host(s).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
