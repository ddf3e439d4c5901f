#!/usr/bin/env python3
"""
Run the period lifecycle trigger once (same as GET /automation/cron).
Creates at most one upcoming quarter period with its slots.
Run: cd backend && python scripts/run_period_lifecycle.py [--now 2025-08-20T00:00:00]
"""
import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.db.session import SessionLocal
from app.services.period_lifecycle import run_period_lifecycle


def main():
    parser = argparse.ArgumentParser(description="Run the period lifecycle trigger once")
    parser.add_argument("--now", default=None, help="Evaluate as of this ISO instant (naive = UTC)")
    parser.add_argument("--open-lead-days", type=int, default=None, help="Override the lead window (days)")
    args = parser.parse_args()

    now = None
    if args.now:
        now = datetime.fromisoformat(args.now)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

    db = SessionLocal()
    try:
        result = run_period_lifecycle(db, now=now, open_lead_days=args.open_lead_days)
    finally:
        db.close()
    created = result["created"]
    if created:
        print(f"Created period {created['label']} (id={created['period_id']}) with {created['slots']} slots.")
    else:
        print("Nothing to create.")


if __name__ == "__main__":
    main()
