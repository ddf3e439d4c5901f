#!/usr/bin/env python3
"""
Run one reminder tick by hand (same pipeline as GET /automation/tick).
Run: cd backend && python scripts/run_reminder_tick.py --dry-run --debug
     python scripts/run_reminder_tick.py --now 2025-09-14T00:00:00+00:00 --dry-run
"""
import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.db.session import SessionLocal
from app.services.reminders.tick import run_reminder_tick


def _parse_now(raw: str | None) -> datetime | None:
    if not raw:
        return None
    dt = datetime.fromisoformat(raw)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def main():
    parser = argparse.ArgumentParser(description="Run one reminder tick")
    parser.add_argument("--dry-run", action="store_true", help="Report due kinds and recipients; send nothing")
    parser.add_argument("--debug", action="store_true", help="Include per-period evaluation details")
    parser.add_argument("--now", default=None, help="Evaluate as of this ISO instant (naive = UTC)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    db = SessionLocal()
    try:
        summary = run_reminder_tick(db, now=_parse_now(args.now), dry_run=args.dry_run, debug=args.debug)
    finally:
        db.close()
    print(json.dumps(summary, indent=2, default=str))
    sys.exit(1 if summary["aborted"] else 0)


if __name__ == "__main__":
    main()
