#!/usr/bin/env python3
"""
Force-stop work timers left running past the ceiling.

Meant for an external job runner (cron, systemd timer, k8s CronJob) so the
sweep does not depend on the web process.

Usage:
    python scripts/sweep_stale_timers.py                 # Uses STALE_TIMER_MAX_HOURS (default 10)
    python scripts/sweep_stale_timers.py --max-hours 12
"""
import argparse
import json
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db import SessionLocal
from app.logging import setup_logging
from app.services.reaper import sweep_stale_timers


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Auto-terminate stale work timers")
    parser.add_argument("--max-hours", type=int, default=None, help="Ceiling in hours (overrides STALE_TIMER_MAX_HOURS)")
    args = parser.parse_args(argv)

    setup_logging()
    db = SessionLocal()
    try:
        result = sweep_stale_timers(db, max_hours=args.max_hours)
    finally:
        db.close()

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
