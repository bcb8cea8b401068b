#!/usr/bin/env python3
"""
ImmunoTrack - Manual Daily Pass
Runs the notification pass synchronously, without a Celery worker

Usage:
    python scripts/run_daily_pass.py [YYYY-MM-DD]
"""

import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from immunotrack.services.database import build_session_factory
from immunotrack.tasks.notifications import execute_daily_pass


def main(argv):
    reference_date = date.fromisoformat(argv[1]) if len(argv) > 1 else date.today()

    print("="*60)
    print(f"ImmunoTrack - Daily Notification Pass ({reference_date.isoformat()})")
    print("="*60)

    try:
        summary = execute_daily_pass(build_session_factory(), reference_date)
    except Exception as e:
        print(f"\n✗ Daily pass failed: {e}")
        import traceback
        traceback.print_exc()
        return 1

    for key, value in summary.items():
        print(f"  {key}: {value}")
    print("\n✓ Done")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
