"""
Data audit for the session tracking table

Usage:
    python scripts/audit_data.py

Reports orphaned events, duplicate sessions, missing fields and linked
sessions missing from the user index. Exits with status 1 if any issue is
found.
"""

import sys
import asyncio
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from session_tracking.core.database import store
from session_tracking.services.audit import AuditService


def print_report(report):
    print("\n" + "=" * 60)
    print("AUDIT RESULTS")
    print("=" * 60)
    print(f"Total items:             {report.total_items:,}")
    print(f"Sessions:                {report.total_sessions:,}")
    print(f"Events:                  {report.total_events:,}")
    print(f"Sessions with events:    {report.sessions_with_events:,}")
    print(f"Sessions without events: {report.sessions_without_events:,}")

    if report.sessions_per_user:
        print("\nSessions per user:")
        for external_id, count in report.sessions_per_user.items():
            print(f"  {external_id}: {count}")

    print("=" * 60)
    if report.clean:
        print("No issues found")
    else:
        print(f"Found {len(report.issues)} issue(s):")
        for issue in report.issues:
            print(f"  [{issue.type}] {issue.message}")
    print("=" * 60 + "\n")


async def audit():
    print("Scanning table...")
    report = await AuditService(store).run()
    print_report(report)
    return report


def main():
    report = asyncio.run(audit())
    if not report.clean:
        sys.exit(1)


if __name__ == "__main__":
    main()
