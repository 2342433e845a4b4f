"""
Display session data

Usage:
    python scripts/query_sessions.py <session-id>
    python scripts/query_sessions.py --user <external-id>
"""

import sys
import asyncio
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from session_tracking.core.database import store
from session_tracking.core.errors import NotFoundError
from session_tracking.core.timestamps import format_timestamp
from session_tracking.services.analytics import AnalyticsService
from session_tracking.services.events import EventStore
from session_tracking.services.sessions import SessionStore


def build_analytics() -> AnalyticsService:
    sessions = SessionStore(store)
    return AnalyticsService(sessions, EventStore(store, sessions))


async def show_session(session_id: str):
    analytics = build_analytics()
    try:
        timeline = await analytics.get_timeline(session_id)
    except NotFoundError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    session = timeline.session
    print("\n" + "=" * 80)
    print("SESSION TIMELINE")
    print("=" * 80)
    print(f"Session ID:  {session.session_id}")
    print(f"External ID: {session.external_id or 'anonymous'}")
    print(f"Status:      {session.status.value}")
    print(f"Steps taken: {session.steps_taken}")
    print(f"Created:     {format_timestamp(session.created_at)}")
    print(f"Updated:     {format_timestamp(session.updated_at)}")
    print(f"\nEvents ({timeline.event_count}):")
    print("-" * 80)

    for i, event in enumerate(timeline.events, 1):
        print(f"{i:3}. [{format_timestamp(event.timestamp)}] {event.event_type.value}")
        if event.event_data:
            print(f"     Data: {event.event_data}")

    print("=" * 80 + "\n")


async def show_user(external_id: str):
    result = await build_analytics().get_user_sessions(external_id, newest_first=True)
    summary = result.summary

    print("\n" + "=" * 80)
    print(f"SESSIONS FOR USER: {external_id}")
    print("=" * 80)

    if not result.sessions:
        print("No sessions found")
        return

    for session in result.sessions:
        print(f"{session.session_id} | {session.status.value:9} | "
              f"{session.steps_taken:3} steps | created {format_timestamp(session.created_at)}")

    print("-" * 80)
    print(f"Total: {summary.total_sessions} | Active: {summary.active_sessions} | "
          f"Completed: {summary.completed_sessions} | Avg steps: {summary.average_steps}")
    print("=" * 80 + "\n")


def main():
    if len(sys.argv) == 3 and sys.argv[1] == "--user":
        asyncio.run(show_user(sys.argv[2]))
    elif len(sys.argv) == 2:
        asyncio.run(show_session(sys.argv[1]))
    else:
        print("Usage: python scripts/query_sessions.py <session-id>")
        print("       python scripts/query_sessions.py --user <external-id>")
        sys.exit(1)


if __name__ == "__main__":
    main()
