"""
Seed the session tracking table with sample data

Usage:
    python scripts/seed_data.py

Creates 3 users (2 identified, 1 anonymous) with 2 sessions each and a
landing -> click -> quiz -> checkout run of events per session.
"""

import sys
import asyncio
from pathlib import Path
from datetime import timedelta
from uuid import uuid4

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from session_tracking.core.config import settings
from session_tracking.core.database import store
from session_tracking.core.timestamps import utc_now
from session_tracking.schemas.event import Event, EventType
from session_tracking.schemas.session import Session, SessionStatus
from session_tracking.services.codec import encode_event, encode_session

USERS = [
    ("user_john@example.com", "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"),
    ("user_jane@example.com", "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)"),
    (None, "Mozilla/5.0 (iPhone; CPU iPhone OS 14_0 like Mac OS X)"),
]

EVENT_FLOW = [
    EventType.LANDING,
    EventType.CLICK,
    EventType.QUIZ_START,
    EventType.QUIZ_COMPLETE,
    EventType.CHECKOUT_START,
]


def generate_sample_items():
    """Sample sessions and their events, already encoded as table items"""
    items = []
    now = utc_now()

    for user_idx, (external_id, user_agent) in enumerate(USERS):
        ip_address = f"192.168.1.{100 + user_idx}"

        for session_idx in range(2):
            created_at = now - timedelta(days=user_idx, hours=session_idx)
            session = Session(
                session_id=f"sess_{uuid4()}",
                external_id=external_id,
                status=SessionStatus.ACTIVE if session_idx == 0 else SessionStatus.COMPLETED,
                steps_taken=len(EVENT_FLOW),
                user_agent=user_agent,
                ip_address=ip_address,
                created_at=created_at,
                updated_at=created_at,
                metadata={
                    "source": "organic",
                    "campaign": "spring_sale" if session_idx == 0 else "email_campaign"
                }
            )
            items.append(encode_session(session))

            for event_idx, event_type in enumerate(EVENT_FLOW):
                event_data = {
                    "page": "/" if event_type == EventType.LANDING
                    else "/" + event_type.value.replace("_", "-")
                }
                if event_type == EventType.CHECKOUT_START:
                    event_data["value"] = 99.99

                event = Event(
                    event_id=str(uuid4()),
                    session_id=session.session_id,
                    event_type=event_type,
                    event_data=event_data,
                    timestamp=created_at + timedelta(minutes=event_idx),
                    user_agent=user_agent,
                    ip_address=ip_address
                )
                items.append(encode_event(event))

    return items


async def seed():
    print("Generating sample data...")
    items = generate_sample_items()
    print(f"Generated {len(items)} items")

    if settings.auto_create_tables:
        await store.create_tables()

    written = await store.batch_put(items, max_batch_size=settings.store_batch_write_size)

    print("\n" + "=" * 50)
    print("Seeding completed!")
    print(f"Items written: {written}")
    print(f"Users: {len(USERS)} ({sum(1 for user in USERS if user[0])} identified)")
    print(f"Sessions: {len(USERS) * 2}")
    print("=" * 50)


def main():
    try:
        asyncio.run(seed())
    except Exception as e:
        print(f"Error seeding data: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
