"""
JSON Import Script for Sessions and Events

Usage:
    python scripts/import_data.py <path-to-json>

JSON Format:
    {
      "sessions": [
        {"sessionId": "sess_123", "externalId": "user@example.com",
         "status": "active", "createdAt": "2024-01-01T00:00:00Z",
         "metadata": {"source": "organic"}}
      ],
      "events": [
        {"sessionId": "sess_123", "eventType": "landing",
         "eventData": {"page": "/"}, "timestamp": "2024-01-01T00:00:00Z"}
      ]
    }

Items are written as upserts, so re-running an import is idempotent for
records that carry their own eventId.
"""

import sys
import json
import asyncio
from pathlib import Path
from uuid import uuid4

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from session_tracking.core.config import settings
from session_tracking.core.database import store
from session_tracking.core.timestamps import parse_timestamp, utc_now
from session_tracking.schemas.event import Event
from session_tracking.schemas.session import Session
from session_tracking.services.codec import encode_event, encode_session


def session_from_record(record: dict) -> Session:
    created_at = parse_timestamp(record["createdAt"]) if record.get("createdAt") else utc_now()
    updated_at = parse_timestamp(record["updatedAt"]) if record.get("updatedAt") else created_at
    return Session(
        session_id=record["sessionId"],
        external_id=record.get("externalId") or None,
        status=record.get("status") or "active",
        steps_taken=record.get("stepsTaken") or 0,
        user_agent=record.get("userAgent"),
        ip_address=record.get("ipAddress"),
        created_at=created_at,
        updated_at=updated_at,
        metadata=record.get("metadata") or {}
    )


def event_from_record(record: dict) -> Event:
    return Event(
        event_id=record.get("eventId") or str(uuid4()),
        session_id=record["sessionId"],
        event_type=record["eventType"],
        event_data=record.get("eventData") or {},
        timestamp=parse_timestamp(record["timestamp"]) if record.get("timestamp") else utc_now(),
        user_agent=record.get("userAgent"),
        ip_address=record.get("ipAddress")
    )


def transform(data: dict):
    """Turn the import document into table items, skipping bad records"""
    items = []
    skipped = 0

    for kind, records, convert, encode in (
            ("session", data.get("sessions") or [], session_from_record, encode_session),
            ("event", data.get("events") or [], event_from_record, encode_event),
    ):
        print(f"- Found {len(records)} {kind}s")
        for i, record in enumerate(records):
            try:
                items.append(encode(convert(record)))
            except (KeyError, TypeError, ValueError) as e:
                # pydantic's ValidationError is a ValueError
                print(f"Skipping {kind} #{i}: {e}")
                skipped += 1

    return items, skipped


async def import_json(file_path: str):
    file_path = Path(file_path)

    if not file_path.exists():
        print(f"Error: File not found: {file_path}")
        sys.exit(1)

    print(f"Starting import from: {file_path}")
    with open(file_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    items, skipped = transform(data)
    print(f"\nTotal items to import: {len(items)}")

    written = await store.batch_put(items, max_batch_size=settings.store_batch_write_size)

    print("\n" + "=" * 50)
    print("Import completed!")
    print(f"Items written: {written}")
    print(f"Records skipped: {skipped}")
    print("=" * 50)


def main():
    if len(sys.argv) != 2:
        print("Usage: python scripts/import_data.py <path-to-json>")
        sys.exit(1)

    asyncio.run(import_json(sys.argv[1]))


if __name__ == "__main__":
    main()
