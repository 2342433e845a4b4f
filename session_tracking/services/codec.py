"""
Entity codec for the single-table layout.

A session and all of its events share one partition key and are told apart
by sort key:

    Session metadata   PK = SESSION#<sessionId>   SK = #METADATA
    Event              PK = SESSION#<sessionId>   SK = EVENT#<timestamp>#<eventId>

Sessions linked to a user also carry the GSI1 keys:

    GSI1PK = USER#<externalId>   GSI1SK = SESSION#<createdAt>

Events never carry index keys.
"""

from datetime import datetime
from typing import Any

from session_tracking.core.errors import CodecError
from session_tracking.core.timestamps import format_timestamp, parse_timestamp
from session_tracking.schemas.event import Event
from session_tracking.schemas.session import Session

SESSION_PREFIX = "SESSION#"
EVENT_PREFIX = "EVENT#"
USER_PREFIX = "USER#"
METADATA_SK = "#METADATA"

SESSION_ITEM_TYPE = "SESSION_METADATA"
EVENT_ITEM_TYPE = "EVENT"


def session_pk(session_id: str) -> str:
    return f"{SESSION_PREFIX}{session_id}"


def event_sk(timestamp: datetime, event_id: str) -> str:
    return f"{EVENT_PREFIX}{format_timestamp(timestamp)}#{event_id}"


def user_index_pk(external_id: str) -> str:
    return f"{USER_PREFIX}{external_id}"


def user_index_sk(created_at: datetime) -> str:
    return f"{SESSION_PREFIX}{format_timestamp(created_at)}"


def encode_session(session: Session) -> dict[str, Any]:
    item = {
        "PK": session_pk(session.session_id),
        "SK": METADATA_SK,
        "itemType": SESSION_ITEM_TYPE,
        "sessionId": session.session_id,
        "externalId": session.external_id,
        "status": session.status.value,
        "stepsTaken": session.steps_taken,
        "userAgent": session.user_agent,
        "ipAddress": session.ip_address,
        "createdAt": format_timestamp(session.created_at),
        "updatedAt": format_timestamp(session.updated_at),
        "metadata": session.metadata,
    }

    # Sessions without a known user stay out of the by-user index
    if session.external_id:
        item["GSI1PK"] = user_index_pk(session.external_id)
        item["GSI1SK"] = user_index_sk(session.created_at)

    return _drop_absent(item)


def decode_session(item: dict[str, Any]) -> Session:
    _expect_item_type(item, SESSION_ITEM_TYPE)
    try:
        return Session(
            session_id=item["sessionId"],
            external_id=item.get("externalId"),
            status=item.get("status", "active"),
            steps_taken=item.get("stepsTaken", 0),
            user_agent=item.get("userAgent"),
            ip_address=item.get("ipAddress"),
            created_at=parse_timestamp(item["createdAt"]),
            updated_at=parse_timestamp(item.get("updatedAt", item["createdAt"])),
            metadata=item.get("metadata") or {},
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CodecError(f"Malformed session item: {item.get('PK')}", e)


def encode_event(event: Event) -> dict[str, Any]:
    timestamp = format_timestamp(event.timestamp)
    item = {
        "PK": session_pk(event.session_id),
        "SK": event_sk(event.timestamp, event.event_id),
        "itemType": EVENT_ITEM_TYPE,
        "eventId": event.event_id,
        "sessionId": event.session_id,
        "eventType": event.event_type.value,
        "eventData": event.event_data,
        "timestamp": timestamp,
        "createdAt": timestamp,
        "updatedAt": format_timestamp(event.updated_at) if event.updated_at else None,
        "userAgent": event.user_agent,
        "ipAddress": event.ip_address,
    }
    return _drop_absent(item)


def decode_event(item: dict[str, Any]) -> Event:
    _expect_item_type(item, EVENT_ITEM_TYPE)
    try:
        updated_at = item.get("updatedAt")
        return Event(
            event_id=item["eventId"],
            session_id=item["sessionId"],
            event_type=item["eventType"],
            event_data=item.get("eventData") or {},
            timestamp=parse_timestamp(item["timestamp"]),
            user_agent=item.get("userAgent"),
            ip_address=item.get("ipAddress"),
            updated_at=parse_timestamp(updated_at) if updated_at else None,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise CodecError(f"Malformed event item: {item.get('PK')} / {item.get('SK')}", e)


def _expect_item_type(item: dict[str, Any], expected: str):
    actual = item.get("itemType")
    if actual != expected:
        raise CodecError(f"Expected a {expected} item, got {actual!r}")


def _drop_absent(item: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in item.items() if value is not None}
