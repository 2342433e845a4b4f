from datetime import datetime
from typing import Any, Callable, Optional, Union
from uuid import uuid4

import structlog

from session_tracking.core.errors import NotFoundError, SessionTrackingError, ValidationError
from session_tracking.core.store import KeyValueStore
from session_tracking.core.timestamps import format_timestamp, parse_timestamp, utc_now
from session_tracking.schemas.event import Event, EventType, RequestContext
from session_tracking.services.codec import (
    EVENT_PREFIX,
    decode_event,
    encode_event,
    event_sk,
    session_pk,
)
from session_tracking.services.sessions import SessionStore

logger = structlog.get_logger()

# Fields a partial event update may change
UPDATABLE_FIELDS = ("event_type", "event_data")

Timestamp = Union[datetime, str]


def parse_event_type(value: Any) -> EventType:
    """Validate an event type against the fixed enumeration"""
    if value is None or value == "":
        raise ValidationError("event_type is required", "event_type")
    try:
        return EventType(value)
    except (TypeError, ValueError):
        allowed = ", ".join(event_type.value for event_type in EventType)
        raise ValidationError(f"event_type must be one of: {allowed}", "event_type")


def validate_session_id(session_id: Any) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise ValidationError("session_id must be a non-empty string", "session_id")
    return session_id


def validate_event_data(event_data: Any) -> dict[str, Any]:
    if event_data is None:
        return {}
    if not isinstance(event_data, dict):
        raise ValidationError("event_data must be a valid object", "event_data")
    return event_data


def _resolve_timestamp(timestamp: Timestamp) -> datetime:
    if isinstance(timestamp, datetime):
        return timestamp
    try:
        return parse_timestamp(timestamp)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid timestamp: {timestamp}", "timestamp")


class EventStore:
    """
    Events scoped to a session.

    An event's identity is (session_id, timestamp, event_id): the timestamp is
    part of the sort key, so callers must know it to address a single event.
    """

    def __init__(
            self,
            store: KeyValueStore,
            sessions: Optional[SessionStore] = None,
            clock: Callable[[], datetime] = utc_now,
            id_factory: Callable[[], str] = lambda: str(uuid4())
    ):
        self._store = store
        self._sessions = sessions
        self._clock = clock
        self._id_factory = id_factory

    async def create(
            self,
            session_id: str,
            event_type: Union[EventType, str],
            event_data: Optional[dict[str, Any]] = None,
            context: Optional[RequestContext] = None
    ) -> Event:
        """
        Write a new event.

        Does not touch the session item; the caller owns the steps_taken
        increment.
        """
        context = context or RequestContext()
        event = Event(
            event_id=self._id_factory(),
            session_id=validate_session_id(session_id),
            event_type=parse_event_type(event_type),
            event_data=validate_event_data(event_data),
            timestamp=self._clock(),
            user_agent=context.user_agent,
            ip_address=context.ip_address,
        )

        await self._store.put(encode_event(event))

        logger.info(
            "event_created",
            session_id=session_id,
            event_id=event.event_id,
            event_type=event.event_type.value
        )
        return event

    async def get(self, session_id: str, event_id: str, timestamp: Timestamp) -> Optional[Event]:
        item = await self._store.get_item(
            session_pk(session_id),
            event_sk(_resolve_timestamp(timestamp), event_id)
        )
        return decode_event(item) if item is not None else None

    async def list_by_session(self, session_id: str) -> list[Event]:
        """All events of a session in chronological order.

        The order comes straight from the sort key; no sort step is applied.
        """
        items = await self._store.query(session_pk(session_id), sk_prefix=EVENT_PREFIX)
        return [decode_event(item) for item in items]

    async def update(
            self,
            session_id: str,
            event_id: str,
            timestamp: Timestamp,
            fields: dict[str, Any]
    ) -> Event:
        changes = {name: value for name, value in fields.items() if name in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError(
                f"No valid update fields provided. Allowed: {', '.join(UPDATABLE_FIELDS)}"
            )

        attributes: dict[str, Any] = {"updatedAt": format_timestamp(self._clock())}
        if "event_type" in changes:
            attributes["eventType"] = parse_event_type(changes["event_type"]).value
        if "event_data" in changes:
            attributes["eventData"] = validate_event_data(changes["event_data"])

        pk = session_pk(session_id)
        sk = event_sk(_resolve_timestamp(timestamp), event_id)
        try:
            item = await self._store.update(pk, sk, attributes)
        except NotFoundError:
            raise NotFoundError(f"Event not found: {event_id}", "event")

        logger.info("event_updated", session_id=session_id, event_id=event_id, fields=sorted(changes))
        return decode_event(item)

    async def delete(self, session_id: str, event_id: str, timestamp: Timestamp) -> bool:
        """
        Delete an event and decrement the session's step counter.

        The counter update is best-effort: its failure is logged and the
        delete still stands.
        """
        deleted = await self._store.delete(
            session_pk(session_id),
            event_sk(_resolve_timestamp(timestamp), event_id)
        )
        logger.info("event_deleted", session_id=session_id, event_id=event_id, deleted=deleted)

        if deleted and self._sessions is not None:
            try:
                await self._sessions.decrement_steps(session_id)
            except SessionTrackingError as e:
                logger.warning(
                    "session_steps_decrement_failed",
                    session_id=session_id,
                    error=str(e)
                )

        return deleted
