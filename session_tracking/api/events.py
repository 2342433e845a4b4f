from fastapi import APIRouter, Depends, status
import structlog

from session_tracking.api.dependencies import (
    get_event_store,
    get_ingestion_service,
    get_request_context,
)
from session_tracking.core.errors import NotFoundError
from session_tracking.schemas.event import (
    BatchTrackResponse,
    Event,
    EventBatchCreate,
    EventCreate,
    EventDeleteResponse,
    EventUpdate,
    RequestContext,
)
from session_tracking.services.events import EventStore
from session_tracking.services.ingestion import IngestionService

logger = structlog.get_logger()
router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=Event, status_code=status.HTTP_201_CREATED)
async def track_event(
        body: EventCreate,
        context: RequestContext = Depends(get_request_context),
        ingestion: IngestionService = Depends(get_ingestion_service)
):
    """
    Track an event for an existing session.

    - **session_id**: Session the event belongs to
    - **event_type**: One of the supported event types
    - **event_data**: Free-form object stored as-is
    """
    return await ingestion.track_event(body, context)


@router.post("/batch", response_model=BatchTrackResponse, status_code=status.HTTP_201_CREATED)
async def track_batch(
        batch: EventBatchCreate,
        context: RequestContext = Depends(get_request_context),
        ingestion: IngestionService = Depends(get_ingestion_service)
):
    """
    Track several events in one request.

    - **events**: Up to 25 events
    - Items succeed or fail independently; failures are listed in **errors**
      with their position in the request
    """
    result = await ingestion.track_batch(batch.events, context)

    logger.info(
        "batch_tracked",
        total=result.total,
        successful=result.successful,
        failed=result.failed
    )
    return result


@router.get("/{session_id}/{event_id}/{timestamp}", response_model=Event)
async def get_event(
        session_id: str,
        event_id: str,
        timestamp: str,
        events: EventStore = Depends(get_event_store)
):
    """Get a single event. The timestamp is part of the event's key."""
    event = await events.get(session_id, event_id, timestamp)
    if event is None:
        raise NotFoundError(f"Event not found: {event_id}", "event")
    return event


@router.patch("/{session_id}/{event_id}/{timestamp}", response_model=Event)
async def update_event(
        session_id: str,
        event_id: str,
        timestamp: str,
        body: EventUpdate,
        events: EventStore = Depends(get_event_store)
):
    """Update an event's type or data."""
    return await events.update(
        session_id,
        event_id,
        timestamp,
        body.model_dump(exclude_unset=True)
    )


@router.delete("/{session_id}/{event_id}/{timestamp}", response_model=EventDeleteResponse)
async def delete_event(
        session_id: str,
        event_id: str,
        timestamp: str,
        events: EventStore = Depends(get_event_store)
):
    """Delete an event."""
    deleted = await events.delete(session_id, event_id, timestamp)
    if not deleted:
        raise NotFoundError(f"Event not found: {event_id}", "event")
    return EventDeleteResponse(event_id=event_id, deleted=True)
