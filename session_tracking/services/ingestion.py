import asyncio
from typing import Any, Mapping, Optional, Sequence, Union

import pydantic
import structlog

from session_tracking.core.errors import NotFoundError, SessionTrackingError, ValidationError
from session_tracking.schemas.event import (
    BatchItemError,
    BatchItemResult,
    BatchTrackResponse,
    Event,
    EventCreate,
    RequestContext,
)
from session_tracking.services.events import EventStore, parse_event_type
from session_tracking.services.sessions import SessionStore

logger = structlog.get_logger()

TrackRequest = Union[EventCreate, Mapping[str, Any]]


class IngestionService:
    """Service for tracking events, one at a time or in bounded batches"""

    def __init__(
            self,
            sessions: SessionStore,
            events: EventStore,
            max_batch_size: int = 25,
            concurrency: int = 5
    ):
        self.sessions = sessions
        self.events = events
        self.max_batch_size = max_batch_size
        self.concurrency = concurrency

    async def track_event(
            self,
            request: TrackRequest,
            context: Optional[RequestContext] = None
    ) -> Event:
        """
        Track an event for an existing session

        The session's step counter is bumped afterwards on a best-effort
        basis; if that fails the event is still recorded.
        """
        if not isinstance(request, EventCreate):
            try:
                request = EventCreate.model_validate(request)
            except pydantic.ValidationError as e:
                raise ValidationError.from_pydantic(e)

        event_type = parse_event_type(request.event_type)

        session = await self.sessions.get(request.session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {request.session_id}", "session")

        event = await self.events.create(
            request.session_id,
            event_type,
            request.event_data,
            context
        )

        try:
            await self.sessions.increment_steps(request.session_id)
        except SessionTrackingError as e:
            logger.warning(
                "session_steps_increment_failed",
                session_id=request.session_id,
                error=str(e)
            )

        return event

    async def track_batch(
            self,
            requests: Sequence[TrackRequest],
            context: Optional[RequestContext] = None
    ) -> BatchTrackResponse:
        """
        Track up to ``max_batch_size`` events, ``concurrency`` at a time

        Each window of requests runs concurrently and completes before the
        next one starts. Items succeed or fail independently; the report keeps
        each item's position in the input.

        Returns:
            BatchTrackResponse with per-item results and errors
        """
        if not isinstance(requests, (list, tuple)) or not requests:
            raise ValidationError("events must be a non-empty array", "events")

        if len(requests) > self.max_batch_size:
            raise ValidationError(
                f"Cannot track more than {self.max_batch_size} events at once",
                "events"
            )

        logger.info("batch_tracking_started", count=len(requests))

        outcomes: list[Union[BatchItemResult, BatchItemError]] = []
        for start in range(0, len(requests), self.concurrency):
            window = requests[start:start + self.concurrency]
            outcomes.extend(await asyncio.gather(*(
                self._track_item(start + offset, request, context)
                for offset, request in enumerate(window)
            )))

        results = [outcome for outcome in outcomes if isinstance(outcome, BatchItemResult)]
        errors = [outcome for outcome in outcomes if isinstance(outcome, BatchItemError)]

        logger.info(
            "batch_tracking_completed",
            total=len(requests),
            successful=len(results),
            failed=len(errors)
        )

        return BatchTrackResponse(
            total=len(requests),
            successful=len(results),
            failed=len(errors),
            results=results,
            errors=errors
        )

    async def _track_item(
            self,
            index: int,
            request: TrackRequest,
            context: Optional[RequestContext]
    ) -> Union[BatchItemResult, BatchItemError]:
        try:
            event = await self.track_event(request, context)
        except SessionTrackingError as e:
            logger.error("batch_item_failed", index=index, error=e.message)
            return BatchItemError(
                index=index,
                error=e.message,
                error_type=e.error_type,
                field=getattr(e, "field", None)
            )
        except Exception as e:
            # One item must never take its siblings down with it
            logger.error("batch_item_failed", index=index, error=str(e))
            return BatchItemError(index=index, error=str(e), error_type=type(e).__name__)

        return BatchItemResult(
            index=index,
            event_id=event.event_id,
            session_id=event.session_id,
            event_type=event.event_type,
            timestamp=event.timestamp
        )
