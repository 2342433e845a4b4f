from fastapi import Depends, Request

from session_tracking.core.config import settings
from session_tracking.core.database import get_store
from session_tracking.core.store import KeyValueStore
from session_tracking.schemas.event import RequestContext
from session_tracking.services.analytics import AnalyticsService
from session_tracking.services.events import EventStore
from session_tracking.services.ingestion import IngestionService
from session_tracking.services.sessions import SessionStore


def get_session_store(store: KeyValueStore = Depends(get_store)) -> SessionStore:
    return SessionStore(store)


def get_event_store(
        store: KeyValueStore = Depends(get_store),
        sessions: SessionStore = Depends(get_session_store)
) -> EventStore:
    return EventStore(store, sessions)


def get_ingestion_service(
        sessions: SessionStore = Depends(get_session_store),
        events: EventStore = Depends(get_event_store)
) -> IngestionService:
    return IngestionService(
        sessions,
        events,
        max_batch_size=settings.batch_max_size,
        concurrency=settings.batch_concurrency
    )


def get_analytics_service(
        sessions: SessionStore = Depends(get_session_store),
        events: EventStore = Depends(get_event_store)
) -> AnalyticsService:
    return AnalyticsService(sessions, events)


def get_request_context(request: Request) -> RequestContext:
    """User agent and client IP of the incoming request"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None

    return RequestContext(
        user_agent=request.headers.get("User-Agent"),
        ip_address=ip_address or None
    )
