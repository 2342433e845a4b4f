from fastapi import APIRouter, Depends, status
import structlog

from session_tracking.api.dependencies import (
    get_analytics_service,
    get_request_context,
    get_session_store,
)
from session_tracking.schemas.analytics import SessionAnalytics, Timeline
from session_tracking.schemas.event import RequestContext
from session_tracking.schemas.session import (
    Session,
    SessionCreate,
    SessionDeleteResponse,
    SessionUpdate,
)
from session_tracking.services.analytics import AnalyticsService
from session_tracking.services.sessions import SessionStore

logger = structlog.get_logger()
router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=Session, status_code=status.HTTP_201_CREATED)
async def create_session(
        body: SessionCreate,
        context: RequestContext = Depends(get_request_context),
        sessions: SessionStore = Depends(get_session_store)
):
    """
    Create a session.

    - **session_id**: Caller-chosen identifier. Reusing one overwrites the session.
    - **external_id**: Optional user link, enables lookup by user
    - **metadata**: Free-form object stored as-is
    """
    session = Session(
        session_id=body.session_id,
        external_id=body.external_id,
        metadata=body.metadata,
        user_agent=context.user_agent,
        ip_address=context.ip_address
    )
    return await sessions.create(session)


@router.get("/{session_id}", response_model=Timeline)
async def get_session_timeline(
        session_id: str,
        analytics: AnalyticsService = Depends(get_analytics_service)
):
    """Get a session with all of its events in chronological order."""
    return await analytics.get_timeline(session_id)


@router.get("/{session_id}/analytics", response_model=SessionAnalytics)
async def get_session_analytics(
        session_id: str,
        analytics: AnalyticsService = Depends(get_analytics_service)
):
    """
    Get derived metrics for a session.

    - **duration**: Seconds between first and last event
    - **event_breakdown**: Count per event type
    - **conversion_funnel**: landed / engaged / started_checkout / converted
    """
    return await analytics.get_analytics(session_id)


@router.patch("/{session_id}", response_model=Session)
async def update_session(
        session_id: str,
        body: SessionUpdate,
        sessions: SessionStore = Depends(get_session_store)
):
    """Update external_id, status, metadata or steps_taken."""
    return await sessions.update(session_id, body.model_dump(exclude_unset=True))


@router.delete("/{session_id}", response_model=SessionDeleteResponse)
async def delete_session(
        session_id: str,
        sessions: SessionStore = Depends(get_session_store)
):
    """Delete a session and every event recorded for it."""
    items_deleted = await sessions.delete_cascade(session_id)
    return SessionDeleteResponse(session_id=session_id, items_deleted=items_deleted)
