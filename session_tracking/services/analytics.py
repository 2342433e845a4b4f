import asyncio
from collections import Counter
from typing import List

import structlog

from session_tracking.core.errors import NotFoundError
from session_tracking.schemas.analytics import (
    ConversionFunnel,
    SessionAnalytics,
    Timeline,
    UserSessions,
    UserSessionsSummary,
)
from session_tracking.schemas.event import Event, EventType
from session_tracking.schemas.session import Session, SessionStatus
from session_tracking.services.events import EventStore
from session_tracking.services.sessions import SessionStore

logger = structlog.get_logger()

ENGAGEMENT_EVENTS = frozenset({EventType.CLICK, EventType.PAGE_VIEW, EventType.QUIZ_START})


class AnalyticsService:
    """Session timelines and the metrics derived from them"""

    def __init__(self, sessions: SessionStore, events: EventStore):
        self.sessions = sessions
        self.events = events

    async def get_timeline(self, session_id: str) -> Timeline:
        """
        Get a session with all of its events, oldest first.

        Raises NotFoundError when the session metadata item is missing, even
        if orphaned events still exist under the same partition.
        """
        session, events = await asyncio.gather(
            self.sessions.get(session_id),
            self.events.list_by_session(session_id)
        )

        if session is None:
            if events:
                logger.warning("orphaned_events_found", session_id=session_id, count=len(events))
            raise NotFoundError(f"Session not found: {session_id}", "session")

        logger.info("timeline_fetched", session_id=session_id, event_count=len(events))
        return Timeline(session=session, events=events, event_count=len(events))

    async def get_analytics(self, session_id: str) -> SessionAnalytics:
        """Duration, per-type breakdown and conversion funnel for one session"""
        timeline = await self.get_timeline(session_id)
        session, events = timeline.session, timeline.events

        first_event = events[0].timestamp if events else None
        last_event = events[-1].timestamp if events else None

        logger.info("session_analytics_computed", session_id=session_id)

        return SessionAnalytics(
            session_id=session.session_id,
            external_id=session.external_id,
            status=session.status,
            duration=session_duration(events),
            event_count=len(events),
            steps_taken=session.steps_taken,
            event_breakdown=event_breakdown(events),
            first_event=first_event,
            last_event=last_event,
            conversion_funnel=conversion_funnel(events),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    async def get_user_sessions(
            self,
            external_id: str,
            limit: int = 50,
            newest_first: bool = False
    ) -> UserSessions:
        """Sessions of one user with summary statistics"""
        sessions = await self.sessions.list_by_user(external_id, limit)

        # The index returns oldest first
        if newest_first:
            sessions = list(reversed(sessions))

        logger.info("user_sessions_fetched", external_id=external_id, count=len(sessions))

        return UserSessions(
            external_id=external_id,
            sessions=sessions,
            summary=summarize_sessions(sessions)
        )


def session_duration(events: List[Event]) -> int:
    """Whole seconds between the first and last event.

    Relies on events being in ascending timestamp order.
    """
    if len(events) < 2:
        return 0
    seconds = (events[-1].timestamp - events[0].timestamp).total_seconds()
    return max(0, round(seconds))


def event_breakdown(events: List[Event]) -> dict[str, int]:
    return dict(Counter(event.event_type.value for event in events))


def conversion_funnel(events: List[Event]) -> ConversionFunnel:
    """
    Stage presence, not stage sequence.

    Each stage is checked on its own, so a session holding only a
    checkout_complete event is converted without having landed.
    """
    seen = {event.event_type for event in events}
    return ConversionFunnel(
        landed=EventType.LANDING in seen,
        engaged=bool(seen & ENGAGEMENT_EVENTS),
        started_checkout=EventType.CHECKOUT_START in seen,
        converted=EventType.CHECKOUT_COMPLETE in seen,
    )


def summarize_sessions(sessions: List[Session]) -> UserSessionsSummary:
    total_steps = sum(session.steps_taken for session in sessions)
    return UserSessionsSummary(
        total_sessions=len(sessions),
        active_sessions=sum(1 for s in sessions if s.status == SessionStatus.ACTIVE),
        completed_sessions=sum(1 for s in sessions if s.status == SessionStatus.COMPLETED),
        total_steps=total_steps,
        average_steps=round(total_steps / len(sessions)) if sessions else 0,
        first_seen=min((s.created_at for s in sessions), default=None),
        last_active=max((s.updated_at for s in sessions), default=None),
    )
