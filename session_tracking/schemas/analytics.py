from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from session_tracking.schemas.event import Event
from session_tracking.schemas.session import Session, SessionStatus


class Timeline(BaseModel):
    """A session with all of its events, oldest first"""
    session: Session
    events: List[Event]
    event_count: int


class ConversionFunnel(BaseModel):
    """Independent presence checks over a session's event types"""
    landed: bool
    engaged: bool
    started_checkout: bool
    converted: bool


class SessionAnalytics(BaseModel):
    """Metrics derived from a session timeline"""
    session_id: str
    external_id: Optional[str]
    status: SessionStatus
    duration: int
    event_count: int
    steps_taken: int
    event_breakdown: dict[str, int]
    first_event: Optional[datetime]
    last_event: Optional[datetime]
    conversion_funnel: ConversionFunnel
    created_at: datetime
    updated_at: datetime


class UserSessionsSummary(BaseModel):
    """Aggregate figures over one user's sessions"""
    total_sessions: int
    active_sessions: int
    completed_sessions: int
    total_steps: int
    average_steps: int
    first_seen: Optional[datetime]
    last_active: Optional[datetime]


class UserSessions(BaseModel):
    """Sessions linked to one external id"""
    external_id: str
    sessions: List[Session]
    summary: UserSessionsSummary
