# GET /users/{external_id}/sessions

from fastapi import APIRouter, Depends, Query

from session_tracking.api.dependencies import get_analytics_service
from session_tracking.core.config import settings
from session_tracking.schemas.analytics import UserSessions
from session_tracking.services.analytics import AnalyticsService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{external_id}/sessions", response_model=UserSessions)
async def get_user_sessions(
        external_id: str,
        limit: int = Query(
            default=settings.user_sessions_default_limit,
            ge=1,
            le=100,
            description="Maximum number of sessions"
        ),
        newest_first: bool = Query(default=False, description="Reverse to most recent first"),
        analytics: AnalyticsService = Depends(get_analytics_service)
):
    """
    Get the sessions linked to a user, with summary statistics.

    Sessions are selected oldest first; **newest_first** only reverses the
    returned page.
    """
    return await analytics.get_user_sessions(external_id, limit, newest_first)
