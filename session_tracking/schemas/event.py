# Pydantic schemas

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, JsonValue, field_validator

from session_tracking.core.timestamps import normalize


class EventType(str, Enum):
    """The fixed set of trackable event kinds"""

    LANDING = "landing"
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    FORM_START = "form_start"
    QUIZ_START = "quiz_start"
    QUIZ_COMPLETE = "quiz_complete"
    PRODUCT_VIEW = "product_view"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT_START = "checkout_start"
    CHECKOUT_COMPLETE = "checkout_complete"
    PAGE_VIEW = "page_view"
    VIDEO_PLAY = "video_play"
    VIDEO_COMPLETE = "video_complete"
    DOWNLOAD = "download"
    SIGNUP = "signup"
    LOGIN = "login"
    CUSTOM = "custom"


class RequestContext(BaseModel):
    """Client details captured from the originating request"""

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


class Event(BaseModel):
    """One timestamped action inside a session"""

    event_id: str = Field(..., min_length=1)
    session_id: str = Field(..., min_length=1)
    event_type: EventType
    event_data: dict[str, JsonValue] = Field(default_factory=dict)
    timestamp: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator("timestamp", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return normalize(v) if v is not None else None


class EventCreate(BaseModel):
    """Schema for tracking a single event.

    ``event_type`` is checked against EventType by the ingestion service so
    that batch items fail individually instead of rejecting the request.
    """

    session_id: str = Field(..., min_length=1, max_length=255)
    event_type: str = Field(..., min_length=1, max_length=255)
    event_data: dict[str, JsonValue] = Field(default_factory=dict)


class EventUpdate(BaseModel):
    """Partial event update"""

    event_type: Optional[str] = Field(default=None, min_length=1, max_length=255)
    event_data: Optional[dict[str, JsonValue]] = None

    model_config = {"extra": "ignore"}


class EventBatchCreate(BaseModel):
    """Schema for batch event tracking.

    Items stay raw so one malformed entry is reported at its index rather
    than failing the whole request.
    """

    events: list[Any]


class BatchItemResult(BaseModel):
    """A successfully tracked batch item"""

    index: int
    success: bool = True
    event_id: str
    session_id: str
    event_type: EventType
    timestamp: datetime


class BatchItemError(BaseModel):
    """A batch item that could not be tracked"""

    index: int
    success: bool = False
    error: str
    error_type: str
    field: Optional[str] = None


class BatchTrackResponse(BaseModel):
    """Partial-success report for a batch"""

    total: int
    successful: int
    failed: int
    results: list[BatchItemResult]
    errors: list[BatchItemError]


class EventDeleteResponse(BaseModel):
    """Response for an event delete"""

    event_id: str
    deleted: bool
