# Pydantic schemas

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, JsonValue, field_validator

from session_tracking.core.timestamps import normalize, utc_now


class SessionStatus(str, Enum):
    """Lifecycle state of a session"""

    ACTIVE = "active"
    COMPLETED = "completed"


class Session(BaseModel):
    """
    One tracked user visit.

    Attributes:
        session_id: Caller-supplied identifier, immutable after creation
        external_id: Optional link to a user (e.g. an email address)
        status: active or completed
        steps_taken: Approximate number of tracked events. Concurrent writers
                     race on a read-modify-write, so this can drift.
        user_agent: Captured at creation
        ip_address: Captured at creation
        created_at: Set once when the session is created
        updated_at: Refreshed on every mutation
        metadata: Caller-controlled payload, never interpreted
    """

    session_id: str = Field(..., min_length=1)
    external_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    steps_taken: int = Field(default=0, ge=0)
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        return normalize(v)


class SessionCreate(BaseModel):
    """Schema for creating a session"""

    session_id: str = Field(..., min_length=1, max_length=255)
    external_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    metadata: dict[str, JsonValue] = Field(default_factory=dict)

    @field_validator("session_id")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field cannot be empty or whitespace")
        return v.strip()


class SessionUpdate(BaseModel):
    """Partial update; only the fields that are sent are applied"""

    external_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[SessionStatus] = None
    metadata: Optional[dict[str, JsonValue]] = None
    steps_taken: Optional[int] = Field(default=None, ge=0)

    model_config = {"extra": "ignore"}


class SessionDeleteResponse(BaseModel):
    """Response for a cascading session delete"""

    session_id: str
    items_deleted: int
