"""
Unit tests for single and batch event tracking.
"""

import pytest

from session_tracking.core.errors import NotFoundError, ValidationError
from session_tracking.schemas.event import EventCreate, EventType, RequestContext
from session_tracking.schemas.session import Session
from session_tracking.services.ingestion import IngestionService


async def test_track_event_bumps_steps(ingestion, sessions):
    await sessions.create(Session(session_id="sess_1"))

    event = await ingestion.track_event(
        EventCreate(session_id="sess_1", event_type="landing", event_data={"page": "/"}),
        RequestContext(user_agent="UA")
    )

    assert event.event_type == EventType.LANDING
    assert event.user_agent == "UA"
    assert (await sessions.get("sess_1")).steps_taken == 1


async def test_track_event_unknown_session(ingestion, events):
    with pytest.raises(NotFoundError):
        await ingestion.track_event({"session_id": "nope", "event_type": "click"})

    assert await events.list_by_session("nope") == []


async def test_track_event_invalid_type(ingestion, sessions):
    await sessions.create(Session(session_id="sess_1"))

    with pytest.raises(ValidationError) as exc_info:
        await ingestion.track_event({"session_id": "sess_1", "event_type": "teleport"})
    assert exc_info.value.field == "event_type"


async def test_track_event_missing_field(ingestion):
    with pytest.raises(ValidationError) as exc_info:
        await ingestion.track_event({"event_type": "click"})
    assert exc_info.value.field == "session_id"


async def test_batch_all_succeed(ingestion, sessions, events):
    for session_id in ("a", "b", "c"):
        await sessions.create(Session(session_id=session_id))

    requests = [
        {"session_id": session_id, "event_type": "page_view"}
        for session_id in ("a", "b", "c", "a", "b", "c", "a")
    ]
    result = await ingestion.track_batch(requests)

    assert result.total == 7
    assert result.successful == 7
    assert result.failed == 0
    assert [r.index for r in result.results] == list(range(7))
    assert len(await events.list_by_session("a")) == 3


async def test_batch_partial_failure_keeps_indexes(ingestion, sessions, events):
    for session_id in ("a", "b", "c", "d"):
        await sessions.create(Session(session_id=session_id))

    requests = [
        {"session_id": "a", "event_type": "landing"},
        {"session_id": "b", "event_type": "landing"},
        {"session_id": "c", "event_type": "teleport"},
        {"session_id": "d", "event_type": "landing"},
        {"session_id": "a", "event_type": "click"},
    ]
    result = await ingestion.track_batch(requests)

    assert result.total == 5
    assert result.successful == 4
    assert result.failed == 1
    assert [r.index for r in result.results] == [0, 1, 3, 4]

    error = result.errors[0]
    assert error.index == 2
    assert error.success is False
    assert error.error_type == "ValidationError"
    assert error.field == "event_type"
    assert await events.list_by_session("c") == []


async def test_batch_unknown_session_is_item_error(ingestion, sessions):
    await sessions.create(Session(session_id="a"))

    result = await ingestion.track_batch([
        {"session_id": "a", "event_type": "click"},
        {"session_id": "missing", "event_type": "click"},
    ])

    assert result.successful == 1
    assert result.errors[0].index == 1
    assert result.errors[0].error_type == "NotFoundError"


async def test_batch_over_limit_writes_nothing(ingestion, sessions, store):
    await sessions.create(Session(session_id="a"))
    requests = [{"session_id": "a", "event_type": "click"} for _ in range(26)]

    with pytest.raises(ValidationError) as exc_info:
        await ingestion.track_batch(requests)
    assert exc_info.value.field == "events"

    assert await store.query("SESSION#a", sk_prefix="EVENT#") == []


async def test_batch_at_limit(ingestion, sessions):
    for i in range(25):
        await sessions.create(Session(session_id=f"s{i}"))

    result = await ingestion.track_batch([
        {"session_id": f"s{i}", "event_type": "click"} for i in range(25)
    ])

    assert result.successful == 25


@pytest.mark.parametrize("requests", [[], None, {"session_id": "a"}])
async def test_batch_rejects_empty_or_non_list(ingestion, requests):
    with pytest.raises(ValidationError):
        await ingestion.track_batch(requests)


class RecordingIngestion(IngestionService):
    """Tracks how many items are in flight at once"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.peak = 0

    async def track_event(self, request, context=None):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            return await super().track_event(request, context)
        finally:
            self.in_flight -= 1


async def test_batch_concurrency_is_bounded(sessions, events):
    for i in range(12):
        await sessions.create(Session(session_id=f"s{i}"))
    service = RecordingIngestion(sessions, events, max_batch_size=25, concurrency=5)

    result = await service.track_batch([
        {"session_id": f"s{i}", "event_type": "click"} for i in range(12)
    ])

    assert result.successful == 12
    assert 1 < service.peak <= 5


async def test_batch_non_object_item_fails_alone(ingestion, sessions):
    await sessions.create(Session(session_id="a"))

    result = await ingestion.track_batch([
        {"session_id": "a", "event_type": "landing"},
        "junk",
        {"session_id": "a", "event_type": "click"},
    ])

    assert result.successful == 2
    assert [r.index for r in result.results] == [0, 2]
    assert result.errors[0].index == 1
    assert result.errors[0].error_type == "ValidationError"
