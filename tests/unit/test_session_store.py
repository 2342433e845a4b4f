"""
Unit tests for SessionStore: CRUD, lookup by user and cascading delete.
"""

import asyncio

import pytest

from session_tracking.core.errors import (
    InternalError,
    NotFoundError,
    PartialDeleteError,
    ValidationError,
)
from session_tracking.schemas.event import EventType
from session_tracking.schemas.session import Session, SessionStatus
from session_tracking.services.sessions import CascadeDelete, CascadeDeleteState


async def test_create_stamps_timestamps(sessions, clock):
    created = await sessions.create(Session(session_id="sess_1", metadata={"source": "ad"}))

    assert created.created_at == created.updated_at
    assert created.steps_taken == 0
    assert created.status == SessionStatus.ACTIVE

    stored = await sessions.get("sess_1")
    assert stored == created


async def test_get_missing(sessions):
    assert await sessions.get("nope") is None


async def test_create_twice_overwrites(sessions):
    await sessions.create(Session(session_id="sess_1", metadata={"v": 1}))
    await sessions.create(Session(session_id="sess_1", metadata={"v": 2}))

    assert (await sessions.get("sess_1")).metadata == {"v": 2}


async def test_update_applies_allowed_fields_only(sessions):
    created = await sessions.create(Session(session_id="sess_1", user_agent="UA"))

    updated = await sessions.update("sess_1", {
        "status": "completed",
        "metadata": {"plan": "pro"},
        "user_agent": "ignored",
        "created_at": "2000-01-01T00:00:00Z",
    })

    assert updated.status == SessionStatus.COMPLETED
    assert updated.metadata == {"plan": "pro"}
    assert updated.user_agent == "UA"
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at
    assert await sessions.get("sess_1") == updated


async def test_update_without_allowed_fields(sessions):
    await sessions.create(Session(session_id="sess_1"))

    with pytest.raises(ValidationError):
        await sessions.update("sess_1", {"user_agent": "x"})


async def test_update_invalid_value(sessions):
    await sessions.create(Session(session_id="sess_1"))

    with pytest.raises(ValidationError) as exc_info:
        await sessions.update("sess_1", {"status": "paused"})
    assert exc_info.value.field == "status"


async def test_update_missing_session(sessions):
    with pytest.raises(NotFoundError):
        await sessions.update("nope", {"status": "completed"})


async def test_list_by_user_oldest_first(sessions):
    await sessions.create(Session(session_id="first", external_id="u1"))
    await sessions.create(Session(session_id="anonymous"))
    await sessions.create(Session(session_id="second", external_id="u1"))
    await sessions.create(Session(session_id="other", external_id="u2"))

    found = await sessions.list_by_user("u1")
    assert [s.session_id for s in found] == ["first", "second"]

    limited = await sessions.list_by_user("u1", limit=1)
    assert [s.session_id for s in limited] == ["first"]

    assert await sessions.list_by_user("nobody") == []


async def test_linking_external_id_later_indexes_session(sessions):
    await sessions.create(Session(session_id="sess_1"))
    assert await sessions.list_by_user("u1") == []

    await sessions.update("sess_1", {"external_id": "u1"})

    assert [s.session_id for s in await sessions.list_by_user("u1")] == ["sess_1"]


async def test_list_by_user_validates_input(sessions):
    with pytest.raises(ValidationError):
        await sessions.list_by_user("  ")
    with pytest.raises(ValidationError):
        await sessions.list_by_user("u1", limit=0)


async def test_steps_floor_at_zero(sessions):
    await sessions.create(Session(session_id="sess_1"))

    assert (await sessions.increment_steps("sess_1")).steps_taken == 1
    assert (await sessions.decrement_steps("sess_1")).steps_taken == 0
    assert (await sessions.decrement_steps("sess_1")).steps_taken == 0


async def test_steps_on_missing_session(sessions):
    with pytest.raises(NotFoundError):
        await sessions.increment_steps("nope")


async def test_delete_cascade_removes_everything(sessions, events, store):
    await sessions.create(Session(session_id="sess_1"))
    for event_type in (EventType.LANDING, EventType.CLICK, EventType.SIGNUP):
        await events.create("sess_1", event_type)
    await sessions.create(Session(session_id="sess_2"))

    assert await sessions.delete_cascade("sess_1") == 4

    assert await store.query("SESSION#sess_1") == []
    assert await sessions.get("sess_2") is not None


async def test_delete_cascade_missing_session(sessions):
    assert await sessions.delete_cascade("nope") == 0


class FailingDeleteStore:
    """Wraps a store and fails on the Nth delete"""

    def __init__(self, store, fail_on: int):
        self._store = store
        self.fail_on = fail_on
        self.deletes = 0

    async def query(self, *args, **kwargs):
        return await self._store.query(*args, **kwargs)

    async def delete(self, pk, sk):
        self.deletes += 1
        if self.deletes == self.fail_on:
            raise InternalError("Failed to delete item", RuntimeError("throttled"))
        return await self._store.delete(pk, sk)


async def test_delete_cascade_partial_failure(sessions, events, store):
    await sessions.create(Session(session_id="sess_1"))
    for event_type in (EventType.LANDING, EventType.CLICK):
        await events.create("sess_1", event_type)

    deletion = CascadeDelete(FailingDeleteStore(store, fail_on=2), "sess_1")
    with pytest.raises(PartialDeleteError) as exc_info:
        await deletion.run()

    assert exc_info.value.deleted == 1
    assert exc_info.value.remaining == 2
    assert deletion.state == CascadeDeleteState.PARTIAL

    # Events go first, so the session itself survives and can be deleted again
    assert await sessions.get("sess_1") is not None
    assert await sessions.delete_cascade("sess_1") == 2


async def test_concurrent_creates_of_one_session_all_succeed(sessions, store):
    created = await asyncio.gather(*(
        sessions.create(Session(session_id="dup", metadata={"writer": i}))
        for i in range(5)
    ))

    assert [s.session_id for s in created] == ["dup"] * 5
    stored = await store.query("SESSION#dup")
    assert len(stored) == 1
    assert stored[0]["metadata"]["writer"] in range(5)


NESTED_METADATA = {
    "a": {"b": [1, 2.5, None, {"c": True}], "e": {}},
    "z": None,
    "u": "é☃",
}


@pytest.mark.parametrize("session", [
    Session(session_id="anon"),
    Session(session_id="empty", external_id="u1", metadata={}),
    Session(session_id="nested", external_id="u1", user_agent="UA", ip_address="::1",
            metadata=NESTED_METADATA),
], ids=["anonymous", "empty-metadata", "nested-metadata"])
async def test_create_then_get_keeps_shape(sessions, session):
    created = await sessions.create(session)

    assert await sessions.get(session.session_id) == created
