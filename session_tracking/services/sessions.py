from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

import pydantic
import structlog

from session_tracking.core.errors import (
    InternalError,
    NotFoundError,
    PartialDeleteError,
    ValidationError,
)
from session_tracking.core.store import KeyValueStore
from session_tracking.core.timestamps import utc_now
from session_tracking.schemas.session import Session
from session_tracking.services.codec import (
    METADATA_SK,
    SESSION_PREFIX,
    decode_session,
    encode_session,
    session_pk,
    user_index_pk,
)

logger = structlog.get_logger()

# Fields a partial update may change; everything else is immutable
UPDATABLE_FIELDS = ("external_id", "status", "metadata", "steps_taken")


class CascadeDeleteState(str, Enum):
    ENUMERATING = "enumerating"
    DELETING = "deleting"
    DONE = "done"
    PARTIAL = "partial"


@dataclass
class CascadeDelete:
    """
    Removes a session's metadata item and every event under its partition.

    There is no multi-item transaction, so the delete runs as two phases:
    enumerate the partition, then delete item by item. Events go first and
    the metadata item last, so an interrupted run leaves a session that still
    exists and can be deleted again rather than orphaned events.
    """

    store: KeyValueStore
    session_id: str
    state: CascadeDeleteState = CascadeDeleteState.ENUMERATING
    enumerated: int = 0
    deleted: int = 0

    async def run(self) -> int:
        items = await self.store.query(session_pk(self.session_id))
        items = sorted(items, key=lambda item: item["SK"] == METADATA_SK)
        self.enumerated = len(items)

        self.state = CascadeDeleteState.DELETING
        for item in items:
            try:
                await self.store.delete(item["PK"], item["SK"])
            except InternalError as e:
                self.state = CascadeDeleteState.PARTIAL
                raise PartialDeleteError(
                    self.session_id,
                    deleted=self.deleted,
                    remaining=self.enumerated - self.deleted,
                    original_error=e.original_error or e
                )
            self.deleted += 1

        self.state = CascadeDeleteState.DONE
        return self.deleted


class SessionStore:
    """CRUD and cascading delete for session metadata items"""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = utc_now):
        self._store = store
        self._clock = clock

    async def create(self, session: Session) -> Session:
        """
        Write a new session.

        There is no existence check: creating the same session_id twice
        overwrites the first session.
        """
        now = self._clock()
        session = session.model_copy(update={"created_at": now, "updated_at": now})

        await self._store.put(encode_session(session))

        logger.info(
            "session_created",
            session_id=session.session_id,
            external_id=session.external_id
        )
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        item = await self._store.get_item(session_pk(session_id), METADATA_SK)
        return decode_session(item) if item is not None else None

    async def update(self, session_id: str, fields: dict[str, Any]) -> Session:
        """
        Merge allowed fields into the stored session and write it back.

        Read-modify-write without a version check: concurrent updates to the
        same session can lose writes.
        """
        changes = {name: value for name, value in fields.items() if name in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError(
                f"No valid update fields provided. Allowed: {', '.join(UPDATABLE_FIELDS)}"
            )

        existing = await self.get(session_id)
        if existing is None:
            raise NotFoundError(f"Session not found: {session_id}", "session")

        try:
            updated = Session.model_validate({
                **existing.model_dump(),
                **changes,
                "updated_at": self._clock(),
            })
        except pydantic.ValidationError as e:
            raise ValidationError.from_pydantic(e)

        # Re-encoding refreshes the index keys when external_id changes
        await self._store.put(encode_session(updated))

        logger.info("session_updated", session_id=session_id, fields=sorted(changes))
        return updated

    async def list_by_user(self, external_id: str, limit: int = 50) -> list[Session]:
        """Sessions linked to a user, oldest first (index order)"""
        if not isinstance(external_id, str) or not external_id.strip():
            raise ValidationError("external_id must be a non-empty string", "external_id")
        if limit < 1:
            raise ValidationError("limit must be a positive integer", "limit")

        items = await self._store.query(
            user_index_pk(external_id),
            sk_prefix=SESSION_PREFIX,
            index_name=self._store.index_name,
            limit=limit
        )

        logger.debug("sessions_by_user_fetched", external_id=external_id, count=len(items))
        return [decode_session(item) for item in items]

    async def delete_cascade(self, session_id: str) -> int:
        """
        Delete a session and all of its events.

        Returns:
            Number of items removed

        Raises:
            PartialDeleteError: some items were removed before a store failure
        """
        deletion = CascadeDelete(self._store, session_id)
        try:
            deleted = await deletion.run()
        except PartialDeleteError as e:
            logger.error(
                "session_delete_partial",
                session_id=session_id,
                deleted=e.deleted,
                remaining=e.remaining
            )
            raise

        logger.info("session_deleted", session_id=session_id, items_deleted=deleted)
        return deleted

    async def increment_steps(self, session_id: str) -> Session:
        return await self._adjust_steps(session_id, 1)

    async def decrement_steps(self, session_id: str) -> Session:
        return await self._adjust_steps(session_id, -1)

    async def _adjust_steps(self, session_id: str, delta: int) -> Session:
        # Not atomic: two writers reading the same count both write count + 1
        session = await self.get(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}", "session")

        steps = max(0, session.steps_taken + delta)
        if steps == session.steps_taken:
            return session

        session = session.model_copy(update={"steps_taken": steps, "updated_at": self._clock()})
        await self._store.put(encode_session(session))
        return session
