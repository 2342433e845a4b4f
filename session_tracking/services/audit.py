"""
Data audit for the session-tracking table.

Cascading deletes and event writes are not transactional, so the table can
hold orphaned events or half-deleted sessions. The audit scans every item into
a DataFrame and runs DuckDB queries over it to report those anomalies.
"""

from typing import List, Optional

import duckdb
import pandas as pd
from pydantic import BaseModel
import structlog

from session_tracking.core.store import KeyValueStore
from session_tracking.services.codec import EVENT_ITEM_TYPE, SESSION_ITEM_TYPE

logger = structlog.get_logger()

COLUMN_TYPES = {
    "pk": "string",
    "sk": "string",
    "item_type": "string",
    "session_id": "string",
    "external_id": "string",
    "created_at": "string",
    "event_type": "string",
    "indexed": "bool",
}


class AuditIssue(BaseModel):
    type: str
    session_id: Optional[str]
    message: str


class AuditReport(BaseModel):
    total_items: int
    total_sessions: int
    total_events: int
    sessions_with_events: int
    sessions_without_events: int
    sessions_per_user: dict[str, int]
    issues: List[AuditIssue]

    @property
    def clean(self) -> bool:
        return not self.issues


class AuditService:
    """Scans the table and validates the single-table invariants"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load_items(self) -> pd.DataFrame:
        rows = []
        async for item in self.store.scan():
            rows.append({
                "pk": item["PK"],
                "sk": item["SK"],
                "item_type": item.get("itemType"),
                "session_id": item.get("sessionId"),
                "external_id": item.get("externalId"),
                "created_at": item.get("createdAt"),
                "event_type": item.get("eventType"),
                "indexed": "GSI1PK" in item,
            })

        logger.info("audit_items_loaded", count=len(rows))
        return pd.DataFrame(rows, columns=list(COLUMN_TYPES)).astype(COLUMN_TYPES)

    async def run(self) -> AuditReport:
        report = self.analyze(await self.load_items())
        logger.info(
            "audit_completed",
            sessions=report.total_sessions,
            events=report.total_events,
            issues=len(report.issues)
        )
        return report

    def analyze(self, items: pd.DataFrame) -> AuditReport:
        con = duckdb.connect()
        try:
            con.register("items", items)
            params = [SESSION_ITEM_TYPE, EVENT_ITEM_TYPE]

            total_sessions, total_events = con.execute("""
                SELECT
                    COUNT(*) FILTER (WHERE item_type = ?),
                    COUNT(*) FILTER (WHERE item_type = ?)
                FROM items
            """, params).fetchone()

            sessions_with_events = con.execute("""
                SELECT COUNT(DISTINCT s.pk)
                FROM items s
                JOIN items e ON e.pk = s.pk AND e.item_type = ?
                WHERE s.item_type = ?
            """, [EVENT_ITEM_TYPE, SESSION_ITEM_TYPE]).fetchone()[0]

            per_user = con.execute("""
                SELECT external_id, COUNT(*) AS sessions
                FROM items
                WHERE item_type = ? AND external_id IS NOT NULL
                GROUP BY external_id
                ORDER BY external_id
            """, [SESSION_ITEM_TYPE]).fetchall()

            issues = self._find_issues(con)
        finally:
            con.close()

        return AuditReport(
            total_items=len(items),
            total_sessions=total_sessions,
            total_events=total_events,
            sessions_with_events=sessions_with_events,
            sessions_without_events=total_sessions - sessions_with_events,
            sessions_per_user={row[0]: row[1] for row in per_user},
            issues=issues
        )

    def _find_issues(self, con: duckdb.DuckDBPyConnection) -> List[AuditIssue]:
        issues = []

        # Events whose partition has no metadata item
        orphaned = con.execute("""
            SELECT e.pk, ANY_VALUE(e.session_id), COUNT(*)
            FROM items e
            WHERE e.item_type = ?
              AND NOT EXISTS (
                  SELECT 1 FROM items s WHERE s.pk = e.pk AND s.item_type = ?
              )
            GROUP BY e.pk
            ORDER BY e.pk
        """, [EVENT_ITEM_TYPE, SESSION_ITEM_TYPE]).fetchall()
        for _, session_id, count in orphaned:
            issues.append(AuditIssue(
                type="ORPHANED_EVENTS",
                session_id=session_id,
                message=f"Found {count} events for non-existent session: {session_id}"
            ))

        duplicates = con.execute("""
            SELECT session_id, COUNT(*)
            FROM items
            WHERE item_type = ?
            GROUP BY session_id
            HAVING COUNT(*) > 1
            ORDER BY session_id
        """, [SESSION_ITEM_TYPE]).fetchall()
        for session_id, count in duplicates:
            issues.append(AuditIssue(
                type="DUPLICATE_SESSION",
                session_id=session_id,
                message=f"Duplicate session found: {session_id} ({count} items)"
            ))

        missing_created = con.execute("""
            SELECT session_id FROM items
            WHERE item_type = ? AND created_at IS NULL
            ORDER BY session_id
        """, [SESSION_ITEM_TYPE]).fetchall()
        for (session_id,) in missing_created:
            issues.append(AuditIssue(
                type="MISSING_FIELD",
                session_id=session_id,
                message=f"Session {session_id} missing createdAt"
            ))

        # A linked session without index keys is invisible to by-user lookup
        unindexed = con.execute("""
            SELECT session_id FROM items
            WHERE item_type = ? AND external_id IS NOT NULL AND NOT indexed
            ORDER BY session_id
        """, [SESSION_ITEM_TYPE]).fetchall()
        for (session_id,) in unindexed:
            issues.append(AuditIssue(
                type="UNINDEXED_SESSION",
                session_id=session_id,
                message=f"Session {session_id} has an externalId but no user index keys"
            ))

        return issues
