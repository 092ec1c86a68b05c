"""Review queue: one pending item per detected conflict."""

import json
import sqlite3
from typing import Optional

from ..logging_config import get_logger
from ..merge.conflicts import Conflict
from .database import ArchiveDB
from .models import ReviewItem, ReviewStatus
from .writer import utc_now

logger = get_logger(__name__)


class ReviewQueue:
    """SQLite-backed review sink and query surface for admin tooling."""

    def __init__(self, db: ArchiveDB) -> None:
        self.db = db

    def create(
        self, project_id: str, conflict: Conflict, conn: Optional[sqlite3.Connection] = None
    ) -> ReviewItem:
        """Record ``conflict`` as a pending review item."""
        if conn is None:
            with self.db.transaction() as tx:
                return self._insert(tx, project_id, conflict)
        return self._insert(conn, project_id, conflict)

    def _insert(self, conn: sqlite3.Connection, project_id: str, conflict: Conflict) -> ReviewItem:
        created_at = utc_now()
        cur = conn.execute(
            """
            INSERT INTO review_items (
                project_id, module_id, conflict_type, message, node_id, details, status, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                project_id,
                conflict.module_id,
                conflict.type,
                conflict.message,
                conflict.node_id,
                json.dumps(conflict.details, default=str),
                ReviewStatus.PENDING.value,
                created_at,
            ),
        )
        item_id = cur.lastrowid
        assert item_id is not None
        logger.debug("Review item %d: %s on module %s", item_id, conflict.type, conflict.module_id)
        return ReviewItem(
            id=item_id,
            project_id=project_id,
            module_id=conflict.module_id,
            type=conflict.type,
            message=conflict.message,
            node_id=conflict.node_id,
            details=dict(conflict.details),
            created_at=created_at,
        )

    def get(self, item_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[ReviewItem]:
        """Load one item. Pass ``conn`` to read inside a caller's write transaction."""
        sql = "SELECT * FROM review_items WHERE id = ?"
        if conn is not None:
            row = conn.execute(sql, (item_id,)).fetchone()
        else:
            with self.db.connection() as c:
                row = c.execute(sql, (item_id,)).fetchone()
        return _hydrate(row) if row is not None else None

    def list_for_module(
        self,
        module_id: str,
        status: Optional[ReviewStatus] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[ReviewItem]:
        sql = "SELECT * FROM review_items WHERE module_id = ?"
        params: list = [module_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY id"
        if conn is not None:
            rows = conn.execute(sql, params).fetchall()
        else:
            with self.db.connection() as c:
                rows = c.execute(sql, params).fetchall()
        return [_hydrate(r) for r in rows]

    def list_for_project(
        self, project_id: str, status: Optional[ReviewStatus] = None
    ) -> list[ReviewItem]:
        sql = "SELECT * FROM review_items WHERE project_id = ?"
        params: list = [project_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        with self.db.connection() as conn:
            rows = conn.execute(sql + " ORDER BY id", params).fetchall()
        return [_hydrate(r) for r in rows]

    def pending_count(self, module_id: str) -> int:
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM review_items WHERE module_id = ? AND status = 'pending'",
                (module_id,),
            ).fetchone()
        return int(row["n"])

    def resolve_module(
        self,
        module_id: str,
        resolution: str,
        by: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Mark every pending item of a module resolved. Returns the count."""
        if conn is None:
            with self.db.transaction() as tx:
                return self._resolve(tx, module_id, resolution, by)
        return self._resolve(conn, module_id, resolution, by)

    def _resolve(self, conn: sqlite3.Connection, module_id: str, resolution: str, by: str) -> int:
        cur = conn.execute(
            """
            UPDATE review_items
            SET status = 'resolved', resolved_at = ?, resolution = ?, resolved_by = ?
            WHERE module_id = ? AND status = 'pending'
            """,
            (utc_now(), resolution, by, module_id),
        )
        return cur.rowcount


def _hydrate(row: sqlite3.Row) -> ReviewItem:
    return ReviewItem(
        id=row["id"],
        project_id=row["project_id"],
        module_id=row["module_id"],
        type=row["conflict_type"],
        message=row["message"],
        node_id=row["node_id"],
        details=json.loads(row["details"]),
        status=ReviewStatus(row["status"]),
        created_at=row["created_at"],
        resolved_at=row["resolved_at"],
        resolution=row["resolution"],
        resolved_by=row["resolved_by"],
    )
