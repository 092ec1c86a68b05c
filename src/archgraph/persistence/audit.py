"""Append-only audit log for merges, blocked merges and rollbacks."""

import json
import sqlite3
from typing import Optional

from .database import ArchiveDB
from .models import AuditEntry
from .writer import utc_now


class AuditLog:
    """SQLite-backed audit sink. Rows are never updated or deleted."""

    def __init__(self, db: ArchiveDB) -> None:
        self.db = db

    def append(self, entry: AuditEntry, conn: Optional[sqlite3.Connection] = None) -> AuditEntry:
        if conn is None:
            with self.db.transaction() as tx:
                return self._insert(tx, entry)
        return self._insert(conn, entry)

    def _insert(self, conn: sqlite3.Connection, entry: AuditEntry) -> AuditEntry:
        timestamp = entry.timestamp or utc_now()
        cur = conn.execute(
            """
            INSERT INTO audit_log (project_id, action, actor, reason, metadata, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                entry.project_id,
                entry.action,
                entry.by,
                entry.reason,
                json.dumps(entry.metadata, default=str),
                timestamp,
            ),
        )
        return AuditEntry(
            project_id=entry.project_id,
            action=entry.action,
            by=entry.by,
            reason=entry.reason,
            metadata=dict(entry.metadata),
            timestamp=timestamp,
            id=cur.lastrowid,
        )

    def query(
        self, project_id: str, action: Optional[str] = None, limit: int = 100
    ) -> list[AuditEntry]:
        """Entries for a project, newest first."""
        sql = "SELECT * FROM audit_log WHERE project_id = ?"
        params: list = [project_id]
        if action is not None:
            sql += " AND action = ?"
            params.append(action)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with self.db.connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            AuditEntry(
                id=r["id"],
                project_id=r["project_id"],
                action=r["action"],
                by=r["actor"],
                reason=r["reason"],
                metadata=json.loads(r["metadata"]),
                timestamp=r["timestamp"],
            )
            for r in rows
        ]
