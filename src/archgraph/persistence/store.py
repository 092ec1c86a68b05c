"""Snapshot store: append-only, versioned snapshots with one active per project."""

import sqlite3
from typing import Optional

from ..exceptions import ErrorCode, IntegrityViolationError
from ..graph.models import Edge, Node
from ..logging_config import get_logger
from .database import ArchiveDB
from .models import Snapshot
from .reader import list_versions, load_active, load_by_version, load_history
from .writer import insert_snapshot

logger = get_logger(__name__)


class SnapshotStore:
    """SQLite implementation of the snapshot repository.

    ``create_snapshot`` is the only operation that changes which version is
    active. It deactivates the current snapshot and inserts the next version
    in one ``BEGIN IMMEDIATE`` transaction, so no reader ever observes zero
    or two active snapshots for a project that has any. Reads accept ``conn``
    so a writer can load the active snapshot under its own write lock.
    """

    def __init__(self, db: ArchiveDB) -> None:
        self.db = db

    def create_snapshot(
        self,
        project_id: str,
        nodes: list[Node],
        edges: list[Edge],
        module_ids: list[str],
        author: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Snapshot:
        """Persist the next version and make it active.

        Pass ``conn`` to join a write transaction the caller already holds
        (e.g. to write an audit entry atomically with the snapshot).
        """
        if conn is not None:
            snapshot = insert_snapshot(conn, project_id, nodes, edges, module_ids, author)
        else:
            with self.db.transaction() as tx:
                snapshot = insert_snapshot(tx, project_id, nodes, edges, module_ids, author)
        logger.info(
            "Snapshot %s v%d created by %s (%d nodes, %d edges)",
            project_id,
            snapshot.version,
            author,
            len(snapshot.nodes),
            len(snapshot.edges),
        )
        return snapshot

    def get_active(
        self, project_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Snapshot]:
        if conn is not None:
            return load_active(conn, project_id)
        with self.db.connection() as c:
            return load_active(c, project_id)

    def get_by_version(
        self, project_id: str, version: int, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Snapshot]:
        if conn is not None:
            return load_by_version(conn, project_id, version)
        with self.db.connection() as c:
            return load_by_version(c, project_id, version)

    def list_history(self, project_id: str, limit: Optional[int] = None) -> list[Snapshot]:
        """All snapshots of the project, descending by version."""
        with self.db.connection() as conn:
            return load_history(conn, project_id, limit=limit)

    def list_versions(self, project_id: str, limit: int = 50) -> list[dict]:
        with self.db.connection() as conn:
            return list_versions(conn, project_id, limit=limit)

    def latest_version(self, project_id: str) -> int:
        """Highest version number for the project, 0 when it has none."""
        with self.db.connection() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(version), 0) AS v FROM snapshots WHERE project_id = ?",
                (project_id,),
            ).fetchone()
        return int(row["v"])

    def verify_integrity(self, project_id: str) -> None:
        """Check version and active-flag invariants for a project.

        Raises
        ------
        IntegrityViolationError
            If versions are not exactly 1..N, or if a project with snapshots
            does not have exactly one active snapshot.
        """
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT version, active FROM snapshots WHERE project_id = ? ORDER BY version",
                (project_id,),
            ).fetchall()

        versions = [r["version"] for r in rows]
        if versions != list(range(1, len(versions) + 1)):
            code = ErrorCode.AG201 if len(set(versions)) != len(versions) else ErrorCode.AG203
            self._fail(project_id, code, f"Version sequence broken: {versions}")

        active = [r["version"] for r in rows if r["active"]]
        if rows and len(active) != 1:
            self._fail(project_id, ErrorCode.AG202, f"Expected one active snapshot, found {active}")

    @staticmethod
    def _fail(project_id: str, code: ErrorCode, message: str) -> None:
        logger.error("Integrity violation in project %s: %s", project_id, message)
        raise IntegrityViolationError(
            message=message,
            code=code,
            context={"project_id": project_id},
            recoverable=False,
        )
