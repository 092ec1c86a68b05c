"""Write snapshots into the archive database."""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import ErrorCode, IntegrityViolationError
from ..graph.models import Edge, Node
from ..logging_config import get_logger
from .models import Snapshot

logger = get_logger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def insert_snapshot(
    conn: sqlite3.Connection,
    project_id: str,
    nodes: list[Node],
    edges: list[Edge],
    module_ids: list[str],
    author: str,
    created_at: Optional[str] = None,
) -> Snapshot:
    """Append the next version for ``project_id`` and make it the active one.

    Must run inside a write transaction (``ArchiveDB.transaction()``); the
    deactivate + insert pair is only atomic there.

    Parameters
    ----------
    conn:
        Connection holding an open ``BEGIN IMMEDIATE`` transaction.
    project_id:
        Project the snapshot belongs to.
    nodes, edges:
        Canonical graph content, stored in the given order.
    module_ids:
        Ids of the modules folded into this content.
    author:
        Who triggered the merge or rollback.

    Returns
    -------
    Snapshot
        The persisted snapshot with its assigned version.

    Raises
    ------
    IntegrityViolationError
        If the storage constraints reject the write (duplicate version or a
        second active snapshot). This indicates broken serialization.
    """
    if not conn.in_transaction:
        raise RuntimeError("insert_snapshot requires an open write transaction")

    created_at = created_at or utc_now()
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) AS v FROM snapshots WHERE project_id = ?",
        (project_id,),
    ).fetchone()
    version = int(row["v"]) + 1

    try:
        conn.execute(
            "UPDATE snapshots SET active = 0 WHERE project_id = ? AND active = 1",
            (project_id,),
        )
        cur = conn.execute(
            """
            INSERT INTO snapshots (project_id, version, active, created_by, created_at, modules)
            VALUES (?, ?, 1, ?, ?, ?)
            """,
            (project_id, version, author, created_at, json.dumps(list(module_ids))),
        )
        snapshot_id = cur.lastrowid
        assert snapshot_id is not None

        # ── nodes (batch) ────────────────────────────────────────
        node_rows = [
            (snapshot_id, pos, n.id, n.type, n.label, json.dumps(n.meta, sort_keys=True))
            for pos, n in enumerate(nodes)
        ]
        if node_rows:
            conn.executemany(
                """
                INSERT INTO snapshot_nodes (snapshot_id, position, node_id, node_type, label, meta)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                node_rows,
            )

        # ── edges (batch) ────────────────────────────────────────
        edge_rows = [
            (snapshot_id, pos, e.source, e.target, e.label, json.dumps(e.meta, sort_keys=True))
            for pos, e in enumerate(edges)
        ]
        if edge_rows:
            conn.executemany(
                """
                INSERT INTO snapshot_edges (snapshot_id, position, src, dst, label, meta)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                edge_rows,
            )
    except sqlite3.IntegrityError as e:
        logger.error(
            "Integrity violation writing %s v%d: %s", project_id, version, e
        )
        raise IntegrityViolationError(
            message=f"Snapshot write rejected for project {project_id}: {e}",
            code=_violation_code(str(e)),
            context={"project_id": project_id, "version": version},
            recoverable=False,
        ) from e

    return Snapshot(
        project_id=project_id,
        version=version,
        nodes=[n.copy() for n in nodes],
        edges=[e.copy() for e in edges],
        modules=list(module_ids),
        active=True,
        created_by=author,
        created_at=created_at,
    )


def _violation_code(message: str) -> ErrorCode:
    if "snapshots.version" in message:
        return ErrorCode.AG201
    if "snapshot_nodes" in message or "snapshot_edges" in message:
        return ErrorCode.AG205
    return ErrorCode.AG202
