"""Read snapshots back from the archive database."""

import json
import sqlite3
from typing import Optional

from ..graph.models import Edge, Node
from .models import Snapshot


def load_active(conn: sqlite3.Connection, project_id: str) -> Optional[Snapshot]:
    """Load the project's active snapshot, or ``None`` before the first merge."""
    rows = conn.execute(
        "SELECT * FROM snapshots WHERE project_id = ? AND active = 1",
        (project_id,),
    ).fetchall()
    if not rows:
        return None
    # The partial unique index makes a second row impossible; callers that
    # need to prove it use ``SnapshotStore.verify_integrity``.
    return _hydrate(conn, rows[0])


def load_by_version(conn: sqlite3.Connection, project_id: str, version: int) -> Optional[Snapshot]:
    """Load one version of a project, or ``None`` if it does not exist."""
    row = conn.execute(
        "SELECT * FROM snapshots WHERE project_id = ? AND version = ?",
        (project_id, version),
    ).fetchone()
    if row is None:
        return None
    return _hydrate(conn, row)


def load_history(
    conn: sqlite3.Connection, project_id: str, limit: Optional[int] = None
) -> list[Snapshot]:
    """Load fully hydrated snapshots, newest version first."""
    sql = "SELECT * FROM snapshots WHERE project_id = ? ORDER BY version DESC"
    params: tuple = (project_id,)
    if limit is not None:
        sql += " LIMIT ?"
        params = (project_id, limit)
    return [_hydrate(conn, row) for row in conn.execute(sql, params).fetchall()]


def list_versions(conn: sqlite3.Connection, project_id: str, limit: int = 50) -> list[dict]:
    """Summaries of recent versions without node/edge payloads.

    Returns
    -------
    List[Dict]
        Dicts with keys: version, active, created_by, created_at,
        module_count, node_count, edge_count.
    """
    rows = conn.execute(
        """
        SELECT
            s.version,
            s.active,
            s.created_by,
            s.created_at,
            s.modules,
            (SELECT COUNT(*) FROM snapshot_nodes n WHERE n.snapshot_id = s.id) AS node_count,
            (SELECT COUNT(*) FROM snapshot_edges e WHERE e.snapshot_id = s.id) AS edge_count
        FROM snapshots s
        WHERE s.project_id = ?
        ORDER BY s.version DESC
        LIMIT ?
        """,
        (project_id, limit),
    ).fetchall()

    results: list[dict] = []
    for r in rows:
        results.append(
            {
                "version": r["version"],
                "active": bool(r["active"]),
                "created_by": r["created_by"],
                "created_at": r["created_at"],
                "module_count": len(json.loads(r["modules"])),
                "node_count": r["node_count"],
                "edge_count": r["edge_count"],
            }
        )
    return results


# ── Private helpers ──────────────────────────────────────────────────


def _hydrate(conn: sqlite3.Connection, row: sqlite3.Row) -> Snapshot:
    """Build a full Snapshot from a snapshots row + node/edge tables."""
    snapshot_id = row["id"]

    nodes = [
        Node(
            id=n["node_id"],
            type=n["node_type"],
            label=n["label"],
            meta=json.loads(n["meta"]),
        )
        for n in conn.execute(
            "SELECT node_id, node_type, label, meta FROM snapshot_nodes "
            "WHERE snapshot_id = ? ORDER BY position",
            (snapshot_id,),
        )
    ]

    edges = [
        Edge(
            source=e["src"],
            target=e["dst"],
            label=e["label"],
            meta=json.loads(e["meta"]),
        )
        for e in conn.execute(
            "SELECT src, dst, label, meta FROM snapshot_edges "
            "WHERE snapshot_id = ? ORDER BY position",
            (snapshot_id,),
        )
    ]

    return Snapshot(
        project_id=row["project_id"],
        version=row["version"],
        nodes=nodes,
        edges=edges,
        modules=json.loads(row["modules"]),
        active=bool(row["active"]),
        created_by=row["created_by"],
        created_at=row["created_at"],
    )
