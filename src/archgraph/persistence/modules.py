"""Module store: proposed/approved modules as the approval workflow stores them."""

import json
import sqlite3
from typing import Optional

from ..exceptions import ErrorCode, MergeError
from ..graph.models import Confidence, Edge, Module, ModuleStatus, Node
from .database import ArchiveDB
from .writer import utc_now


class ModuleStore:
    """SQLite-backed module records.

    Once a module has been merged into a snapshot its nodes and edges are
    frozen; only its status may still change. The content that was actually
    folded (after any conflict resolution rewrote it) is kept alongside the
    proposal so a rebuild replays exactly what was accepted.
    """

    def __init__(self, db: ArchiveDB) -> None:
        self.db = db

    def save(self, module: Module) -> Module:
        """Insert or update a module.

        Raises
        ------
        MergeError
            If the module was already merged and its content differs.
        """
        nodes_json = json.dumps([n.to_dict() for n in module.nodes], sort_keys=True)
        edges_json = json.dumps([e.to_dict() for e in module.edges], sort_keys=True)

        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT nodes, edges, merged_at FROM modules WHERE id = ?", (module.id,)
            ).fetchone()
            if row is not None and row["merged_at"] is not None:
                if row["nodes"] != nodes_json or row["edges"] != edges_json:
                    raise MergeError(
                        message=f"Module {module.id} was merged; its content is immutable",
                        code=ErrorCode.AG102,
                        context={"module_id": module.id, "merged_at": row["merged_at"]},
                        recovery_hint="Propose a new module instead of editing a merged one",
                    )
            conn.execute(
                """
                INSERT INTO modules (
                    id, project_id, ord, status, confidence, name, rationale, nodes, edges
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    project_id = excluded.project_id,
                    ord = excluded.ord,
                    status = excluded.status,
                    confidence = excluded.confidence,
                    name = excluded.name,
                    rationale = excluded.rationale,
                    nodes = excluded.nodes,
                    edges = excluded.edges
                """,
                (
                    module.id,
                    module.project_id,
                    module.order,
                    module.status.value,
                    module.confidence.value,
                    module.name,
                    module.rationale,
                    nodes_json,
                    edges_json,
                ),
            )
        return module

    def get(self, module_id: str) -> Optional[Module]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM modules WHERE id = ?", (module_id,)).fetchone()
        return _hydrate(row) if row is not None else None

    def list_approved(self, project_id: str) -> list[Module]:
        """Approved modules of a project in ascending ``order``."""
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM modules WHERE project_id = ? AND status = ? ORDER BY ord, id",
                (project_id, ModuleStatus.APPROVED.value),
            ).fetchall()
        return [_hydrate(r) for r in rows]

    def list_for_project(self, project_id: str) -> list[Module]:
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM modules WHERE project_id = ? ORDER BY ord, id", (project_id,)
            ).fetchall()
        return [_hydrate(r) for r in rows]

    def list_merged(self, project_id: str) -> list[Module]:
        """Approved modules that were folded into a snapshot, as folded, in ``order``.

        Modules still waiting on review, discarded during resolution, or never
        submitted are left out.
        """
        with self.db.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM modules WHERE project_id = ? AND status = ? "
                "AND merged_at IS NOT NULL ORDER BY ord, id",
                (project_id, ModuleStatus.APPROVED.value),
            ).fetchall()
        return [_hydrate_merged(r) for r in rows]

    def set_status(
        self, module_id: str, status: ModuleStatus, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        sql = "UPDATE modules SET status = ? WHERE id = ?"
        if conn is None:
            with self.db.transaction() as tx:
                tx.execute(sql, (status.value, module_id))
        else:
            conn.execute(sql, (status.value, module_id))

    def mark_merged(self, module: Module, conn: Optional[sqlite3.Connection] = None) -> None:
        """Freeze a module and record the content that was folded.

        No-op for modules this repository does not hold.
        """
        sql = (
            "UPDATE modules SET merged_at = COALESCE(merged_at, ?), "
            "merged_content = COALESCE(merged_content, ?) WHERE id = ?"
        )
        params = (utc_now(), json.dumps(module.to_dict(), sort_keys=True), module.id)
        if conn is None:
            with self.db.transaction() as tx:
                tx.execute(sql, params)
        else:
            conn.execute(sql, params)

    def is_merged(self, module_id: str) -> bool:
        with self.db.connection() as conn:
            row = conn.execute("SELECT merged_at FROM modules WHERE id = ?", (module_id,)).fetchone()
        return row is not None and row["merged_at"] is not None


def _hydrate(row: sqlite3.Row) -> Module:
    return Module(
        id=row["id"],
        project_id=row["project_id"],
        order=row["ord"],
        status=ModuleStatus(row["status"]),
        confidence=Confidence(row["confidence"]),
        name=row["name"],
        rationale=row["rationale"],
        nodes=[Node.from_dict(n) for n in json.loads(row["nodes"])],
        edges=[Edge.from_dict(e) for e in json.loads(row["edges"])],
    )


def _hydrate_merged(row: sqlite3.Row) -> Module:
    # Archives written before merged_content existed only hold the proposal.
    if row["merged_content"] is None:
        return _hydrate(row)
    module = Module.from_dict(json.loads(row["merged_content"]))
    module.status = ModuleStatus(row["status"])
    return module
