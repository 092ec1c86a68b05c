"""Diff engine: added/removed nodes and edges between two snapshots.

The diff is directional. ``diff(a, b)`` and ``diff(b, a)`` report swapped
added/removed sets and negated count deltas.
"""

from __future__ import annotations

from typing import Optional

from ..persistence.models import Snapshot
from ..merge.protocols import SnapshotRepository
from .models import GraphDiff


def diff_snapshots(old: Snapshot, new: Snapshot) -> GraphDiff:
    """Compare two loaded snapshots; output lists keep each snapshot's order."""
    old_node_ids = {n.id for n in old.nodes}
    new_node_ids = {n.id for n in new.nodes}
    old_edge_keys = {e.key for e in old.edges}
    new_edge_keys = {e.key for e in new.edges}

    return GraphDiff(
        project_id=new.project_id,
        from_version=old.version,
        to_version=new.version,
        added_nodes=[n.copy() for n in new.nodes if n.id not in old_node_ids],
        removed_nodes=[n.copy() for n in old.nodes if n.id not in new_node_ids],
        added_edges=[e.copy() for e in new.edges if e.key not in old_edge_keys],
        removed_edges=[e.copy() for e in old.edges if e.key not in new_edge_keys],
        node_count_change=len(new.nodes) - len(old.nodes),
        edge_count_change=len(new.edges) - len(old.edges),
    )


def diff_versions(
    store: SnapshotRepository, project_id: str, from_version: int, to_version: int
) -> Optional[GraphDiff]:
    """Diff two persisted versions; ``None`` if either version is missing."""
    old = store.get_by_version(project_id, from_version)
    if old is None:
        return None
    new = store.get_by_version(project_id, to_version)
    if new is None:
        return None
    return diff_snapshots(old, new)
