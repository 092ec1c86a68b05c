"""Data model for version-to-version graph diffs."""

from dataclasses import dataclass, field
from typing import Any

from ..graph.models import Edge, Node


@dataclass
class GraphDiff:
    """Membership diff between two snapshots of one project.

    Nodes are compared by ``id`` and edges by ``(from, to)``; attribute
    changes on members present in both versions are not reported.
    """

    project_id: str
    from_version: int
    to_version: int

    added_nodes: list[Node] = field(default_factory=list)
    removed_nodes: list[Node] = field(default_factory=list)
    added_edges: list[Edge] = field(default_factory=list)
    removed_edges: list[Edge] = field(default_factory=list)

    node_count_change: int = 0  # |to.nodes| - |from.nodes|
    edge_count_change: int = 0  # |to.edges| - |from.edges|

    @property
    def is_empty(self) -> bool:
        return not (self.added_nodes or self.removed_nodes or self.added_edges or self.removed_edges)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "from_version": self.from_version,
            "to_version": self.to_version,
            "added_nodes": [n.to_dict() for n in self.added_nodes],
            "removed_nodes": [n.to_dict() for n in self.removed_nodes],
            "added_edges": [e.to_dict() for e in self.added_edges],
            "removed_edges": [e.to_dict() for e in self.removed_edges],
            "node_count_change": self.node_count_change,
            "edge_count_change": self.edge_count_change,
        }
