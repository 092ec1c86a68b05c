"""Value types for architecture graphs.

A project's architecture is a directed graph of typed components:
  Node   -- a component (gateway, service, database, ...) keyed by ``id``
  Edge   -- a directed dependency keyed by the ordered pair ``(from, to)``
  Module -- a proposed, approvable subgraph contributed toward the project

``meta`` bags are open string-keyed maps of JSON-like values. They are merged
shallowly everywhere in this package.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

EdgeKey = tuple[str, str]


class ModuleStatus(Enum):
    """Approval workflow state of a module."""

    PROPOSED = "proposed"
    APPROVED = "approved"
    MODIFIED = "modified"
    REJECTED = "rejected"


class Confidence(Enum):
    """How much the producer (usually the AI generator) trusts a module."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class Node:
    """A single architecture component."""

    id: str
    type: str
    label: str = ""
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "label": self.label, "meta": copy.deepcopy(self.meta)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Node:
        return cls(
            id=str(data["id"]),
            type=str(data.get("type", "")),
            label=str(data.get("label") or ""),
            meta=dict(data.get("meta") or {}),
        )

    def copy(self) -> Node:
        return Node(id=self.id, type=self.type, label=self.label, meta=copy.deepcopy(self.meta))


@dataclass
class Edge:
    """Directed dependency between two nodes.

    ``source``/``target`` serialize as ``from``/``to``.
    """

    source: str
    target: str
    label: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> EdgeKey:
        """Identity of the edge in the canonical graph."""
        return (self.source, self.target)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"from": self.source, "to": self.target, "meta": copy.deepcopy(self.meta)}
        if self.label is not None:
            data["label"] = self.label
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Edge:
        label = data.get("label")
        return cls(
            source=str(data["from"]),
            target=str(data["to"]),
            label=str(label) if label is not None else None,
            meta=dict(data.get("meta") or {}),
        )

    def copy(self) -> Edge:
        return Edge(source=self.source, target=self.target, label=self.label, meta=copy.deepcopy(self.meta))


@dataclass
class Module:
    """A unit of architecture content proposed for a project.

    Only ``status`` changes through the approval workflow; ``nodes`` and
    ``edges`` must not change once the module has been merged.
    """

    id: str
    project_id: str
    order: int
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    status: ModuleStatus = ModuleStatus.PROPOSED
    confidence: Confidence = Confidence.MEDIUM
    name: str = ""
    rationale: str = ""

    @property
    def is_approved(self) -> bool:
        return self.status is ModuleStatus.APPROVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "order": self.order,
            "status": self.status.value,
            "confidence": self.confidence.value,
            "name": self.name,
            "rationale": self.rationale,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Module:
        return cls(
            id=str(data["id"]),
            project_id=str(data["project_id"]),
            order=int(data.get("order", 0)),
            nodes=[Node.from_dict(n) for n in data.get("nodes") or []],
            edges=[Edge.from_dict(e) for e in data.get("edges") or []],
            status=ModuleStatus(data.get("status", ModuleStatus.PROPOSED.value)),
            confidence=Confidence(data.get("confidence", Confidence.MEDIUM.value)),
            name=str(data.get("name") or ""),
            rationale=str(data.get("rationale") or ""),
        )


def nodes_by_id(nodes: list[Node]) -> dict[str, Node]:
    """Index nodes by id (last one wins on duplicates)."""
    return {n.id: n for n in nodes}


def edges_by_key(edges: list[Edge]) -> dict[EdgeKey, Edge]:
    """Index edges by their ``(from, to)`` key (last one wins on duplicates)."""
    return {e.key: e for e in edges}
