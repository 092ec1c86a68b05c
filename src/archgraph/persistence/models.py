"""Persisted records: snapshots, review items and audit entries.

All records are plain dataclasses so they serialize to JSON/SQLite without
ORM machinery. Snapshots and audit entries are write-once; review items
change only their ``status`` (pending -> resolved).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..graph.models import Edge, Node


@dataclass
class Snapshot:
    """Immutable, versioned copy of a project's canonical graph."""

    project_id: str
    version: int
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    modules: list[str] = field(default_factory=list)  # merged module ids
    active: bool = False
    created_by: str = ""
    created_at: str = ""  # ISO-8601

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "version": self.version,
            "active": self.active,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "modules": list(self.modules),
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


class ReviewStatus(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


@dataclass
class ReviewItem:
    """A conflict waiting for (or closed by) an administrator."""

    id: int
    project_id: str
    module_id: str
    type: str
    message: str
    node_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)
    status: ReviewStatus = ReviewStatus.PENDING
    created_at: str = ""
    resolved_at: Optional[str] = None
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "module_id": self.module_id,
            "type": self.type,
            "message": self.message,
            "node_id": self.node_id,
            "details": self.details,
            "status": self.status.value,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
            "resolution": self.resolution,
            "resolved_by": self.resolved_by,
        }


class AuditAction(Enum):
    MODULE_MERGED = "module_merged"
    MERGE_BLOCKED = "merge_blocked"
    SNAPSHOT_ROLLED_BACK = "snapshot_rolled_back"
    CONFLICT_RESOLVED = "conflict_resolved"
    CANONICAL_REBUILT = "canonical_rebuilt"


@dataclass
class AuditEntry:
    """One append-only audit record."""

    project_id: str
    action: str
    by: str
    reason: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""  # filled on append when empty
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "action": self.action,
            "by": self.by,
            "reason": self.reason,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }
