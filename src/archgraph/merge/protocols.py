"""Collaborator contracts the merge engine depends on.

Write methods accept an optional open connection so a caller can group
several writes (snapshot, review items, audit entry) into one transaction.
"""

from __future__ import annotations

import sqlite3
from typing import Optional, Protocol, runtime_checkable

from ..graph.models import Edge, Module, ModuleStatus, Node
from ..persistence.models import AuditEntry, ReviewItem, Snapshot
from .conflicts import Conflict


@runtime_checkable
class ModuleRepository(Protocol):
    """Source of module records, owned by the approval workflow."""

    def get(self, module_id: str) -> Optional[Module]: ...

    def list_merged(self, project_id: str) -> list[Module]: ...  # as folded, ascending ``order``

    def mark_merged(self, module: Module, conn: Optional[sqlite3.Connection] = None) -> None: ...

    def set_status(
        self, module_id: str, status: ModuleStatus, conn: Optional[sqlite3.Connection] = None
    ) -> None: ...


@runtime_checkable
class ReviewSink(Protocol):
    """Admin review queue; one item per detected conflict."""

    def create(
        self, project_id: str, conflict: Conflict, conn: Optional[sqlite3.Connection] = None
    ) -> ReviewItem: ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only audit trail."""

    def append(self, entry: AuditEntry, conn: Optional[sqlite3.Connection] = None) -> AuditEntry: ...


@runtime_checkable
class SnapshotRepository(Protocol):
    """Versioned snapshot log with exactly one active snapshot per project."""

    def create_snapshot(
        self,
        project_id: str,
        nodes: list[Node],
        edges: list[Edge],
        module_ids: list[str],
        author: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Snapshot: ...

    def get_active(
        self, project_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Snapshot]: ...

    def get_by_version(
        self, project_id: str, version: int, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Snapshot]: ...

    def list_history(self, project_id: str) -> list[Snapshot]: ...
