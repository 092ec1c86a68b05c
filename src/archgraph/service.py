"""Merge service: the serialized detect -> fold -> snapshot path per project.

Every operation that can change a project's active snapshot (merge,
rollback, conflict resolution, rebuild) reads the active snapshot and writes
its results inside one ``BEGIN IMMEDIATE`` transaction, so two writers can
never fold against the same stale canonical graph, even from different
processes. A per-project lock additionally keeps threads of one service from
queueing on the database write lock for the same project.

Conflicts are a normal outcome, not an exception: a blocked merge returns a
``MergeOutcome`` with ``merged=False`` and leaves the active snapshot as it
was.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from .config import ArchGraphConfig
from .diff import GraphDiff, diff_versions
from .exceptions import (
    ErrorCode,
    MergeError,
    ResolutionError,
    ReviewItemNotFoundError,
    SnapshotNotFoundError,
)
from .graph.models import Edge, Module, ModuleStatus
from .logging_config import event, get_logger
from .merge.conflicts import Conflict, SingletonRegistry, default_registry, detect
from .merge.protocols import ModuleRepository
from .merge.reducer import GraphAccumulator, fold
from .merge.resolution import ResolutionAction, apply_resolution
from .persistence.audit import AuditLog
from .persistence.database import ArchiveDB
from .persistence.models import AuditAction, AuditEntry, ReviewItem, ReviewStatus, Snapshot
from .persistence.modules import ModuleStore
from .persistence.review import ReviewQueue
from .persistence.store import SnapshotStore

logger = get_logger(__name__)


@dataclass
class MergeOutcome:
    """Result of submitting one module.

    ``snapshot`` is the new active snapshot when ``merged`` is true, and the
    unchanged active snapshot (possibly ``None``) otherwise.
    """

    project_id: str
    module_id: str
    merged: bool
    snapshot: Optional[Snapshot] = None
    conflicts: list[Conflict] = field(default_factory=list)
    review_items: list[ReviewItem] = field(default_factory=list)
    dropped_edges: list[Edge] = field(default_factory=list)


class MergeService:
    """Entry point for merging modules and managing snapshot history.

    Usage::

        service = MergeService.from_config(load_config())
        outcome = service.submit("proj-1", module, author="alice")
        if not outcome.merged:
            show_review_queue(outcome.review_items)
    """

    def __init__(
        self,
        db: ArchiveDB,
        modules: Optional[ModuleRepository] = None,
        registry: Optional[SingletonRegistry] = None,
        block_on_low_confidence: bool = True,
        default_author: str = "system",
    ) -> None:
        self.db = db.initialize()
        self.snapshots = SnapshotStore(db)
        self.reviews = ReviewQueue(db)
        self.audit = AuditLog(db)
        self.modules: ModuleRepository = modules if modules is not None else ModuleStore(db)
        self.registry = registry if registry is not None else default_registry()
        self.block_on_low_confidence = block_on_low_confidence
        self.default_author = default_author

        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_config(cls, config: ArchGraphConfig) -> MergeService:
        db = ArchiveDB(config.db_path, busy_timeout=config.busy_timeout_seconds)
        return cls(
            db,
            registry=config.registry(),
            block_on_low_confidence=config.block_on_low_confidence,
            default_author=config.default_author,
        )

    # ── serialization ─────────────────────────────────────────────

    @contextmanager
    def _serialized(self, project_id: str) -> Iterator[sqlite3.Connection]:
        """Hold the project lock and a write transaction."""
        with self._locks_guard:
            lock = self._locks.setdefault(project_id, threading.Lock())
        with lock:
            with self.db.transaction() as conn:
                yield conn

    # ── merging ───────────────────────────────────────────────────

    def submit(self, project_id: str, module: Module, author: Optional[str] = None) -> MergeOutcome:
        """Detect conflicts for ``module`` and fold it in if there are none.

        Raises
        ------
        MergeError
            If the module belongs to another project or is not approved.
        """
        author = author or self.default_author
        self._check_mergeable(project_id, module)

        with self._serialized(project_id) as conn:
            active = self.snapshots.get_active(project_id, conn=conn)
            conflicts = detect(
                module,
                active.nodes if active is not None else [],
                registry=self.registry,
                flag_low_confidence=self.block_on_low_confidence,
            )
            if conflicts:
                outcome = self._block(conn, project_id, module, active, conflicts, author)
            else:
                outcome = self._fold_and_persist(
                    conn,
                    project_id,
                    module,
                    active,
                    author,
                    action=AuditAction.MODULE_MERGED,
                    reason=f"Merged module {module.name or module.id}",
                )

        if outcome.merged:
            logger.info(
                "Module %s merged into %s as v%d",
                module.id,
                project_id,
                outcome.snapshot.version,
                extra=event(
                    AuditAction.MODULE_MERGED.value, project_id, module.id, outcome.snapshot.version
                ),
            )
        else:
            logger.warning(
                "Merge of module %s into %s blocked: %s",
                module.id,
                project_id,
                ", ".join(c.type for c in conflicts),
                extra=event(AuditAction.MERGE_BLOCKED.value, project_id, module.id),
            )
        return outcome

    def merge_pending(
        self, project_id: str, modules: Iterable[Module], author: Optional[str] = None
    ) -> list[MergeOutcome]:
        """Submit a batch one module at a time in ascending ``order``.

        Each module is checked against the canonical graph as updated by the
        modules before it. Processing stops at the first blocked module so
        no later module folds in ahead of it; the returned list ends with
        that blocked outcome.
        """
        outcomes: list[MergeOutcome] = []
        for module in sorted(modules, key=lambda m: m.order):
            outcome = self.submit(project_id, module, author=author)
            outcomes.append(outcome)
            if not outcome.merged:
                logger.warning("Batch for %s halted at module %s", project_id, module.id)
                break
        return outcomes

    def rebuild(self, project_id: str, author: Optional[str] = None) -> Snapshot:
        """Fold every merged module from scratch into a new snapshot.

        Only modules that already passed the conflict gate (directly or via
        ``resolve_conflict``) are replayed, in ascending ``order`` and with the
        content that was folded at the time, so conflicts are not re-detected.
        Modules still waiting on review stay out of the canonical graph.
        """
        author = author or self.default_author

        with self._serialized(project_id) as conn:
            merged = self.modules.list_merged(project_id)
            result = fold(merged)
            previous = self.snapshots.get_active(project_id, conn=conn)
            snapshot = self.snapshots.create_snapshot(
                project_id, result.nodes, result.edges, result.module_ids, author, conn=conn
            )
            self.audit.append(
                AuditEntry(
                    project_id=project_id,
                    action=AuditAction.CANONICAL_REBUILT.value,
                    by=author,
                    reason=f"Rebuilt canonical graph from {len(merged)} merged modules",
                    metadata={
                        "from_version": previous.version if previous is not None else None,
                        "new_version": snapshot.version,
                        "modules": result.module_ids,
                        "dropped_edges": len(result.dropped_edges),
                    },
                ),
                conn=conn,
            )

        logger.info(
            "Project %s rebuilt as v%d",
            project_id,
            snapshot.version,
            extra=event(AuditAction.CANONICAL_REBUILT.value, project_id, version=snapshot.version),
        )
        return snapshot

    # ── history ───────────────────────────────────────────────────

    def active(self, project_id: str) -> Optional[Snapshot]:
        return self.snapshots.get_active(project_id)

    def get_version(self, project_id: str, version: int) -> Optional[Snapshot]:
        return self.snapshots.get_by_version(project_id, version)

    def history(self, project_id: str) -> list[Snapshot]:
        return self.snapshots.list_history(project_id)

    def diff(self, project_id: str, from_version: int, to_version: int) -> Optional[GraphDiff]:
        """Directional diff between two versions; ``None`` if either is missing."""
        return diff_versions(self.snapshots, project_id, from_version, to_version)

    def rollback(self, project_id: str, target_version: int, author: Optional[str] = None) -> Snapshot:
        """Restore ``target_version`` by copying it into a new, later version.

        History is never rewritten: the previously active snapshot stays
        retrievable by its version number.

        Raises
        ------
        SnapshotNotFoundError
            If the project has no such version.
        """
        author = author or self.default_author
        with self._serialized(project_id) as conn:
            target = self.snapshots.get_by_version(project_id, target_version, conn=conn)
            if target is None:
                raise SnapshotNotFoundError(
                    message=f"Snapshot version {target_version} not found",
                    code=ErrorCode.AG200,
                    context={"project_id": project_id, "version": target_version},
                    recovery_hint="List available versions with `archgraph history`",
                )

            current = self.snapshots.get_active(project_id, conn=conn)
            from_version = current.version if current is not None else None
            snapshot = self.snapshots.create_snapshot(
                project_id, target.nodes, target.edges, target.modules, author, conn=conn
            )
            self.audit.append(
                AuditEntry(
                    project_id=project_id,
                    action=AuditAction.SNAPSHOT_ROLLED_BACK.value,
                    by=author,
                    reason=f"Rolled back from v{from_version} to v{target_version}",
                    metadata={
                        "from_version": from_version,
                        "to_version": target_version,
                        "new_version": snapshot.version,
                    },
                ),
                conn=conn,
            )

        logger.info(
            "Project %s rolled back to v%d as v%d",
            project_id,
            target_version,
            snapshot.version,
            extra=event(AuditAction.SNAPSHOT_ROLLED_BACK.value, project_id, version=snapshot.version),
        )
        return snapshot

    # ── conflict resolution ───────────────────────────────────────

    def resolve_conflict(
        self,
        review_item_id: int,
        action: ResolutionAction,
        actor: str,
        rename_to: Optional[str] = None,
        module: Optional[Module] = None,
    ) -> MergeOutcome:
        """Apply an administrator's decision and re-submit the blocked module.

        All pending review items of the module are closed with ``action``.
        The module content comes from ``module`` or the module repository.
        The rewritten module is recorded as the merged content, so a later
        ``rebuild`` replays the decision; a discarded module is marked rejected.

        Raises
        ------
        ReviewItemNotFoundError
            If ``review_item_id`` does not exist.
        ResolutionError
            If the item is already resolved, the module cannot be found, or
            the action's parameters are invalid.
        """
        item = self.reviews.get(review_item_id)
        if item is None:
            raise ReviewItemNotFoundError(
                message=f"Review item {review_item_id} not found",
                code=ErrorCode.AG300,
                context={"review_item_id": review_item_id},
            )

        project_id = item.project_id
        with self._serialized(project_id) as conn:
            # Re-read under the write lock; a concurrent resolution may have committed.
            item = self.reviews.get(review_item_id, conn=conn)
            if item.status is ReviewStatus.RESOLVED:
                raise ResolutionError(
                    message=f"Review item {review_item_id} is already resolved",
                    code=ErrorCode.AG301,
                    context={"review_item_id": review_item_id, "resolution": item.resolution},
                )

            if module is None:
                module = self.modules.get(item.module_id)
            if module is None or module.id != item.module_id:
                raise ResolutionError(
                    message=f"Module {item.module_id} for review item {review_item_id} not found",
                    code=ErrorCode.AG303,
                    context={"review_item_id": review_item_id, "module_id": item.module_id},
                )

            pending = self.reviews.list_for_module(
                module.id, status=ReviewStatus.PENDING, conn=conn
            )
            active = self.snapshots.get_active(project_id, conn=conn)
            rewritten = apply_resolution(
                module,
                active.nodes if active is not None else [],
                [_conflict_from_item(i) for i in pending],
                action,
                rename_to=rename_to,
            )

            reason = f"Resolved {len(pending)} conflicts on module {module.id} with {action.value}"
            metadata = {
                "module_id": module.id,
                "review_items": [i.id for i in pending],
                "action": action.value,
            }
            if rename_to:
                metadata["rename_to"] = rename_to

            if rewritten is None:
                self.reviews.resolve_module(module.id, action.value, actor, conn=conn)
                self.modules.set_status(module.id, ModuleStatus.REJECTED, conn=conn)
                self.audit.append(
                    AuditEntry(
                        project_id=project_id,
                        action=AuditAction.CONFLICT_RESOLVED.value,
                        by=actor,
                        reason=reason,
                        metadata={**metadata, "merged": False},
                    ),
                    conn=conn,
                )
                outcome = MergeOutcome(
                    project_id=project_id, module_id=module.id, merged=False, snapshot=active
                )
            else:
                outcome = self._fold_and_persist(
                    conn,
                    project_id,
                    rewritten,
                    active,
                    actor,
                    action=AuditAction.CONFLICT_RESOLVED,
                    reason=reason,
                    extra_metadata={**metadata, "merged": True},
                    resolve_with=action.value,
                )

        if outcome.merged:
            logger.info(
                "Module %s resolved with %s and merged as v%d",
                module.id,
                action.value,
                outcome.snapshot.version,
                extra=event(
                    AuditAction.CONFLICT_RESOLVED.value, project_id, module.id, outcome.snapshot.version
                ),
            )
        else:
            logger.info(
                "Module %s discarded; canonical graph kept",
                module.id,
                extra=event(AuditAction.CONFLICT_RESOLVED.value, project_id, module.id),
            )
        return outcome

    # ── Private helpers ──────────────────────────────────────────

    def _check_mergeable(self, project_id: str, module: Module) -> None:
        if module.project_id != project_id:
            raise MergeError(
                message=f"Module {module.id} belongs to project {module.project_id}",
                code=ErrorCode.AG100,
                context={"project_id": project_id, "module_id": module.id},
            )
        if not module.is_approved:
            raise MergeError(
                message=f"Module {module.id} is {module.status.value}, not approved",
                code=ErrorCode.AG101,
                context={"module_id": module.id, "status": module.status.value},
                recovery_hint="Approve the module before merging it",
            )

    def _block(
        self,
        conn: sqlite3.Connection,
        project_id: str,
        module: Module,
        active: Optional[Snapshot],
        conflicts: list[Conflict],
        author: str,
    ) -> MergeOutcome:
        items = [self.reviews.create(project_id, c, conn=conn) for c in conflicts]
        self.audit.append(
            AuditEntry(
                project_id=project_id,
                action=AuditAction.MERGE_BLOCKED.value,
                by=author,
                reason=f"Module {module.name or module.id} has {len(conflicts)} conflicts",
                metadata={
                    "module_id": module.id,
                    "conflict_types": [c.type for c in conflicts],
                    "review_items": [i.id for i in items],
                    "active_version": active.version if active is not None else None,
                },
            ),
            conn=conn,
        )
        return MergeOutcome(
            project_id=project_id,
            module_id=module.id,
            merged=False,
            snapshot=active,
            conflicts=conflicts,
            review_items=items,
        )

    def _fold_and_persist(
        self,
        conn: sqlite3.Connection,
        project_id: str,
        module: Module,
        active: Optional[Snapshot],
        author: str,
        action: AuditAction,
        reason: str,
        extra_metadata: Optional[dict] = None,
        resolve_with: Optional[str] = None,
    ) -> MergeOutcome:
        if active is not None:
            acc = GraphAccumulator(active.nodes, active.edges, active.modules)
        else:
            acc = GraphAccumulator()
        acc.apply(module)
        result = acc.result()

        snapshot = self.snapshots.create_snapshot(
            project_id, result.nodes, result.edges, result.module_ids, author, conn=conn
        )
        self.modules.mark_merged(module, conn=conn)
        if resolve_with is not None:
            self.reviews.resolve_module(module.id, resolve_with, author, conn=conn)
        self.audit.append(
            AuditEntry(
                project_id=project_id,
                action=action.value,
                by=author,
                reason=reason,
                metadata={
                    "module_id": module.id,
                    "from_version": active.version if active is not None else None,
                    "new_version": snapshot.version,
                    "dropped_edges": [list(e.key) for e in result.dropped_edges],
                    **(extra_metadata or {}),
                },
            ),
            conn=conn,
        )
        return MergeOutcome(
            project_id=project_id,
            module_id=module.id,
            merged=True,
            snapshot=snapshot,
            dropped_edges=result.dropped_edges,
        )


def _conflict_from_item(item: ReviewItem) -> Conflict:
    return Conflict(
        type=item.type,
        module_id=item.module_id,
        message=item.message,
        node_id=item.node_id,
        details=dict(item.details),
    )
