"""Persistence layer: SQLite archive of snapshots, modules, review items and audit entries."""

from .audit import AuditLog
from .database import ArchiveDB
from .models import AuditAction, AuditEntry, ReviewItem, ReviewStatus, Snapshot
from .modules import ModuleStore
from .review import ReviewQueue
from .store import SnapshotStore

__all__ = [
    "ArchiveDB",
    "AuditAction",
    "AuditEntry",
    "AuditLog",
    "ModuleStore",
    "ReviewItem",
    "ReviewQueue",
    "ReviewStatus",
    "Snapshot",
    "SnapshotStore",
]
