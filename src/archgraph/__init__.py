"""
archgraph - Module merge and snapshot versioning for architecture diagrams

Folds approved architecture modules (small node/edge subgraphs) into one
canonical graph, flags conflicting modules for review, and keeps every merge
as an immutable, versioned snapshot that can be diffed and rolled back.
"""

__version__ = "0.3.0"

from .diff import GraphDiff, diff_snapshots
from .graph.models import Confidence, Edge, Module, ModuleStatus, Node
from .merge.conflicts import Conflict, ConflictType, SingletonRegistry, detect
from .merge.reducer import FoldResult, GraphAccumulator, fold
from .persistence.models import AuditEntry, ReviewItem, Snapshot
from .service import MergeOutcome, MergeService

__all__ = [
    "MergeService",  # Main entry point
    "MergeOutcome",
    "Node",
    "Edge",
    "Module",
    "ModuleStatus",
    "Confidence",
    "Snapshot",
    "ReviewItem",
    "AuditEntry",
    "fold",
    "FoldResult",
    "GraphAccumulator",
    "detect",
    "Conflict",
    "ConflictType",
    "SingletonRegistry",
    "GraphDiff",
    "diff_snapshots",
]
