"""Error taxonomy with error codes and recovery hints.

Error Code Convention:
    AG1xx - Merge errors
    AG2xx - Snapshot store errors
    AG3xx - Conflict resolution errors

Conflicts found by the detector are not errors: they come back as part of a
normal merge outcome. Only caller mistakes (not-found) and storage-layer
defects (integrity violations) are raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Structured error codes for logging and API mapping."""

    # Merge errors (AG1xx)
    AG100 = "AG100"  # Module belongs to a different project
    AG101 = "AG101"  # Module is not in a mergeable status
    AG102 = "AG102"  # Merged module content is immutable

    # Snapshot store errors (AG2xx)
    AG200 = "AG200"  # Snapshot version not found
    AG201 = "AG201"  # Duplicate version for project
    AG202 = "AG202"  # More than one active snapshot
    AG203 = "AG203"  # Version sequence has gaps
    AG204 = "AG204"  # SQLite write failed
    AG205 = "AG205"  # Duplicate node id or edge key inside one snapshot

    # Resolution errors (AG3xx)
    AG300 = "AG300"  # Review item not found
    AG301 = "AG301"  # Unsupported action, or review item already resolved
    AG302 = "AG302"  # Rename target missing or already taken
    AG303 = "AG303"  # Module for review item not found


@dataclass
class ArchGraphFailure(Exception):
    """Base exception with structured context.

    Attributes:
        message: Human-readable error description
        code: Structured error code for categorization
        context: Additional context (project id, version, module id)
        recoverable: Whether the caller can recover (fix input and retry)
        recovery_hint: Suggested fix for the caller
    """

    message: str
    code: ErrorCode
    context: dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True
    recovery_hint: str | None = None

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def to_json(self) -> dict[str, Any]:
        """Structured logging format."""
        return {
            "error_code": self.code.value,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable,
            "recovery_hint": self.recovery_hint,
        }


class MergeError(ArchGraphFailure):
    """Errors while submitting a module for merge (AG1xx)."""

    pass


class PersistenceError(ArchGraphFailure):
    """Errors in the snapshot store (AG2xx)."""

    pass


class SnapshotNotFoundError(PersistenceError):
    """Requested snapshot version does not exist for the project (AG200)."""

    pass


class IntegrityViolationError(PersistenceError):
    """Version/active invariants broken. Always a storage or locking defect."""

    pass


class ResolutionError(ArchGraphFailure):
    """Errors while resolving a review item (AG3xx)."""

    pass


class ReviewItemNotFoundError(ResolutionError):
    """Review item id does not exist (AG300)."""

    pass
