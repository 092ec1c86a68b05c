"""Exception hierarchy for archgraph."""

from .base import ArchGraphError
from .config import ConfigurationError, InvalidConfigError
from .taxonomy import (
    ArchGraphFailure,
    ErrorCode,
    IntegrityViolationError,
    MergeError,
    PersistenceError,
    ResolutionError,
    ReviewItemNotFoundError,
    SnapshotNotFoundError,
)

__all__ = [
    "ArchGraphError",
    "ConfigurationError",
    "InvalidConfigError",
    "ArchGraphFailure",
    "ErrorCode",
    "MergeError",
    "PersistenceError",
    "SnapshotNotFoundError",
    "IntegrityViolationError",
    "ResolutionError",
    "ReviewItemNotFoundError",
]
