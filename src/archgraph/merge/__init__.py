"""Merge layer: reducer, conflict detection and resolution."""

from .conflicts import (
    Conflict,
    ConflictType,
    SingletonRegistry,
    SingletonRule,
    default_registry,
    detect,
)
from .reducer import FoldResult, GraphAccumulator, fold
from .resolution import ResolutionAction, apply_resolution

__all__ = [
    "Conflict",
    "ConflictType",
    "FoldResult",
    "GraphAccumulator",
    "ResolutionAction",
    "SingletonRegistry",
    "SingletonRule",
    "apply_resolution",
    "default_registry",
    "detect",
    "fold",
]
