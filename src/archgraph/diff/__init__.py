"""Diff layer: membership diffs between snapshot versions."""

from .engine import diff_snapshots, diff_versions
from .models import GraphDiff

__all__ = [
    "GraphDiff",
    "diff_snapshots",
    "diff_versions",
]
