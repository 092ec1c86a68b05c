"""Graph model: nodes, edges and modules."""

from .models import Confidence, Edge, EdgeKey, Module, ModuleStatus, Node, edges_by_key, nodes_by_id

__all__ = [
    "Confidence",
    "Edge",
    "EdgeKey",
    "Module",
    "ModuleStatus",
    "Node",
    "edges_by_key",
    "nodes_by_id",
]
