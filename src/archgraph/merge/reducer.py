"""Merge reducer: folds ordered, approved modules into one canonical graph.

Rules (applied per module, in the order the caller supplies):
  - Nodes are deduplicated by ``id``. The first occurrence seeds the entry.
    A later high-confidence occurrence overwrites ``type`` and ``label`` and
    its ``meta`` keys win on collision. A later medium/low-confidence
    occurrence only contributes ``meta`` keys the canonical node lacks.
  - Edges are deduplicated by ``(from, to)``. Later occurrences union their
    ``meta`` into the existing edge (incoming wins) and only fill ``label``
    when the existing edge has none.
  - Edges whose endpoints are not known node ids are dropped.

``meta`` merges are always shallow. The reducer never sorts its input and
never reads the clock, so the same ordered input yields the same output.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..graph.models import Confidence, Edge, EdgeKey, Module, Node
from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class FoldResult:
    """Canonical content produced by a fold, in first-seen order."""

    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    module_ids: list[str] = field(default_factory=list)
    dropped_edges: list[Edge] = field(default_factory=list)


class GraphAccumulator:
    """Mutable canonical graph that modules are folded into one at a time.

    Usage::

        acc = GraphAccumulator(active.nodes, active.edges, active.modules)
        acc.apply(module)
        result = acc.result()
    """

    def __init__(
        self,
        nodes: Optional[Iterable[Node]] = None,
        edges: Optional[Iterable[Edge]] = None,
        module_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[EdgeKey, Edge] = {}
        self._module_ids: list[str] = []
        self._dropped: list[Edge] = []

        for node in nodes or ():
            self._nodes[node.id] = node.copy()
        for edge in edges or ():
            self._edges[edge.key] = edge.copy()
        for module_id in module_ids or ():
            if module_id not in self._module_ids:
                self._module_ids.append(module_id)

    # ── folding ───────────────────────────────────────────────────

    def apply(self, module: Module) -> None:
        """Fold one module into the accumulated graph."""
        high = module.confidence is Confidence.HIGH

        for node in module.nodes:
            existing = self._nodes.get(node.id)
            if existing is None:
                self._nodes[node.id] = node.copy()
            else:
                self._nodes[node.id] = _merge_node(existing, node, high)

        for edge in module.edges:
            if edge.source not in self._nodes or edge.target not in self._nodes:
                logger.debug(
                    "Dropping edge %s -> %s from module %s: unknown endpoint",
                    edge.source,
                    edge.target,
                    module.id,
                )
                self._dropped.append(edge.copy())
                continue

            existing_edge = self._edges.get(edge.key)
            if existing_edge is None:
                self._edges[edge.key] = edge.copy()
            else:
                self._edges[edge.key] = _merge_edge(existing_edge, edge)

        if module.id not in self._module_ids:
            self._module_ids.append(module.id)

    def apply_all(self, modules: Iterable[Module]) -> None:
        for module in modules:
            self.apply(module)

    # ── views ─────────────────────────────────────────────────────

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def result(self) -> FoldResult:
        """Snapshot the accumulated state (deep copies)."""
        return FoldResult(
            nodes=[n.copy() for n in self._nodes.values()],
            edges=[e.copy() for e in self._edges.values()],
            module_ids=list(self._module_ids),
            dropped_edges=[e.copy() for e in self._dropped],
        )


def fold(ordered_modules: Iterable[Module]) -> FoldResult:
    """Fold modules, already sorted by ascending ``order``, from an empty graph."""
    acc = GraphAccumulator()
    acc.apply_all(ordered_modules)
    return acc.result()


# ── Private helpers ──────────────────────────────────────────────────


def _merge_node(existing: Node, incoming: Node, high_confidence: bool) -> Node:
    if high_confidence:
        return Node(
            id=existing.id,
            type=incoming.type or existing.type,
            label=incoming.label or existing.label,
            meta={**copy.deepcopy(existing.meta), **copy.deepcopy(incoming.meta)},
        )
    # Canonical values win; only keys the canonical node lacks are added.
    return Node(
        id=existing.id,
        type=existing.type,
        label=existing.label,
        meta={**copy.deepcopy(incoming.meta), **copy.deepcopy(existing.meta)},
    )


def _merge_edge(existing: Edge, incoming: Edge) -> Edge:
    return Edge(
        source=existing.source,
        target=existing.target,
        label=existing.label if existing.label else incoming.label,
        meta={**copy.deepcopy(existing.meta), **copy.deepcopy(incoming.meta)},
    )
