"""Resolution actions an administrator can pick for a blocked module.

Each action rewrites the module so that re-submitting it folds the way the
administrator chose. Re-submission skips conflict detection; the decision has
already been made by a person.
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Iterable, Optional

from ..exceptions import ErrorCode, ResolutionError
from ..graph.models import Confidence, Edge, Module, Node
from .conflicts import Conflict


class ResolutionAction(Enum):
    APPLY_INCOMING = "apply_incoming"
    KEEP_CANONICAL = "keep_canonical"
    MERGE_META = "merge_meta"
    RENAME_AND_KEEP_BOTH = "rename_and_keep_both"


def conflicting_node_ids(conflicts: Iterable[Conflict]) -> list[str]:
    """Incoming node ids named by node-level or plurality conflicts."""
    ids: list[str] = []
    for conflict in conflicts:
        candidates = [conflict.node_id] if conflict.node_id else []
        candidates.extend(conflict.details.get("incoming_node_ids", []))
        for node_id in candidates:
            if node_id not in ids:
                ids.append(node_id)
    return ids


def apply_resolution(
    module: Module,
    canonical_nodes: Iterable[Node],
    conflicts: list[Conflict],
    action: ResolutionAction,
    rename_to: Optional[str] = None,
) -> Optional[Module]:
    """Rewrite ``module`` according to ``action``.

    Returns the module to fold, or ``None`` when nothing from it should be
    merged (keeping the canonical graph over a module-level conflict).

    Raises
    ------
    ResolutionError
        If ``rename_and_keep_both`` has no usable ``rename_to``.
    """
    canonical = {n.id: n for n in canonical_nodes}
    targets = conflicting_node_ids(conflicts)

    if action is ResolutionAction.APPLY_INCOMING:
        return dataclasses.replace(module, confidence=Confidence.HIGH)

    if action is ResolutionAction.KEEP_CANONICAL:
        if any(c.node_id is None and not c.details.get("incoming_node_ids") for c in conflicts):
            return None
        kept = [n.copy() for n in module.nodes if n.id not in targets]
        return dataclasses.replace(module, nodes=kept, edges=[e.copy() for e in module.edges])

    if action is ResolutionAction.MERGE_META:
        nodes: list[Node] = []
        for node in module.nodes:
            existing = canonical.get(node.id)
            if node.id in targets and existing is not None:
                nodes.append(
                    Node(id=node.id, type=existing.type, label=existing.label, meta=dict(node.meta))
                )
            else:
                nodes.append(node.copy())
        return dataclasses.replace(
            module,
            nodes=nodes,
            edges=[e.copy() for e in module.edges],
            confidence=Confidence.HIGH,
        )

    if action is ResolutionAction.RENAME_AND_KEEP_BOTH:
        return _rename(module, canonical, targets, rename_to)

    raise ResolutionError(
        message=f"Unsupported resolution action: {action}",
        code=ErrorCode.AG301,
        context={"action": str(action)},
    )


def _rename(
    module: Module, canonical: dict[str, Node], targets: list[str], rename_to: Optional[str]
) -> Module:
    same_id = [t for t in targets if t in canonical]
    if not same_id:
        raise ResolutionError(
            message="No conflicting node id to rename",
            code=ErrorCode.AG302,
            context={"module_id": module.id},
            recovery_hint="Use apply_incoming or keep_canonical for module-level conflicts",
        )
    if not rename_to:
        raise ResolutionError(
            message="rename_to is required for rename_and_keep_both",
            code=ErrorCode.AG302,
            context={"module_id": module.id},
        )
    taken = set(canonical) | {n.id for n in module.nodes}
    if rename_to in taken:
        raise ResolutionError(
            message=f"Node id {rename_to!r} is already in use",
            code=ErrorCode.AG302,
            context={"module_id": module.id, "rename_to": rename_to},
        )

    old_id = same_id[0]

    def _swap(node_id: str) -> str:
        return rename_to if node_id == old_id else node_id

    nodes = [dataclasses.replace(n.copy(), id=_swap(n.id)) for n in module.nodes]
    edges = [
        Edge(source=_swap(e.source), target=_swap(e.target), label=e.label, meta=dict(e.meta))
        for e in module.edges
    ]
    return dataclasses.replace(module, nodes=nodes, edges=edges)
