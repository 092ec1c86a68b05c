"""Conflict detection between an incoming module and the canonical graph.

Detection runs before the reducer folds a module in and compares the module
only against the currently active canonical node set. Checks:

  node_type_mismatch   same node id, different ``type``
  <singleton rule>     a singleton-by-type node (database, gateway, ...)
                       disagrees on its identifying attribute, either on the
                       same node id or across distinct node ids
  low_confidence       the module itself is low confidence

Singleton types live in a ``SingletonRegistry`` so new rules are declared,
not hardcoded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from ..graph.models import Confidence, Module, Node


class ConflictType(Enum):
    """Built-in conflict types. Registry rules may add more."""

    NODE_TYPE_MISMATCH = "node_type_mismatch"
    DATABASE_PLURALITY = "database_plurality"
    GATEWAY_PLURALITY = "gateway_plurality"
    LOW_CONFIDENCE = "low_confidence"


@dataclass
class Conflict:
    """One reason an incoming module cannot be folded in automatically."""

    type: str
    module_id: str
    message: str
    node_id: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SingletonRule:
    """A node type a project should hold one identity of.

    Two nodes of ``node_type`` are incompatible when both carry
    ``meta[attribute]`` and the values differ.
    """

    node_type: str
    attribute: str
    conflict_type: str


class SingletonRegistry:
    """Declarable set of singleton-by-type rules, keyed by node type."""

    def __init__(self, rules: Optional[Iterable[SingletonRule]] = None) -> None:
        self._rules: dict[str, SingletonRule] = {}
        for rule in rules or ():
            self._rules[rule.node_type] = rule

    def register(self, node_type: str, attribute: str, conflict_type: Optional[str] = None) -> SingletonRule:
        """Add or replace the rule for ``node_type``."""
        rule = SingletonRule(
            node_type=node_type,
            attribute=attribute,
            conflict_type=conflict_type or f"{node_type}_plurality",
        )
        self._rules[node_type] = rule
        return rule

    def unregister(self, node_type: str) -> None:
        self._rules.pop(node_type, None)

    def rule_for(self, node_type: str) -> Optional[SingletonRule]:
        return self._rules.get(node_type)

    def rules(self) -> list[SingletonRule]:
        return list(self._rules.values())

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping[str, str]]) -> SingletonRegistry:
        """Build from ``{node_type: {"attribute": ..., "conflict_type": ...}}``."""
        registry = cls()
        for node_type, rule in mapping.items():
            registry.register(node_type, rule["attribute"], rule.get("conflict_type"))
        return registry


def default_registry() -> SingletonRegistry:
    """Database engines and API gateway providers are singletons by default."""
    return SingletonRegistry(
        [
            SingletonRule("database", "engine", ConflictType.DATABASE_PLURALITY.value),
            SingletonRule("gateway", "provider", ConflictType.GATEWAY_PLURALITY.value),
        ]
    )


def detect(
    incoming: Module,
    canonical_nodes: Iterable[Node],
    registry: Optional[SingletonRegistry] = None,
    flag_low_confidence: bool = True,
) -> list[Conflict]:
    """Return every conflict ``incoming`` has with the canonical node set.

    An empty list means the module can be folded in automatically.
    """
    if registry is None:
        registry = default_registry()

    canonical = {n.id: n for n in canonical_nodes}
    conflicts: list[Conflict] = []

    # Same-id disagreements.
    for node in incoming.nodes:
        existing = canonical.get(node.id)
        if existing is None:
            continue

        if existing.type != node.type:
            conflicts.append(
                Conflict(
                    type=ConflictType.NODE_TYPE_MISMATCH.value,
                    module_id=incoming.id,
                    node_id=node.id,
                    message=(
                        f'Node "{node.id}" has conflicting types: '
                        f"{existing.type} vs {node.type}"
                    ),
                    details={
                        "canonical": {"type": existing.type, "meta": dict(existing.meta)},
                        "incoming": {"type": node.type, "meta": dict(node.meta)},
                    },
                )
            )

        rule = registry.rule_for(node.type) or registry.rule_for(existing.type)
        if rule is None:
            continue
        old_value = existing.meta.get(rule.attribute)
        new_value = node.meta.get(rule.attribute)
        if old_value is None or new_value is None:
            continue
        if _identity(old_value) != _identity(new_value):
            conflicts.append(
                Conflict(
                    type=rule.conflict_type,
                    module_id=incoming.id,
                    node_id=node.id,
                    message=(
                        f'Node "{node.id}" has conflicting {rule.attribute}: '
                        f"{old_value} vs {new_value}"
                    ),
                    details={
                        "scope": "node",
                        "attribute": rule.attribute,
                        "canonical": old_value,
                        "incoming": new_value,
                    },
                )
            )

    # Distinct nodes of a singleton type that disagree.
    for rule in registry.rules():
        conflict = _check_plurality(rule, incoming, canonical)
        if conflict is not None:
            conflicts.append(conflict)

    if flag_low_confidence and incoming.confidence is Confidence.LOW:
        label = incoming.name or incoming.id
        conflicts.append(
            Conflict(
                type=ConflictType.LOW_CONFIDENCE.value,
                module_id=incoming.id,
                message=f'Module "{label}" generated with low confidence - requires review',
                details={"confidence": incoming.confidence.value},
            )
        )

    return conflicts


# ── Private helpers ──────────────────────────────────────────────────


def _identity(value: Any) -> str:
    """Comparable form of an identifying attribute value."""
    if isinstance(value, str):
        return value.strip().lower()
    return json.dumps(value, sort_keys=True, default=str)


def _check_plurality(
    rule: SingletonRule, incoming: Module, canonical: dict[str, Node]
) -> Optional[Conflict]:
    values: dict[str, Any] = {}
    for node in canonical.values():
        if node.type == rule.node_type and node.meta.get(rule.attribute) is not None:
            values[node.id] = node.meta[rule.attribute]

    contributed: list[str] = []
    for node in incoming.nodes:
        if node.type != rule.node_type or node.meta.get(rule.attribute) is None:
            continue
        existing = canonical.get(node.id)
        if existing is not None and existing.meta.get(rule.attribute) is not None:
            # Same-id disagreement is reported by the per-node check.
            continue
        # New node, or a canonical node that gains the attribute from this module.
        values[node.id] = node.meta[rule.attribute]
        contributed.append(node.id)

    if not contributed:
        return None

    distinct = {_identity(v) for v in values.values()}
    if len(distinct) <= 1:
        return None

    by_value = {node_id: values[node_id] for node_id in sorted(values)}
    return Conflict(
        type=rule.conflict_type,
        module_id=incoming.id,
        node_id=contributed[0],
        message=(
            f"More than one {rule.node_type} {rule.attribute} in the architecture: "
            + ", ".join(f"{nid}={val}" for nid, val in by_value.items())
        ),
        details={
            "scope": "plurality",
            "attribute": rule.attribute,
            "values": by_value,
            "incoming_node_ids": contributed,
        },
    )
