"""Tests for rewriting blocked modules according to a resolution action."""

import pytest

from archgraph.exceptions import ErrorCode, ResolutionError
from archgraph.graph.models import Confidence, Edge, Node
from archgraph.merge.conflicts import detect
from archgraph.merge.resolution import ResolutionAction, apply_resolution, conflicting_node_ids


@pytest.fixture
def canonical():
    return [Node("store", "cache", label="Store", meta={"ttl": 60})]


@pytest.fixture
def blocked(make_module):
    module = make_module(
        "m2",
        nodes=[("store", "database", {"engine": "postgres"}), ("api", "service")],
        edges=[("api", "store")],
    )
    return module


class TestConflictingNodeIds:
    def test_collects_node_and_plurality_ids(self, make_module):
        canonical = [Node("db", "database", meta={"engine": "pg"}), Node("x", "cache")]
        module = make_module("m", nodes=[("x", "service"), ("db2", "database", {"engine": "mysql"})])
        assert conflicting_node_ids(detect(module, canonical)) == ["x", "db2"]


class TestApplyIncoming:
    def test_promotes_confidence(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        result = apply_resolution(blocked, canonical, conflicts, ResolutionAction.APPLY_INCOMING)
        assert result.confidence is Confidence.HIGH
        assert [n.id for n in result.nodes] == ["store", "api"]
        assert blocked.confidence is Confidence.MEDIUM


class TestKeepCanonical:
    def test_drops_conflicting_nodes(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        result = apply_resolution(blocked, canonical, conflicts, ResolutionAction.KEEP_CANONICAL)
        assert [n.id for n in result.nodes] == ["api"]
        assert [e.key for e in result.edges] == [("api", "store")]

    def test_module_level_conflict_discards_module(self, make_module):
        module = make_module("m1", nodes=[("api", "service")], confidence=Confidence.LOW)
        conflicts = detect(module, [])
        assert apply_resolution(module, [], conflicts, ResolutionAction.KEEP_CANONICAL) is None


class TestMergeMeta:
    def test_keeps_canonical_type_and_label(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        result = apply_resolution(blocked, canonical, conflicts, ResolutionAction.MERGE_META)
        store = next(n for n in result.nodes if n.id == "store")
        assert store.type == "cache"
        assert store.label == "Store"
        assert store.meta == {"engine": "postgres"}
        assert result.confidence is Confidence.HIGH


class TestRenameAndKeepBoth:
    def test_renames_node_and_edges(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        result = apply_resolution(
            blocked, canonical, conflicts, ResolutionAction.RENAME_AND_KEEP_BOTH, rename_to="store-db"
        )
        assert [n.id for n in result.nodes] == ["store-db", "api"]
        assert result.edges == [Edge("api", "store-db")]
        assert detect(result, canonical) == []

    def test_requires_rename_to(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        with pytest.raises(ResolutionError) as exc:
            apply_resolution(blocked, canonical, conflicts, ResolutionAction.RENAME_AND_KEEP_BOTH)
        assert exc.value.code is ErrorCode.AG302

    def test_rejects_taken_id(self, blocked, canonical):
        conflicts = detect(blocked, canonical)
        with pytest.raises(ResolutionError):
            apply_resolution(
                blocked, canonical, conflicts, ResolutionAction.RENAME_AND_KEEP_BOTH, rename_to="api"
            )

    def test_needs_same_id_conflict(self, make_module):
        module = make_module("m1", nodes=[("api", "service")], confidence=Confidence.LOW)
        conflicts = detect(module, [])
        with pytest.raises(ResolutionError) as exc:
            apply_resolution(module, [], conflicts, ResolutionAction.RENAME_AND_KEEP_BOTH, rename_to="x")
        assert exc.value.code is ErrorCode.AG302
