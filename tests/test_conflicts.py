"""Tests for conflict detection and the singleton registry."""

import pytest

from archgraph.graph.models import Confidence, Node
from archgraph.merge.conflicts import (
    ConflictType,
    SingletonRegistry,
    SingletonRule,
    default_registry,
    detect,
)


class TestSingletonRegistry:
    def test_defaults(self):
        registry = default_registry()
        assert "database" in registry
        assert "gateway" in registry
        assert registry.rule_for("database").attribute == "engine"
        assert registry.rule_for("gateway").conflict_type == "gateway_plurality"

    def test_register_default_conflict_type(self):
        registry = SingletonRegistry()
        rule = registry.register("queue", "broker")
        assert rule == SingletonRule("queue", "broker", "queue_plurality")
        assert len(registry) == 1

    def test_register_replaces(self):
        registry = default_registry()
        registry.register("database", "vendor", "db_vendor_clash")
        assert registry.rule_for("database").attribute == "vendor"
        assert len(registry) == 2

    def test_unregister(self):
        registry = default_registry()
        registry.unregister("gateway")
        registry.unregister("not-there")
        assert "gateway" not in registry
        assert registry.rule_for("gateway") is None

    def test_from_mapping(self):
        registry = SingletonRegistry.from_mapping(
            {"queue": {"attribute": "broker"}, "cdn": {"attribute": "vendor", "conflict_type": "cdn_clash"}}
        )
        assert registry.rule_for("queue").conflict_type == "queue_plurality"
        assert registry.rule_for("cdn").conflict_type == "cdn_clash"


class TestNodeTypeMismatch:
    def test_same_id_different_type(self, make_module):
        canonical = [Node("store", "cache")]
        module = make_module("m2", nodes=[("store", "database")])
        conflicts = detect(module, canonical)
        assert [c.type for c in conflicts] == [ConflictType.NODE_TYPE_MISMATCH.value]
        assert conflicts[0].node_id == "store"
        assert conflicts[0].module_id == "m2"
        assert "cache vs database" in conflicts[0].message

    def test_same_type_no_conflict(self, make_module):
        canonical = [Node("api", "service", meta={"lang": "go"})]
        module = make_module("m2", nodes=[("api", "service", {"lang": "rust"})])
        assert detect(module, canonical) == []

    def test_empty_canonical(self, make_module):
        module = make_module("m1", nodes=[("db", "database", {"engine": "postgres"})])
        assert detect(module, []) == []


class TestSingletonConflicts:
    def test_same_id_engine_mismatch(self, make_module):
        canonical = [Node("db", "database", meta={"engine": "postgres"})]
        module = make_module("m2", nodes=[("db", "database", {"engine": "mysql"})])
        (conflict,) = detect(module, canonical)
        assert conflict.type == "database_plurality"
        assert conflict.node_id == "db"
        assert conflict.details["scope"] == "node"
        assert conflict.details["canonical"] == "postgres"
        assert conflict.details["incoming"] == "mysql"

    def test_engine_compare_ignores_case_and_whitespace(self, make_module):
        canonical = [Node("db", "database", meta={"engine": "PostgreSQL"})]
        module = make_module("m2", nodes=[("db", "database", {"engine": " postgresql "})])
        assert detect(module, canonical) == []

    def test_missing_attribute_is_not_a_conflict(self, make_module):
        canonical = [Node("db", "database")]
        module = make_module("m2", nodes=[("db", "database", {"engine": "mysql"})])
        assert detect(module, canonical) == []

    def test_filling_in_engine_clashes_with_other_database(self, make_module):
        canonical = [
            Node("db1", "database"),
            Node("db2", "database", meta={"engine": "postgres"}),
        ]
        module = make_module("m2", nodes=[("db1", "database", {"engine": "mongodb"})])
        (conflict,) = detect(module, canonical)
        assert conflict.type == "database_plurality"
        assert conflict.node_id == "db1"
        assert conflict.details["scope"] == "plurality"
        assert conflict.details["incoming_node_ids"] == ["db1"]
        assert conflict.details["values"] == {"db1": "mongodb", "db2": "postgres"}

    def test_filling_in_matching_engine_ok(self, make_module):
        canonical = [
            Node("db1", "database"),
            Node("db2", "database", meta={"engine": "postgres"}),
        ]
        module = make_module("m2", nodes=[("db1", "database", {"engine": "Postgres"})])
        assert detect(module, canonical) == []

    def test_second_database_with_other_engine(self, make_module):
        canonical = [Node("db-main", "database", meta={"engine": "postgres"})]
        module = make_module("m2", nodes=[("db-analytics", "database", {"engine": "mysql"})])
        (conflict,) = detect(module, canonical)
        assert conflict.type == "database_plurality"
        assert conflict.details["scope"] == "plurality"
        assert conflict.details["incoming_node_ids"] == ["db-analytics"]
        assert conflict.details["values"] == {"db-analytics": "mysql", "db-main": "postgres"}

    def test_second_database_same_engine_ok(self, make_module):
        canonical = [Node("db-main", "database", meta={"engine": "postgres"})]
        module = make_module("m2", nodes=[("db-replica", "database", {"engine": "postgres"})])
        assert detect(module, canonical) == []

    def test_existing_plurality_not_reflagged(self, make_module):
        canonical = [
            Node("db-a", "database", meta={"engine": "postgres"}),
            Node("db-b", "database", meta={"engine": "mysql"}),
        ]
        module = make_module("m3", nodes=[("api", "service")])
        assert detect(module, canonical) == []

    def test_gateway_provider_clash(self, make_module):
        canonical = [Node("gw", "gateway", meta={"provider": "kong"})]
        module = make_module("m2", nodes=[("edge-gw", "gateway", {"provider": "apigee"})])
        (conflict,) = detect(module, canonical)
        assert conflict.type == "gateway_plurality"

    def test_custom_rule(self, make_module):
        registry = SingletonRegistry()
        registry.register("queue", "broker")
        canonical = [Node("q1", "queue", meta={"broker": "kafka"})]
        module = make_module("m2", nodes=[("q2", "queue", {"broker": "rabbitmq"})])
        (conflict,) = detect(module, canonical, registry=registry)
        assert conflict.type == "queue_plurality"

    def test_empty_registry_disables_singletons(self, make_module):
        canonical = [Node("db-main", "database", meta={"engine": "postgres"})]
        module = make_module("m2", nodes=[("db-2", "database", {"engine": "mysql"})])
        assert detect(module, canonical, registry=SingletonRegistry()) == []


class TestLowConfidence:
    def test_low_confidence_flagged(self, make_module):
        module = make_module("m1", nodes=[("api", "service")], confidence=Confidence.LOW)
        (conflict,) = detect(module, [])
        assert conflict.type == ConflictType.LOW_CONFIDENCE.value
        assert conflict.node_id is None
        assert "requires review" in conflict.message

    def test_flag_can_be_disabled(self, make_module):
        module = make_module("m1", nodes=[("api", "service")], confidence=Confidence.LOW)
        assert detect(module, [], flag_low_confidence=False) == []

    @pytest.mark.parametrize("confidence", [Confidence.HIGH, Confidence.MEDIUM])
    def test_other_confidences_not_flagged(self, make_module, confidence):
        module = make_module("m1", nodes=[("api", "service")], confidence=confidence)
        assert detect(module, []) == []


class TestCombined:
    def test_all_conflicts_reported(self, make_module):
        canonical = [Node("store", "cache"), Node("db", "database", meta={"engine": "postgres"})]
        module = make_module(
            "m9",
            nodes=[("store", "database"), ("db2", "database", {"engine": "oracle"})],
            confidence=Confidence.LOW,
        )
        types = [c.type for c in detect(module, canonical)]
        assert types == ["node_type_mismatch", "database_plurality", "low_confidence"]
