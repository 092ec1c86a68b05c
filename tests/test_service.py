"""End-to-end tests for MergeService: merge, block, rollback, diff, resolve."""

import threading

import pytest

from archgraph.exceptions import (
    ErrorCode,
    MergeError,
    ResolutionError,
    ReviewItemNotFoundError,
    SnapshotNotFoundError,
)
from archgraph.graph.models import Confidence, ModuleStatus, Node
from archgraph.merge.conflicts import SingletonRegistry
from archgraph.merge.resolution import ResolutionAction
from archgraph.persistence import AuditAction, ModuleStore, ReviewStatus
from archgraph.service import MergeService


class TestEndToEnd:
    def test_three_module_scenario(self, service, make_module):
        m1 = make_module(
            "m1",
            nodes=[("mobile_app", "client"), ("api_gateway", "gateway")],
            edges=[("mobile_app", "api_gateway")],
            order=1,
        )
        m2 = make_module(
            "m2",
            nodes=[("api_gateway", "gateway"), ("order_service", "service"), ("database", "database")],
            edges=[("api_gateway", "order_service"), ("order_service", "database")],
            order=2,
        )
        m4 = make_module("m4", edges=[("mobile_app", "api_gateway")], order=4)

        v1 = service.submit("proj-1", m1, author="alice").snapshot
        assert (v1.version, len(v1.nodes), len(v1.edges)) == (1, 2, 1)

        v2 = service.submit("proj-1", m2, author="alice").snapshot
        assert (v2.version, len(v2.nodes), len(v2.edges)) == (2, 4, 3)

        v3 = service.submit("proj-1", m4, author="alice").snapshot
        assert v3.version == 3
        assert len(v3.edges) == 3
        assert v3.modules == ["m1", "m2", "m4"]

    def test_same_module_twice_is_idempotent_on_nodes(self, service, make_module):
        module = make_module("m1", nodes=[("a", "service"), ("b", "service")], edges=[("a", "b")])
        first = service.submit("proj-1", module).snapshot
        second = service.submit("proj-1", module).snapshot
        assert len(second.nodes) == len(first.nodes)
        assert len(second.edges) == len(first.edges)
        assert second.version == 2

    def test_edge_key_dedup(self, service, make_module):
        nodes = [("x", "service"), ("y", "service")]
        a = make_module("a", nodes=nodes, edges=[("x", "y")])
        a.edges[0].label = "HTTPS"
        b = make_module("b", edges=[("x", "y")])
        b.edges[0].label = "dup"
        service.submit("proj-1", a)
        snap = service.submit("proj-1", b).snapshot
        assert [(e.key, e.label) for e in snap.edges] == [(("x", "y"), "HTTPS")]


class TestConfidencePrecedence:
    @pytest.fixture
    def seeded(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("db", "database", {"engine": "postgres"})]))
        return service

    def test_medium_keeps_canonical_engine(self, seeded, make_module):
        module = make_module("m2", nodes=[("db", "database", {"replicas": 2})])
        snap = seeded.submit("proj-1", module).snapshot
        (db,) = snap.nodes
        assert db.meta == {"engine": "postgres", "replicas": 2}

    def test_engine_change_is_blocked_by_default(self, seeded, make_module):
        module = make_module("m2", nodes=[("db", "database", {"engine": "mongodb"})], confidence=Confidence.HIGH)
        outcome = seeded.submit("proj-1", module)
        assert not outcome.merged
        assert [c.type for c in outcome.conflicts] == ["database_plurality"]


class TestConfidenceWithoutRules:
    @pytest.fixture
    def bare(self, db, make_module):
        svc = MergeService(db, registry=SingletonRegistry())
        svc.submit("proj-1", make_module("m1", nodes=[("db", "database", {"engine": "postgres"})]))
        return svc

    def test_high_confidence_overwrites_engine(self, bare, make_module):
        module = make_module("m2", nodes=[("db", "database", {"engine": "mongodb"})], confidence=Confidence.HIGH)
        (db,) = bare.submit("proj-1", module).snapshot.nodes
        assert db.meta["engine"] == "mongodb"

    def test_medium_keeps_engine_adds_keys(self, bare, make_module):
        module = make_module("m2", nodes=[("db", "database", {"engine": "mongodb", "ha": True})])
        (db,) = bare.submit("proj-1", module).snapshot.nodes
        assert db.meta == {"engine": "postgres", "ha": True}


class TestVersioning:
    def test_versions_consecutive_one_active(self, service, make_module):
        for i in range(5):
            service.submit("proj-1", make_module(f"m{i}", nodes=[(f"n{i}", "service")], order=i))
        history = service.history("proj-1")
        assert sorted(s.version for s in history) == [1, 2, 3, 4, 5]
        assert [s.version for s in history if s.active] == [5]
        service.snapshots.verify_integrity("proj-1")

    def test_merge_audited(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("a", "service")]), author="alice")
        (entry,) = service.audit.query("proj-1")
        assert entry.action == AuditAction.MODULE_MERGED.value
        assert entry.by == "alice"
        assert entry.metadata["new_version"] == 1
        assert entry.metadata["from_version"] is None

    def test_default_author(self, db, make_module):
        svc = MergeService(db, default_author="bot")
        snap = svc.submit("proj-1", make_module("m1", nodes=[("a", "service")])).snapshot
        assert snap.created_by == "bot"

    def test_dropped_edges_reported(self, service, make_module):
        outcome = service.submit("proj-1", make_module("m1", nodes=[("a", "service")], edges=[("a", "ghost")]))
        assert outcome.merged
        assert [e.key for e in outcome.dropped_edges] == [("a", "ghost")]
        assert outcome.snapshot.edges == []


class TestValidation:
    def test_wrong_project(self, service, make_module):
        with pytest.raises(MergeError) as exc:
            service.submit("other", make_module("m1"))
        assert exc.value.code is ErrorCode.AG100

    def test_unapproved_module(self, service, make_module):
        with pytest.raises(MergeError) as exc:
            service.submit("proj-1", make_module("m1", status=ModuleStatus.PROPOSED))
        assert exc.value.code is ErrorCode.AG101
        assert service.active("proj-1") is None


class TestConflictBlocks:
    def test_active_unchanged_and_review_items_created(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("store", "cache")], edges=[]))
        before = service.active("proj-1")

        outcome = service.submit("proj-1", make_module("m2", nodes=[("store", "database")]))

        after = service.active("proj-1")
        assert not outcome.merged
        assert after.version == before.version
        assert after.nodes == before.nodes
        assert after.edges == before.edges
        items = service.reviews.list_for_module("m2")
        assert len(items) >= 1
        assert [i.id for i in items] == [i.id for i in outcome.review_items]
        assert outcome.snapshot.version == before.version

    def test_blocked_merge_audited(self, service, make_module):
        outcome = service.submit("proj-1", make_module("m1", nodes=[("a", "service")], confidence=Confidence.LOW))
        assert not outcome.merged
        assert outcome.snapshot is None
        (entry,) = service.audit.query("proj-1", action=AuditAction.MERGE_BLOCKED.value)
        assert entry.metadata["conflict_types"] == ["low_confidence"]

    def test_low_confidence_allowed_when_disabled(self, db, make_module):
        svc = MergeService(db, block_on_low_confidence=False)
        outcome = svc.submit("proj-1", make_module("m1", nodes=[("a", "service")], confidence=Confidence.LOW))
        assert outcome.merged


class TestMergePending:
    def test_detection_sees_earlier_folds(self, service, make_module):
        m1 = make_module("m1", nodes=[("db-main", "database", {"engine": "postgres"})], order=1)
        m2 = make_module("m2", nodes=[("db-olap", "database", {"engine": "clickhouse"})], order=2)
        outcomes = service.merge_pending("proj-1", [m2, m1])
        assert [o.module_id for o in outcomes] == ["m1", "m2"]
        assert [o.merged for o in outcomes] == [True, False]
        assert outcomes[1].conflicts[0].type == "database_plurality"

    def test_halts_at_first_blocked(self, service, make_module):
        m1 = make_module("m1", nodes=[("a", "service")], order=1, confidence=Confidence.LOW)
        m2 = make_module("m2", nodes=[("b", "service")], order=2)
        outcomes = service.merge_pending("proj-1", [m1, m2])
        assert len(outcomes) == 1
        assert service.active("proj-1") is None


class TestRollback:
    def _three_versions(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("a", "service")], order=1))
        service.submit("proj-1", make_module("m2", nodes=[("b", "service")], edges=[("a", "b")], order=2))
        service.submit("proj-1", make_module("m3", nodes=[("c", "service")], edges=[("b", "c")], order=3))

    def test_rollback_is_forward_only(self, service, make_module):
        self._three_versions(service, make_module)
        v1 = service.get_version("proj-1", 1)

        restored = service.rollback("proj-1", 1, author="alice")

        assert restored.version == 4
        assert restored.active
        assert restored.nodes == v1.nodes
        assert restored.edges == v1.edges
        assert restored.modules == v1.modules
        v3 = service.get_version("proj-1", 3)
        assert v3 is not None and not v3.active
        assert service.active("proj-1").version == 4

    def test_rollback_audited(self, service, make_module):
        self._three_versions(service, make_module)
        service.rollback("proj-1", 1, author="alice")
        (entry,) = service.audit.query("proj-1", action=AuditAction.SNAPSHOT_ROLLED_BACK.value)
        assert entry.metadata == {"from_version": 3, "to_version": 1, "new_version": 4}
        assert entry.reason == "Rolled back from v3 to v1"
        assert entry.by == "alice"

    def test_missing_version(self, service, make_module):
        self._three_versions(service, make_module)
        with pytest.raises(SnapshotNotFoundError) as exc:
            service.rollback("proj-1", 9)
        assert exc.value.code is ErrorCode.AG200
        assert service.active("proj-1").version == 3

    def test_merge_after_rollback_builds_on_restored(self, service, make_module):
        self._three_versions(service, make_module)
        service.rollback("proj-1", 1)
        snap = service.submit("proj-1", make_module("m5", nodes=[("d", "service")], order=5)).snapshot
        assert snap.version == 5
        assert [n.id for n in snap.nodes] == ["a", "d"]


class TestDiff:
    def test_symmetry(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("a", "service")]))
        service.submit("proj-1", make_module("m2", nodes=[("b", "service")], edges=[("a", "b")]))
        service.submit("proj-1", make_module("m3", nodes=[("c", "service")], edges=[("b", "c")]))
        forward = service.diff("proj-1", 1, 3)
        backward = service.diff("proj-1", 3, 1)
        assert {n.id for n in forward.added_nodes} == {n.id for n in backward.removed_nodes}
        assert {e.key for e in forward.added_edges} == {e.key for e in backward.removed_edges}
        assert forward.node_count_change == -backward.node_count_change

    def test_missing_version_returns_none(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("a", "service")]))
        assert service.diff("proj-1", 1, 2) is None


class TestResolveConflict:
    @pytest.fixture
    def blocked(self, service, make_module):
        store = ModuleStore(service.db)
        m1 = make_module("m1", nodes=[("store", "cache", {"ttl": 60})], order=1)
        m2 = make_module(
            "m2",
            nodes=[("store", "database", {"engine": "postgres"}), ("api", "service")],
            edges=[("api", "store")],
            order=2,
        )
        store.save(m1)
        store.save(m2)
        service.submit("proj-1", m1)
        outcome = service.submit("proj-1", m2)
        assert not outcome.merged
        return outcome.review_items[0]

    def test_apply_incoming(self, service, blocked):
        outcome = service.resolve_conflict(blocked.id, ResolutionAction.APPLY_INCOMING, "admin")
        assert outcome.merged
        store = next(n for n in outcome.snapshot.nodes if n.id == "store")
        assert store.type == "database"
        assert service.reviews.get(blocked.id).status is ReviewStatus.RESOLVED

    def test_keep_canonical(self, service, blocked):
        outcome = service.resolve_conflict(blocked.id, ResolutionAction.KEEP_CANONICAL, "admin")
        nodes = {n.id: n for n in outcome.snapshot.nodes}
        assert nodes["store"].type == "cache"
        assert "api" in nodes
        assert [e.key for e in outcome.snapshot.edges] == [("api", "store")]

    def test_merge_meta(self, service, blocked):
        outcome = service.resolve_conflict(blocked.id, ResolutionAction.MERGE_META, "admin")
        store = next(n for n in outcome.snapshot.nodes if n.id == "store")
        assert store.type == "cache"
        assert store.meta == {"ttl": 60, "engine": "postgres"}

    def test_rename_and_keep_both(self, service, blocked):
        outcome = service.resolve_conflict(
            blocked.id, ResolutionAction.RENAME_AND_KEEP_BOTH, "admin", rename_to="store-db"
        )
        ids = [n.id for n in outcome.snapshot.nodes]
        assert ids == ["store", "store-db", "api"]
        assert [e.key for e in outcome.snapshot.edges] == [("api", "store-db")]

    def test_resolution_audited_and_module_frozen(self, service, blocked):
        service.resolve_conflict(blocked.id, ResolutionAction.APPLY_INCOMING, "admin")
        (entry,) = service.audit.query("proj-1", action=AuditAction.CONFLICT_RESOLVED.value)
        assert entry.by == "admin"
        assert entry.metadata["action"] == "apply_incoming"
        assert ModuleStore(service.db).is_merged("m2")

    def test_already_resolved(self, service, blocked):
        service.resolve_conflict(blocked.id, ResolutionAction.APPLY_INCOMING, "admin")
        with pytest.raises(ResolutionError) as exc:
            service.resolve_conflict(blocked.id, ResolutionAction.APPLY_INCOMING, "admin")
        assert exc.value.code is ErrorCode.AG301

    def test_unknown_item(self, service):
        with pytest.raises(ReviewItemNotFoundError) as exc:
            service.resolve_conflict(404, ResolutionAction.APPLY_INCOMING, "admin")
        assert exc.value.code is ErrorCode.AG300

    def test_keep_canonical_on_module_level_conflict(self, service, make_module):
        module = make_module("m9", nodes=[("x", "service")], confidence=Confidence.LOW)
        ModuleStore(service.db).save(module)
        (item,) = service.submit("proj-1", module).review_items
        outcome = service.resolve_conflict(item.id, ResolutionAction.KEEP_CANONICAL, "admin")
        assert not outcome.merged
        assert service.active("proj-1") is None
        assert service.reviews.pending_count("m9") == 0
        assert ModuleStore(service.db).get("m9").status is ModuleStatus.REJECTED
        assert service.rebuild("proj-1").nodes == []

    def test_module_passed_explicitly(self, db, make_module):
        svc = MergeService(db)
        module = make_module("m9", nodes=[("x", "service")], confidence=Confidence.LOW)
        (item,) = svc.submit("proj-1", module).review_items
        with pytest.raises(ResolutionError) as exc:
            svc.resolve_conflict(item.id, ResolutionAction.APPLY_INCOMING, "admin")
        assert exc.value.code is ErrorCode.AG303
        outcome = svc.resolve_conflict(item.id, ResolutionAction.APPLY_INCOMING, "admin", module=module)
        assert outcome.merged

    @pytest.mark.parametrize(
        "action, rename_to",
        [
            (ResolutionAction.APPLY_INCOMING, None),
            (ResolutionAction.KEEP_CANONICAL, None),
            (ResolutionAction.MERGE_META, None),
            (ResolutionAction.RENAME_AND_KEEP_BOTH, "store-db"),
        ],
    )
    def test_rebuild_replays_resolution(self, service, blocked, action, rename_to):
        resolved = service.resolve_conflict(blocked.id, action, "admin", rename_to=rename_to)
        rebuilt = service.rebuild("proj-1")
        assert rebuilt.version == resolved.snapshot.version + 1
        assert rebuilt.nodes == resolved.snapshot.nodes
        assert rebuilt.edges == resolved.snapshot.edges
        assert rebuilt.modules == ["m1", "m2"]

    def test_parallel_resolutions_of_one_item(self, service, blocked):
        other = MergeService(service.db)
        merged, errors = [], []

        def worker(svc):
            try:
                merged.append(
                    svc.resolve_conflict(blocked.id, ResolutionAction.APPLY_INCOMING, "admin")
                )
            except ResolutionError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(svc,)) for svc in [service, other] * 3]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(merged) == 1
        assert [e.code for e in errors] == [ErrorCode.AG301] * 5
        assert [s.version for s in service.history("proj-1")] == [2, 1]
        assert len(service.audit.query("proj-1", action=AuditAction.CONFLICT_RESOLVED.value)) == 1


class TestRebuild:
    @pytest.fixture
    def store(self, service):
        return ModuleStore(service.db)

    def test_rebuild_from_merged_modules(self, service, store, make_module):
        m1 = store.save(make_module("m1", nodes=[("a", "service")], order=1))
        m2 = store.save(make_module("m2", nodes=[("b", "service")], edges=[("a", "b")], order=2))
        service.merge_pending("proj-1", [m2, m1])
        store.save(make_module("m3", nodes=[("c", "service")], order=3, status=ModuleStatus.REJECTED))
        store.save(make_module("m4", nodes=[("d", "service")], order=4))

        snap = service.rebuild("proj-1", author="ops")
        assert snap.version == 3
        assert [n.id for n in snap.nodes] == ["a", "b"]
        assert snap.modules == ["m1", "m2"]
        (entry,) = service.audit.query("proj-1", action=AuditAction.CANONICAL_REBUILT.value)
        assert entry.by == "ops"
        assert entry.metadata["from_version"] == 2

    def test_blocked_module_stays_out(self, service, store, make_module):
        store.save(make_module("m1", nodes=[("app", "service")], order=1))
        service.submit("proj-1", store.get("m1"))
        store.save(make_module("m2", nodes=[("risky", "service")], order=2, confidence=Confidence.LOW))
        assert not service.submit("proj-1", store.get("m2")).merged

        snap = service.rebuild("proj-1")
        assert [n.id for n in snap.nodes] == ["app"]
        assert snap.modules == ["m1"]
        assert service.reviews.pending_count("m2") == 1


class TestConcurrency:
    def test_parallel_merges_same_project(self, service, make_module):
        errors = []

        def worker(i):
            try:
                service.submit("proj-1", make_module(f"m{i}", nodes=[(f"n{i}", "service")], order=i))
            except Exception as e:  # pragma: no cover - surfaced by the assert below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        history = service.history("proj-1")
        assert sorted(s.version for s in history) == list(range(1, 9))
        assert len(service.active("proj-1").nodes) == 8
        service.snapshots.verify_integrity("proj-1")

    def test_two_services_share_one_archive(self, db, make_module):
        a = MergeService(db)
        b = MergeService(db)
        threads = [
            threading.Thread(
                target=svc.submit,
                args=("proj-1", make_module(f"m{i}", nodes=[(f"n{i}", "service")])),
            )
            for i, svc in enumerate([a, b, a, b])
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        versions = sorted(s.version for s in a.history("proj-1"))
        assert versions == [1, 2, 3, 4]
        a.snapshots.verify_integrity("proj-1")

    def test_projects_independent(self, service, make_module):
        service.submit("proj-1", make_module("m1", nodes=[("a", "service")]))
        other = make_module("x1", nodes=[("a", "service")], project_id="proj-2")
        assert service.submit("proj-2", other).snapshot.version == 1
        assert service.active("proj-1").version == 1
