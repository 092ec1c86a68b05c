"""Tests for version-to-version graph diffs."""

from archgraph.diff import GraphDiff, diff_snapshots, diff_versions
from archgraph.graph.models import Edge, Node
from archgraph.persistence import SnapshotStore
from archgraph.persistence.models import Snapshot


def _snap(version, node_ids, edge_keys):
    return Snapshot(
        project_id="p",
        version=version,
        nodes=[Node(i, "service") for i in node_ids],
        edges=[Edge(s, t) for s, t in edge_keys],
    )


class TestDiffSnapshots:
    def test_identical_is_empty(self):
        a = _snap(1, ["x", "y"], [("x", "y")])
        result = diff_snapshots(a, a)
        assert result.is_empty
        assert result.node_count_change == 0
        assert result.edge_count_change == 0

    def test_added_and_removed(self):
        old = _snap(1, ["api", "db"], [("api", "db")])
        new = _snap(2, ["api", "cache"], [("api", "cache")])
        result = diff_snapshots(old, new)
        assert [n.id for n in result.added_nodes] == ["cache"]
        assert [n.id for n in result.removed_nodes] == ["db"]
        assert [e.key for e in result.added_edges] == [("api", "cache")]
        assert [e.key for e in result.removed_edges] == [("api", "db")]
        assert (result.from_version, result.to_version) == (1, 2)

    def test_direction_swaps_sets(self):
        old = _snap(1, ["a"], [])
        new = _snap(2, ["a", "b", "c"], [("a", "b")])
        forward = diff_snapshots(old, new)
        backward = diff_snapshots(new, old)
        assert [n.id for n in forward.added_nodes] == [n.id for n in backward.removed_nodes]
        assert [e.key for e in forward.added_edges] == [e.key for e in backward.removed_edges]
        assert forward.node_count_change == -backward.node_count_change == 2
        assert forward.edge_count_change == -backward.edge_count_change == 1

    def test_reversed_edge_is_a_different_edge(self):
        old = _snap(1, ["a", "b"], [("a", "b")])
        new = _snap(2, ["a", "b"], [("b", "a")])
        result = diff_snapshots(old, new)
        assert [e.key for e in result.added_edges] == [("b", "a")]
        assert [e.key for e in result.removed_edges] == [("a", "b")]

    def test_attribute_changes_not_reported(self):
        old = Snapshot("p", 1, nodes=[Node("db", "database", meta={"engine": "pg"})])
        new = Snapshot("p", 2, nodes=[Node("db", "database", meta={"engine": "mysql"})])
        assert diff_snapshots(old, new).is_empty

    def test_to_dict(self):
        result = diff_snapshots(_snap(1, [], []), _snap(2, ["a"], []))
        data = result.to_dict()
        assert data["added_nodes"][0]["id"] == "a"
        assert data["node_count_change"] == 1


class TestDiffVersions:
    def test_missing_version_returns_none(self, db):
        store = SnapshotStore(db)
        store.create_snapshot("p", [], [], [], "a")
        assert diff_versions(store, "p", 1, 5) is None
        assert diff_versions(store, "p", 5, 1) is None

    def test_persisted_versions(self, db):
        store = SnapshotStore(db)
        store.create_snapshot("p", [Node("a", "service")], [], ["m1"], "a")
        store.create_snapshot("p", [Node("a", "service"), Node("b", "service")], [Edge("a", "b")], ["m1", "m2"], "a")
        result = diff_versions(store, "p", 1, 2)
        assert isinstance(result, GraphDiff)
        assert [n.id for n in result.added_nodes] == ["b"]
        assert result.edge_count_change == 1
