"""Shared test fixtures for archgraph tests."""

import pytest

from archgraph.graph.models import Confidence, Edge, Module, ModuleStatus, Node
from archgraph.persistence import ArchiveDB
from archgraph.service import MergeService


@pytest.fixture
def db(tmp_path):
    """Fresh archive database in a temp directory."""
    return ArchiveDB(tmp_path / "archive.db").initialize()


@pytest.fixture
def service(db):
    """MergeService over the temp archive with default rules."""
    return MergeService(db)


@pytest.fixture
def make_module():
    """Factory for approved modules.

    Nodes are ``(id, type)`` or ``(id, type, meta)`` tuples and edges are
    ``(from, to)`` pairs.
    """

    def _make(
        module_id,
        nodes=(),
        edges=(),
        project_id="proj-1",
        order=0,
        confidence=Confidence.MEDIUM,
        status=ModuleStatus.APPROVED,
    ):
        built_nodes = []
        for entry in nodes:
            node_id, node_type = entry[0], entry[1]
            meta = entry[2] if len(entry) > 2 else {}
            built_nodes.append(Node(id=node_id, type=node_type, label=node_id.title(), meta=dict(meta)))
        return Module(
            id=module_id,
            project_id=project_id,
            order=order,
            nodes=built_nodes,
            edges=[Edge(source=s, target=t) for s, t in edges],
            status=status,
            confidence=confidence,
            name=module_id,
        )

    return _make
