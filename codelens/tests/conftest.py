import pytest
from typing import Dict, Tuple

from codelens.graph.store import GraphStore
from codelens.types import CodeGraph, NodeKind, RelationType


@pytest.fixture
def store() -> GraphStore:
    """Create a graph store for testing."""
    return GraphStore()


@pytest.fixture
def empty_graph(store) -> CodeGraph:
    return store.create_empty_graph("tester", "Empty")


@pytest.fixture
def package_graph(store) -> CodeGraph:
    """Root R, package P, files F1 and F2 with F1 depending on F2 via "utils"."""
    graph = store.create_empty_graph("tester", "R")
    graph, _ = store.add_node(graph, "P", NodeKind.PACKAGE, graph.root_node_id, node_id="P")
    graph, _ = store.add_node(graph, "F1", NodeKind.MODULE, "P", node_id="F1")
    graph, _ = store.add_node(graph, "F2", NodeKind.MODULE, "P", node_id="F2")
    graph, _ = store.add_relation(graph, "F1", "F2", RelationType.DEPENDS_ON, "utils")
    return graph


@pytest.fixture
def shop_graph(store) -> Tuple[CodeGraph, Dict[str, str]]:
    """A two-package project with files, symbols, a dependency chain and one call edge.

    api/main.py -> api/routes.py -> core/service.py -> core/repo.py
    """
    graph = store.create_empty_graph("tester", "shop")
    ids = {"root": graph.root_node_id}

    graph, ids["api"] = store.add_node(graph, "api", NodeKind.PACKAGE, graph.root_node_id)
    graph, ids["core"] = store.add_node(graph, "core", NodeKind.PACKAGE, graph.root_node_id)

    graph, ids["main"] = store.add_node(graph, "main.py", NodeKind.MODULE, ids["api"])
    graph, ids["routes"] = store.add_node(graph, "routes.py", NodeKind.MODULE, ids["api"])
    graph, ids["service"] = store.add_node(graph, "service.py", NodeKind.MODULE, ids["core"])
    graph, ids["repo"] = store.add_node(graph, "repo.py", NodeKind.MODULE, ids["core"])

    graph, ids["handle"] = store.add_node(graph, "handle", NodeKind.FUNCTION, ids["main"])
    graph, ids["route"] = store.add_node(graph, "route", NodeKind.FUNCTION, ids["routes"])
    graph, ids["OrderService"] = store.add_node(graph, "OrderService", NodeKind.CLASS, ids["service"])
    graph, ids["save"] = store.add_node(graph, "save", NodeKind.FUNCTION, ids["repo"])

    graph, _ = store.add_relation(graph, ids["main"], ids["routes"], RelationType.DEPENDS_ON, "route")
    graph, _ = store.add_relation(graph, ids["routes"], ids["service"], RelationType.DEPENDS_ON, "OrderService")
    graph, _ = store.add_relation(graph, ids["service"], ids["repo"], RelationType.DEPENDS_ON, "save")
    graph, _ = store.add_relation(graph, ids["handle"], ids["route"], RelationType.CALLS)
    return graph, ids
