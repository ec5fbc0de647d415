"""Tests for deterministic build ordering and cycle detection."""

from __future__ import annotations

import itertools

import networkx as nx
import pytest

from buildgraph.errors import DependencyCycleError
from buildgraph.graph.ordering import (
    OrderedGraphBuilder,
    build_order,
    canonical_cycle,
    transitive_dependencies,
)


def _graph(*edges: tuple) -> nx.DiGraph:
    graph = nx.DiGraph()
    graph.add_edges_from(edges)
    return graph


def test_diamond_dependencies_come_first() -> None:
    graph = _graph(("app", "a"), ("app", "b"), ("a", "c"), ("b", "c"))

    assert build_order(graph) == ["c", "a", "b", "app"]
    assert transitive_dependencies(graph, "app") == ["c", "a", "b"]
    assert transitive_dependencies(graph, "c") == []


def test_order_does_not_depend_on_insertion_order() -> None:
    edges = [("app", "render"), ("render", "core"), ("app", "core"), ("tool", "core"), ("audio", "core")]
    expected = build_order(_graph(*edges))

    for permutation in itertools.permutations(edges):
        graph = nx.DiGraph()
        for u, v in permutation:
            graph.add_edge(u, v)
        assert build_order(graph) == expected
    assert expected == ["core", "render", "app", "audio", "tool"]


def test_deeper_path_is_explored_again() -> None:
    """A node reached later at a greater depth pushes its subtree down too."""
    graph = _graph(("app", "x"), ("app", "y"), ("y", "x"), ("x", "z"))

    walk = OrderedGraphBuilder(graph)
    walk.insert("app", 1)

    assert walk.depth_map == {"app": 1, "x": 3, "y": 2, "z": 4}
    assert walk.ordered() == ["z", "x", "y", "app"]


def test_every_dependency_precedes_its_dependents() -> None:
    graph = _graph(
        ("game", "render"),
        ("game", "audio"),
        ("render", "math"),
        ("audio", "math"),
        ("render", "platform"),
        ("platform", "math"),
        ("editor", "render"),
    )

    order = build_order(graph)

    position = {name: index for index, name in enumerate(order)}
    for project, dependency in graph.edges:
        assert position[dependency] < position[project]


def test_cycle_names_every_member() -> None:
    graph = _graph(("a", "b"), ("b", "c"), ("c", "a"))

    with pytest.raises(DependencyCycleError) as exc:
        build_order(graph)

    assert exc.value.cycles == [["a", "b", "c"]]
    assert exc.value.cycle == ["a", "b", "c"]
    assert "a -> b -> c -> a" in str(exc.value)


def test_all_distinct_cycles_are_reported() -> None:
    graph = _graph(("a", "b"), ("b", "a"), ("c", "d"), ("d", "c"), ("e", "e"))

    with pytest.raises(DependencyCycleError) as exc:
        build_order(graph)

    assert [canonical_cycle(c) for c in exc.value.cycles] == [("a", "b"), ("c", "d"), ("e",)]


def test_transitive_dependencies_detects_cycle_back_to_project() -> None:
    graph = _graph(("app", "lib"), ("lib", "app"))

    with pytest.raises(DependencyCycleError) as exc:
        transitive_dependencies(graph, "app")

    assert exc.value.cycle == ["app", "lib"]


def test_canonical_cycle_rotation() -> None:
    assert canonical_cycle(["c", "a", "b"]) == ("a", "b", "c")
