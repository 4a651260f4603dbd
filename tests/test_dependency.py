"""Tests for the reference dependency graph."""

from __future__ import annotations

import pytest

from ddsync.dependency import (
    CircularDependencyError,
    DependencyError,
    DependencyGraph,
    UnresolvableReferenceError,
)


class TestDependencyGraph:
    """Tests for DependencyGraph."""

    def test_acyclic_graph_validates(self) -> None:
        """Test a chain of references is valid."""
        graph = DependencyGraph()
        graph.add_node("proj:dash", ["proj:slo", "proj:mon"])
        graph.add_node("proj:slo", ["proj:mon"])
        graph.add_node("proj:mon")

        graph.validate()
        assert graph.cycle_members() == []

    def test_two_node_cycle(self) -> None:
        """Test composite monitors referencing each other."""
        graph = DependencyGraph()
        graph.add_node("proj:a", ["proj:b"])
        graph.add_node("proj:b", ["proj:a"])

        with pytest.raises(CircularDependencyError) as exc_info:
            graph.validate()

        assert exc_info.value.tracking_ids == ["proj:a", "proj:b"]

    def test_cycle_members_exclude_dependents(self) -> None:
        """Test resources waiting on a cycle are not part of it."""
        graph = DependencyGraph()
        graph.add_node("proj:a", ["proj:b"])
        graph.add_node("proj:b", ["proj:a"])
        graph.add_node("proj:c", ["proj:a"])

        assert graph.cycle_members() == ["proj:a", "proj:b"]

    def test_self_reference(self) -> None:
        """Test a resource referencing itself."""
        graph = DependencyGraph()
        graph.add_node("proj:a", ["proj:a"])

        assert graph.cycle_members() == ["proj:a"]

    def test_references_outside_graph_ignored(self) -> None:
        """Test references to existing resources are not edges."""
        graph = DependencyGraph()
        graph.add_node("proj:a", ["other:existing"])

        graph.validate()

    def test_add_node_merges_dependencies(self) -> None:
        """Test adding a node twice merges its references."""
        graph = DependencyGraph()
        graph.add_node("proj:a", ["proj:b"])
        graph.add_node("proj:a", ["proj:b", "proj:c"])

        assert graph.nodes["proj:a"].depends_on == ["proj:b", "proj:c"]


class TestErrors:
    """Tests for the error hierarchy."""

    def test_hierarchy(self) -> None:
        """Test both errors are DependencyErrors."""
        assert issubclass(CircularDependencyError, DependencyError)
        assert issubclass(UnresolvableReferenceError, DependencyError)

    def test_tracking_ids_default(self) -> None:
        """Test tracking_ids defaults to an empty list."""
        assert CircularDependencyError("x").tracking_ids == []
