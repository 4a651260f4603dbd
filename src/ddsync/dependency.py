"""Reference dependency tracking between declared resources.

Resources reference each other by tracking id (an SLO lists monitors, a
composite monitor names other monitors, a dashboard embeds monitors and
SLOs). Creation must follow those references; a reference cycle among
resources that do not exist yet can never be satisfied.

DESIGN PHILOSOPHY:
- Nodes are tracking ids, edges point from a resource to what it references
- References to resources outside the graph (already created) are ignored
- Only resources still waiting on each other are put in the graph
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class DependencyError(Exception):
    """Raised when references between resources cannot be satisfied."""

    pass


class CircularDependencyError(DependencyError):
    """Raised when resources reference each other and none exist yet.

    Attributes:
        tracking_ids: Members of the cycle, when known.
    """

    def __init__(self, message: str, tracking_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.tracking_ids = tracking_ids or []


class UnresolvableReferenceError(DependencyError):
    """Raised when a reference names a tracking id that is not known."""

    pass


@dataclass
class DependencyNode:
    """A node in the dependency graph."""

    tracking_id: str
    depends_on: list[str] = field(default_factory=list)


@dataclass
class DependencyGraph:
    """Directed graph of references between pending resources."""

    nodes: dict[str, DependencyNode] = field(default_factory=dict)

    def add_node(self, tracking_id: str, depends_on: list[str] | None = None) -> None:
        """Add a node to the dependency graph.

        Args:
            tracking_id: Tracking id of the referencing resource.
            depends_on: Tracking ids it references.
        """
        node = self.nodes.setdefault(tracking_id, DependencyNode(tracking_id=tracking_id))
        for dep in depends_on or []:
            if dep not in node.depends_on:
                node.depends_on.append(dep)

    def _edges(self, tracking_id: str) -> list[str]:
        return [dep for dep in self.nodes[tracking_id].depends_on if dep in self.nodes]

    def validate(self) -> None:
        """Validate the dependency graph for cycles.

        Raises:
            CircularDependencyError: If a cycle is detected.
        """
        # Kahn's algorithm for cycle detection
        in_degree: dict[str, int] = {node: 0 for node in self.nodes}
        for node in self.nodes:
            for dep in self._edges(node):
                in_degree[dep] += 1

        queue = [node for node, degree in in_degree.items() if degree == 0]
        processed = 0

        while queue:
            current = queue.pop(0)
            processed += 1
            for dep in self._edges(current):
                in_degree[dep] -= 1
                if in_degree[dep] == 0:
                    queue.append(dep)

        if processed != len(self.nodes):
            members = self.cycle_members()
            raise CircularDependencyError(
                f"Circular dependency detected involving: {members}",
                tracking_ids=members,
            )

    def cycle_members(self) -> list[str]:
        """Return the sorted tracking ids that can reach themselves."""
        members = []
        for start in self.nodes:
            seen: set[str] = set()
            stack = list(self._edges(start))
            while stack:
                current = stack.pop()
                if current == start:
                    members.append(start)
                    break
                if current in seen:
                    continue
                seen.add(current)
                stack.extend(self._edges(current))
        return sorted(members)
