"""Mock Datadog object state.

Stores provider objects per kind, keyed by id, the way the provider would
return them.
"""

from __future__ import annotations

import copy
import itertools
from datetime import UTC, datetime
from typing import Any

from ddsync.kinds import ResourceKind

# Monitors have integer ids, everything else short string ids
_STRING_ID_PREFIXES = {
    ResourceKind.DASHBOARD: "dsh",
    ResourceKind.SLO: "slo",
    ResourceKind.SYNTHETIC_TEST: "syn",
}


class MockDatadogState:
    """In-memory Datadog object state.

    All operations are synchronous since this is test code.
    """

    # Maximum objects to prevent unbounded growth in tests
    MAX_OBJECTS = 10000

    def __init__(self) -> None:
        """Initialize empty state."""
        self._objects: dict[ResourceKind, dict[int | str, dict[str, Any]]] = {
            kind: {} for kind in ResourceKind
        }
        self._counter = itertools.count(1000)

    def next_id(self, kind: ResourceKind) -> int | str:
        number = next(self._counter)
        if kind == ResourceKind.MONITOR:
            return number
        return f"{_STRING_ID_PREFIXES[kind]}-{number}"

    def count(self, kind: ResourceKind) -> int:
        return len(self._objects[kind])

    def get(self, kind: ResourceKind, resource_id: int | str) -> dict[str, Any] | None:
        """Get a copy of an object, or None when it does not exist."""
        stored = self._objects[kind].get(resource_id)
        return copy.deepcopy(stored) if stored is not None else None

    def all(self, kind: ResourceKind) -> list[dict[str, Any]]:
        """Copies of every object of a kind, in insertion order."""
        return [copy.deepcopy(o) for o in self._objects[kind].values()]

    def put(self, kind: ResourceKind, payload: dict[str, Any]) -> dict[str, Any]:
        """Create or replace an object; assigns an id when it has none.

        Raises:
            ValueError: If the object limit is exceeded.
        """
        total = sum(len(objects) for objects in self._objects.values())
        if total >= self.MAX_OBJECTS:
            raise ValueError(f"Object limit exceeded: {self.MAX_OBJECTS}")

        stored = copy.deepcopy(payload)
        now = datetime.now(UTC).isoformat()
        if stored.get("id") is None:
            stored["id"] = self.next_id(kind)
        existing = self._objects[kind].get(stored["id"])
        stored["created"] = existing["created"] if existing else now
        stored["modified"] = now
        self._objects[kind][stored["id"]] = stored
        return copy.deepcopy(stored)

    def remove(self, kind: ResourceKind, resource_id: int | str) -> bool:
        """Delete an object; returns False if it did not exist."""
        return self._objects[kind].pop(resource_id, None) is not None

    def clear(self) -> None:
        for objects in self._objects.values():
            objects.clear()
