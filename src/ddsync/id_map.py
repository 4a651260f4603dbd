"""Run-scoped registry from (kind, tracking id) to provider id."""

from __future__ import annotations

from typing import Final


class _NewSentinel:
    """Marks a resource that will be created later in the run."""

    _instance: _NewSentinel | None = None

    def __new__(cls) -> _NewSentinel:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NEW"


NEW: Final = _NewSentinel()


class IdMap:
    """Maps (kind, tracking_id) to a provider id or NEW.

    Seeded before planning, extended with real ids while executing.
    """

    def __init__(self) -> None:
        self._map: dict[str, dict[str, int | str | _NewSentinel]] = {}

    def set(self, kind: str, tracking_id: str, resource_id: int | str) -> None:
        self._map.setdefault(kind, {})[tracking_id] = resource_id

    def set_new(self, kind: str, tracking_id: str) -> None:
        self._map.setdefault(kind, {})[tracking_id] = NEW

    def get(self, kind: str, tracking_id: str) -> int | str | _NewSentinel | None:
        """Return the id, NEW, or None when the tracking id is unknown."""
        return self._map.get(kind, {}).get(tracking_id)

    def is_new(self, kind: str, tracking_id: str) -> bool:
        return self.get(kind, tracking_id) is NEW

    def __contains__(self, key: tuple[str, str]) -> bool:
        kind, tracking_id = key
        return self.get(kind, tracking_id) is not None

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._map.values())
