"""Project / tracking-id scoping of a run.

A run can be limited to some projects (PROJECT=a,b) or to individual
resources (TRACKING_ID=a:x,generated/a/y.json). Everything outside the
scope is neither planned nor deleted.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FilterError(Exception):
    """Raised when filter values are inconsistent or match nothing."""

    pass


def tracking_id_for_path(value: str) -> str:
    """Turn a pasted `generated/<project>/<id>.json` path into a tracking id."""
    if not value.endswith(".json"):
        return value
    return value.replace("generated/", "", 1).removesuffix(".json").replace("/", ":", 1)


def parse_list(value: str | None) -> list[str] | None:
    """Split a comma separated env value into a sorted unique list."""
    if not value:
        return None
    items = sorted({item.strip() for item in value.split(",") if item.strip()})
    return items or None


class SyncFilter:
    """Which projects and tracking ids a run is limited to.

    Attributes:
        project_filter: Sorted project ids, or None when not filtering.
            Derived from the tracking ids when only those are given.
        tracking_id_filter: Sorted tracking ids, or None.
    """

    def __init__(
        self,
        project_filter: Iterable[str] | None = None,
        tracking_id_filter: Iterable[str] | None = None,
    ) -> None:
        tracking_ids = (
            sorted({tracking_id_for_path(t) for t in tracking_id_filter})
            if tracking_id_filter
            else None
        )
        projects = sorted(set(project_filter)) if project_filter else None
        tracking_projects = (
            sorted({t.split(":", 1)[0] for t in tracking_ids}) if tracking_ids else None
        )

        # Otherwise everything would be filtered out
        if projects and tracking_projects and projects != tracking_projects:
            raise FilterError("do not set a different PROJECT= when using TRACKING_ID=")

        self.tracking_id_filter: list[str] | None = tracking_ids
        self.project_filter: list[str] | None = projects or tracking_projects

    @classmethod
    def from_env(cls) -> SyncFilter:
        """Load filters from environment.

        Environment Variables:
            PROJECT: Comma separated project ids
            TRACKING_ID: Comma separated tracking ids or generated/ paths
        """
        return cls(
            project_filter=parse_list(os.environ.get("PROJECT")),
            tracking_id_filter=parse_list(os.environ.get("TRACKING_ID")),
        )

    @property
    def filtering(self) -> bool:
        return self.project_filter is not None

    def matches_project_id(self, project_id: str) -> bool:
        return not self.filtering or project_id in self.project_filter

    def matches_tracking_id(self, tracking_id: str) -> bool:
        if not self.filtering:
            return True
        if self.tracking_id_filter is not None:
            return tracking_id in self.tracking_id_filter
        return tracking_id.split(":", 1)[0] in self.project_filter

    def filter_projects(self, projects: list[T], key: Callable[[T], str]) -> list[T]:
        """Keep projects in scope.

        Raises:
            FilterError: If a requested project matches nothing.
        """
        return self._filter(projects, key, self.project_filter, "projects", "PROJECT")

    def filter_resources(self, resources: list[T], key: Callable[[T], str]) -> list[T]:
        """Keep resources in scope of the tracking id filter.

        Raises:
            FilterError: If a requested tracking id matches nothing.
        """
        return self._filter(
            resources, key, self.tracking_id_filter, "resources", "TRACKING_ID"
        )

    @staticmethod
    def _filter(
        items: list[T],
        key: Callable[[T], str],
        expected: list[str] | None,
        name: str,
        env: str,
    ) -> list[T]:
        if expected is None:
            return items

        kept = [item for item in items if key(item) in expected]
        keeping = len({key(item) for item in kept})
        if keeping == len(expected):
            return kept

        available = "\n".join(sorted({key(item) for item in items}))
        raise FilterError(
            f"{env}={','.join(expected)} matched {keeping} {name}, try any of these:\n{available}"
        )
