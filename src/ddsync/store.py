"""Generated payload store.

Writes one pretty-printed JSON file per declared resource to
`<generated_dir>/<project>/<kennel_id>.json`, so payload changes show up in
code review. Nothing in the sync reads these files back.
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path

from .filter import SyncFilter
from .models import BuiltResource
from .tracking import is_valid_tracking_id

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a resource cannot be written."""

    pass


class GeneratedStore:
    """Mirror of built payloads on disk."""

    def __init__(self, directory: Path, sync_filter: SyncFilter | None = None) -> None:
        self._directory = directory
        self._filter = sync_filter or SyncFilter()

    def path_for(self, tracking_id: str) -> Path:
        if not is_valid_tracking_id(tracking_id):
            raise StoreError(f"Invalid tracking id {tracking_id!r}")
        project, kennel_id = tracking_id.split(":", 1)
        return self._directory / project / f"{kennel_id}.json"

    def write(self, resources: list[BuiltResource]) -> list[Path]:
        """Write changed files and remove stale ones in the run's scope.

        Returns:
            Paths that were (re)written.
        """
        old = self._existing_paths()
        used: set[Path] = {self._directory}
        written: list[Path] = []

        for resource in resources:
            path = self.path_for(resource.tracking_id)
            used.update({path, path.parent})
            content = {**resource.payload, "api_resource": resource.kind.value}
            if self._write_if_changed(path, json.dumps(content, indent=2) + "\n"):
                written.append(path)

        # Deepest first, so directories are empty once their files are gone
        for path in sorted(old - used, key=lambda p: len(p.parts), reverse=True):
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            logger.debug("Removed stale generated file", extra={"path": str(path)})

        logger.info(
            "Stored generated payloads",
            extra={"resources": len(resources), "written": len(written)},
        )
        return written

    def _cleanup_roots(self) -> list[Path]:
        if self._filter.tracking_id_filter is not None:
            return []
        if self._filter.project_filter is not None:
            return [self._directory / project for project in self._filter.project_filter]
        return [self._directory]

    def _existing_paths(self) -> set[Path]:
        paths: set[Path] = set()
        for root in self._cleanup_roots():
            if root.exists():
                paths.add(root)
                paths.update(root.rglob("*"))
        return paths

    @staticmethod
    def _write_if_changed(path: Path, content: str) -> bool:
        try:
            if path.read_text(encoding="utf-8") == content:
                return False
        except FileNotFoundError:
            path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return True
