"""Project file loading with validation.

Each `*.yaml` / `*.yml` file in the parts directory holds one project:

```yaml
kennel_id: team_a
team:
  name: team-a
  slack: team-a-alerts
parts:
  - kind: monitor
    kennel_id: api_latency
    name: API latency
    query: avg(last_5m):avg:api.latency{*} > 10
    critical: 10
  - kind: slo
    kennel_id: api_availability
    name: API availability
    type: monitor
    monitor_ids: [team_a:api_latency]
    thresholds: [{timeframe: 7d, target: 99.9}]
```

All file operations enforce size limits. Input validation is performed at
the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_PROJECT_FILE_SIZE_BYTES
from .filter import SyncFilter
from .models import BuiltResource, Project
from .planner import DuplicateTrackingIdError

logger = logging.getLogger(__name__)

PROJECT_FILE_SUFFIXES = (".yaml", ".yml")


class LoadError(Exception):
    """Raised when project loading or validation fails."""

    pass


def load_project(path: Path) -> Project:
    """Load and validate one project file.

    Raises:
        LoadError: If the file cannot be read or fails validation.
    """
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise LoadError(f"Failed to stat project file {path}: {e}") from e

    if file_size > MAX_PROJECT_FILE_SIZE_BYTES:
        raise LoadError(
            f"Project file exceeds maximum size of {MAX_PROJECT_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise LoadError(f"Failed to read project file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise LoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise LoadError(f"Project file must contain a YAML mapping: {path}")

    try:
        project = Project.model_validate(raw_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise LoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.debug(
        "Loaded project",
        extra={"project": project.kennel_id, "path": str(path), "parts": len(project.parts)},
    )
    return project


def load_projects(parts_dir: Path) -> list[tuple[Project, Path]]:
    """Load every project file in a directory, sorted by file name.

    Raises:
        LoadError: If the directory is missing or any file fails to load.
    """
    if not parts_dir.is_dir():
        raise LoadError(f"Parts directory not found: {parts_dir}")

    paths = sorted(p for p in parts_dir.iterdir() if p.suffix in PROJECT_FILE_SUFFIXES)
    projects = [(load_project(path), path) for path in paths]

    seen: dict[str, Path] = {}
    for project, path in projects:
        if project.kennel_id in seen:
            raise LoadError(
                f"Project {project.kennel_id} is defined in both {seen[project.kennel_id]} and {path}"
            )
        seen[project.kennel_id] = path

    logger.info("Loaded projects", extra={"count": len(projects), "parts_dir": str(parts_dir)})
    return projects


def load_resources(
    parts_dir: Path, sync_filter: SyncFilter | None = None
) -> list[BuiltResource]:
    """Build every declared resource, limited to the filter's projects.

    Raises:
        LoadError: If loading fails.
        DuplicateTrackingIdError: If two resources share a tracking id.
        FilterError: If a requested project matches nothing.
    """
    projects = load_projects(parts_dir)
    if sync_filter is not None:
        projects = sync_filter.filter_projects(projects, key=lambda item: item[0].kennel_id)

    resources: list[BuiltResource] = []
    seen: dict[str, BuiltResource] = {}
    for project, path in projects:
        for built in project.build(source=path.as_posix()):
            if built.tracking_id in seen:
                raise DuplicateTrackingIdError(
                    f"{built.tracking_id} is defined twice: "
                    f"{seen[built.tracking_id].kind.value} and {built.kind.value} in {built.source}"
                )
            seen[built.tracking_id] = built
            resources.append(built)
    return resources
