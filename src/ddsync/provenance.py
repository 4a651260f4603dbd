"""Run provenance for audit.

Every plan/update run emits one record answering:
- "Which commit of the parts was synced?"
- "What was the run limited to?"
- "How much changed, and did it fail?"
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from .filter import SyncFilter
from .planner import Plan

logger = logging.getLogger(__name__)

# Version is set at build time or falls back to dev
DDSYNC_VERSION = os.environ.get("DDSYNC_VERSION", "dev")


@dataclass
class ChangeSummary:
    """Counts of planned or executed operations."""

    create_count: int = 0
    update_count: int = 0
    delete_count: int = 0
    warning_count: int = 0

    @property
    def total(self) -> int:
        return self.create_count + self.update_count + self.delete_count

    @classmethod
    def from_plan(cls, plan: Plan) -> ChangeSummary:
        return cls(
            create_count=len(plan.creates),
            update_count=len(plan.updates),
            delete_count=len(plan.deletes),
            warning_count=len(plan.warnings),
        )


@dataclass
class SyncProvenance:
    """Provenance record for one run."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    command: str = ""
    ddsync_version: str = DDSYNC_VERSION

    # Git source of truth
    git_commit_sha: str = ""
    git_branch: str = ""
    git_repo: str = ""

    # Scope
    project_filter: list[str] | None = None
    tracking_id_filter: list[str] | None = None

    # Outcome
    applied: bool = False
    change_summary: ChangeSummary = field(default_factory=ChangeSummary)
    duration_seconds: float = 0.0
    error: str | None = None
    error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result

    def finish(self, plan: Plan | None = None, error: Exception | None = None) -> None:
        """Stamp duration, counts and error."""
        self.duration_seconds = (datetime.now(UTC) - self.timestamp).total_seconds()
        if plan is not None:
            self.change_summary = ChangeSummary.from_plan(plan)
        if error is not None:
            self.error = str(error)
            self.error_type = type(error).__name__


class ProvenanceLogger:
    """Logs provenance records through the structured logger."""

    def __init__(self) -> None:
        self._git_commit_sha = os.environ.get("GIT_COMMIT_SHA", "")
        self._git_branch = os.environ.get("GIT_BRANCH", "")
        self._git_repo = os.environ.get("GIT_REPO", "")

    def create_provenance(self, command: str, sync_filter: SyncFilter) -> SyncProvenance:
        """Create a new provenance record for a run."""
        return SyncProvenance(
            command=command,
            git_commit_sha=self._git_commit_sha,
            git_branch=self._git_branch,
            git_repo=self._git_repo,
            project_filter=sync_filter.project_filter,
            tracking_id_filter=sync_filter.tracking_id_filter,
        )

    def log_provenance(self, provenance: SyncProvenance) -> None:
        """Log a completed provenance record."""
        log_level = logging.ERROR if provenance.error else logging.INFO
        logger.log(
            log_level,
            "Sync provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "command": provenance.command,
                "applied": provenance.applied,
                "changes": provenance.change_summary.total,
                "git_commit": provenance.git_commit_sha,
                "duration_seconds": provenance.duration_seconds,
            },
        )


_provenance_logger: ProvenanceLogger | None = None


def get_provenance_logger() -> ProvenanceLogger:
    """Get the global provenance logger instance."""
    global _provenance_logger
    if _provenance_logger is None:
        _provenance_logger = ProvenanceLogger()
    return _provenance_logger
