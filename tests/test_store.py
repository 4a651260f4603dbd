"""Tests for the generated payload store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from datadog_mock.factories import build, dashboard_part, monitor_part
from ddsync.filter import SyncFilter
from ddsync.store import GeneratedStore, StoreError


@pytest.fixture
def generated(tmp_path: Path) -> Path:
    return tmp_path / "generated"


class TestGeneratedStore:
    """Tests for GeneratedStore."""

    def test_writes_one_file_per_resource(self, generated: Path) -> None:
        """Test each resource lands under its project directory."""
        written = GeneratedStore(generated).write(build([monitor_part("a"), dashboard_part("d")]))

        assert written == [generated / "proj" / "a.json", generated / "proj" / "d.json"]
        content = json.loads((generated / "proj" / "a.json").read_text())
        assert content["api_resource"] == "monitor"
        assert content["query"] == "avg(last_5m):avg:api.latency{*} > 10"

    def test_unchanged_files_not_rewritten(self, generated: Path) -> None:
        """Test a second identical run writes nothing."""
        store = GeneratedStore(generated)
        store.write(build([monitor_part("a")]))

        assert store.write(build([monitor_part("a")])) == []

    def test_stale_files_removed(self, generated: Path) -> None:
        """Test files of resources no longer declared are removed."""
        GeneratedStore(generated).write(build([monitor_part("a"), monitor_part("b")]))
        GeneratedStore(generated).write(build([monitor_part("a")], kennel_id="other"))

        assert not (generated / "proj").exists()
        assert (generated / "other" / "a.json").exists()

    def test_project_filter_limits_cleanup(self, generated: Path) -> None:
        """Test other projects' files survive a filtered run."""
        GeneratedStore(generated).write(build([monitor_part("a")], kennel_id="other"))

        GeneratedStore(generated, SyncFilter(project_filter=["proj"])).write(
            build([monitor_part("b")])
        )

        assert (generated / "other" / "a.json").exists()
        assert (generated / "proj" / "b.json").exists()

    def test_tracking_filter_skips_cleanup(self, generated: Path) -> None:
        """Test nothing is removed when running on single resources."""
        GeneratedStore(generated).write(build([monitor_part("a"), monitor_part("b")]))

        GeneratedStore(generated, SyncFilter(tracking_id_filter=["proj:a"])).write(
            build([monitor_part("a")])
        )

        assert (generated / "proj" / "b.json").exists()

    def test_invalid_tracking_id(self, generated: Path) -> None:
        """Test tracking ids that do not map to a path are rejected."""
        with pytest.raises(StoreError):
            GeneratedStore(generated).path_for("no-separator")
