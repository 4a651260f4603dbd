"""Tests for the command line."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from datadog_mock import MockDatadogApi
from datadog_mock.factories import build, monitor_part
from ddsync.api import DatadogApi
from ddsync.cli import cli, format_diff_entry, format_plan
from ddsync.differ import DiffEntry
from ddsync.executor import Executor
from ddsync.kinds import ResourceKind
from ddsync.planner import Plan, Syncer

PROJECT = """\
kennel_id: team_a
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
"""


@pytest.fixture
def workspace(tmp_path: Path) -> Iterator[Path]:
    parts = tmp_path / "parts"
    parts.mkdir()
    (parts / "team_a.yaml").write_text(PROJECT)
    env = {
        "DATADOG_API_KEY": "api-key",
        "DATADOG_APP_KEY": "app-key",
        "PARTS_DIR": str(parts),
        "GENERATED_DIR": str(tmp_path / "generated"),
    }
    with patch.dict(os.environ, env, clear=True):
        yield tmp_path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def connected(api: MockDatadogApi) -> Iterator[MockDatadogApi]:
    with patch.object(DatadogApi, "from_config", return_value=api):
        yield api


@pytest.fixture(autouse=True)
def _restore_root_level() -> Iterator[None]:
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


class TestGenerate:
    """Tests for the generate command."""

    def test_generate(self, runner: CliRunner, workspace: Path) -> None:
        """Test payloads are written without credentials."""
        del os.environ["DATADOG_API_KEY"]

        result = runner.invoke(cli, ["generate"])

        assert result.exit_code == 0, result.output
        assert "Generated 2 resources (2 changed)" in result.output
        assert (workspace / "generated" / "team_a" / "api_latency.json").exists()

    def test_invalid_project(self, runner: CliRunner, workspace: Path) -> None:
        """Test load errors are reported without a traceback."""
        (workspace / "parts" / "broken.yaml").write_text("kennel_id: [unclosed")

        result = runner.invoke(cli, ["generate"])

        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class TestPlan:
    """Tests for the plan command."""

    def test_plan_lists_creates(
        self, runner: CliRunner, workspace: Path, connected: MockDatadogApi
    ) -> None:
        """Test a fresh account plans every resource as a create."""
        result = runner.invoke(cli, ["plan"])

        assert result.exit_code == 0, result.output
        assert "Create monitor team_a:api_latency" in result.output
        assert "Create slo team_a:api_availability" in result.output
        assert connected.operations("create") == []

    def test_missing_credentials(self, runner: CliRunner, workspace: Path) -> None:
        """Test plan refuses to run without keys."""
        del os.environ["DATADOG_APP_KEY"]

        result = runner.invoke(cli, ["plan"])

        assert result.exit_code == 1
        assert "DATADOG_APP_KEY is required" in result.output

    def test_project_filter(
        self, runner: CliRunner, workspace: Path, connected: MockDatadogApi
    ) -> None:
        """Test an unknown project in the filter is an error."""
        os.environ["PROJECT"] = "team_b"

        result = runner.invoke(cli, ["plan"])

        assert result.exit_code == 1
        assert "PROJECT=team_b matched 0 projects" in result.output


class TestUpdate:
    """Tests for the update command."""

    def test_update_applies(
        self, runner: CliRunner, workspace: Path, connected: MockDatadogApi
    ) -> None:
        """Test --yes executes the plan and a second run has nothing to do."""
        result = runner.invoke(cli, ["update", "--yes"])

        assert result.exit_code == 0, result.output
        assert "Created monitor team_a:api_latency" in result.output
        assert "Created slo team_a:api_availability" in result.output
        assert connected.count(ResourceKind.SLO) == 1

        result = runner.invoke(cli, ["plan"])
        assert "Nothing to do" in result.output

    def test_update_declined(
        self, runner: CliRunner, workspace: Path, connected: MockDatadogApi
    ) -> None:
        """Test answering no to the confirmation changes nothing."""
        result = runner.invoke(cli, ["update"], input="n\n")

        assert result.exit_code == 0, result.output
        assert "Execute Plan ?" in result.output
        assert connected.operations("create") == []

    def test_update_failure(
        self, runner: CliRunner, workspace: Path, connected: MockDatadogApi
    ) -> None:
        """Test a rejected operation exits with its context."""
        connected.inject_failure("create", ResourceKind.SLO, 400)

        result = runner.invoke(cli, ["update", "-y"])

        assert result.exit_code == 1
        assert "slo team_a:api_availability" in result.output
        assert connected.count(ResourceKind.MONITOR) == 1

    def test_update_links_to_subdomain(
        self,
        runner: CliRunner,
        workspace: Path,
        connected: MockDatadogApi,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test applied changes are logged with links on the configured subdomain and site."""
        with patch.dict(os.environ, {"DATADOG_SITE": "datadoghq.eu", "DATADOG_SUBDOMAIN": "acme"}):
            result = runner.invoke(cli, ["update", "--yes"])

        assert result.exit_code == 0, result.output
        urls = [r.url for r in caplog.records if r.getMessage() == "Created resource"]
        assert len(urls) == 2
        assert all(url.startswith("https://acme.datadoghq.eu/") for url in urls)


class TestLogLevel:
    """Tests for LOG_LEVEL handling."""

    def test_log_level_applied(self, runner: CliRunner, workspace: Path) -> None:
        """Test the configured level is set on the root logger."""
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}):
            result = runner.invoke(cli, ["generate"])

        assert result.exit_code == 0, result.output
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level(self, runner: CliRunner, workspace: Path) -> None:
        """Test an unknown level is reported instead of ignored."""
        with patch.dict(os.environ, {"LOG_LEVEL": "chatty"}):
            result = runner.invoke(cli, ["generate"])

        assert result.exit_code == 1
        assert "LOG_LEVEL must be one of" in result.output


class TestFormatPlan:
    """Tests for plan formatting."""

    def test_empty_plan_keeps_warnings(self) -> None:
        """Test warnings are shown even when nothing changes."""
        plan = Plan(warnings=["proj:a is not managed yet"])

        assert format_plan(plan) == ["Plan:", "Warning: proj:a is not managed yet", "Nothing to do"]

    def test_update_lines(self, api: MockDatadogApi) -> None:
        """Test updates are followed by their diff entries."""
        Executor(api).execute(Syncer(api, build([monitor_part("a")])).plan())

        changed = monitor_part("a", critical=5, query="avg(last_5m):avg:api.latency{*} > 5")
        lines = format_plan(Syncer(api, build([changed])).plan())

        assert lines[:2] == ["Plan:", "Update monitor proj:a"]
        assert "  ~options.thresholds.critical 10.0 -> 5.0" in lines

    def test_diff_entries(self) -> None:
        """Test each diff operation renders with its values."""
        assert format_diff_entry(DiffEntry("~", "name", "a", "b")) == "  ~name 'a' -> 'b'"
        assert format_diff_entry(DiffEntry("+", "tags[0]", None, "x")) == "  +tags[0] 'x'"
        assert format_diff_entry(DiffEntry("-", "options.timeout_h", 1, None)) == "  -options.timeout_h 1"
