"""Tests for reference resolution."""

from __future__ import annotations

import pytest

from ddsync.dependency import CircularDependencyError, UnresolvableReferenceError
from ddsync.id_map import IdMap
from ddsync.kinds import ResourceKind
from ddsync.models import BuiltResource
from ddsync.resolver import (
    Reference,
    ResolutionStatus,
    is_tracking_reference,
    references,
    resolve,
    resolve_all,
)


def _built(kind: ResourceKind, payload: dict, tracking_id: str = "proj:x") -> BuiltResource:
    return BuiltResource(kind=kind, tracking_id=tracking_id, payload=payload)


@pytest.fixture
def id_map() -> IdMap:
    id_map = IdMap()
    id_map.set(ResourceKind.MONITOR, "proj:existing", 123)
    id_map.set(ResourceKind.SLO, "proj:slo", "abc123")
    id_map.set_new(ResourceKind.MONITOR, "proj:new")
    return id_map


class TestResolve:
    """Tests for resolve()."""

    def test_raw_ids_unchanged(self, id_map: IdMap) -> None:
        """Test values that are not tracking ids pass through."""
        for value in (123, "123", "abc-def"):
            resolution = resolve(value, ResourceKind.MONITOR, id_map)
            assert resolution.status == ResolutionStatus.RESOLVED
            assert resolution.value == value

    def test_known_reference(self, id_map: IdMap) -> None:
        """Test a known tracking id is substituted."""
        resolution = resolve("proj:existing", ResourceKind.MONITOR, id_map)

        assert resolution.status == ResolutionStatus.RESOLVED
        assert resolution.value == 123

    def test_new_reference_deferred(self, id_map: IdMap) -> None:
        """Test a reference to a resource created later waits."""
        resolution = resolve("proj:new", ResourceKind.MONITOR, id_map)

        assert resolution.status == ResolutionStatus.DEFERRED
        assert resolution.value == "proj:new"

    def test_new_reference_forced_is_circular(self, id_map: IdMap) -> None:
        """Test forcing a reference to a resource not created yet."""
        resolution = resolve("proj:new", ResourceKind.MONITOR, id_map, force=True, referrer="proj:x")

        assert resolution.status == ResolutionStatus.FATAL
        assert isinstance(resolution.error, CircularDependencyError)
        assert "proj:x" in str(resolution.error)
        assert "circular dependency" in str(resolution.error)
        assert resolution.error.tracking_ids == ["proj:x", "proj:new"]

    def test_unknown_reference(self, id_map: IdMap) -> None:
        """Test a reference to nothing is fatal."""
        resolution = resolve("proj:gone", ResourceKind.MONITOR, id_map)

        assert resolution.status == ResolutionStatus.FATAL
        assert isinstance(resolution.error, UnresolvableReferenceError)
        assert "Unable to find monitor proj:gone" in str(resolution.error)

    def test_kind_matters(self, id_map: IdMap) -> None:
        """Test references resolve within the target kind only."""
        resolution = resolve("proj:existing", ResourceKind.SLO, id_map)

        assert resolution.status == ResolutionStatus.FATAL

    def test_is_tracking_reference(self) -> None:
        """Test tracking ids are recognized by their separator."""
        assert is_tracking_reference("proj:a") is True
        assert is_tracking_reference("123") is False
        assert is_tracking_reference(123) is False


class TestResolveAll:
    """Tests for resolve_all()."""

    def test_slo_monitor_ids(self, id_map: IdMap) -> None:
        """Test SLO monitor_ids mix of raw and tracking ids."""
        built = _built(ResourceKind.SLO, {"monitor_ids": [7, "proj:existing"]})

        report = resolve_all(built, id_map)

        assert report.resolved is True
        assert built.payload["monitor_ids"] == [7, 123]

    def test_composite_query_placeholders(self, id_map: IdMap) -> None:
        """Test %{tracking_id} placeholders in composite queries."""
        built = _built(
            ResourceKind.MONITOR,
            {"type": "composite", "query": "%{proj:existing} && !%{proj:new}"},
        )

        report = resolve_all(built, id_map)

        assert built.payload["query"] == "123 && !%{proj:new}"
        assert report.deferred == [Reference(ResourceKind.MONITOR, "proj:new")]
        assert report.resolved is False

    def test_slo_alert_query(self, id_map: IdMap) -> None:
        """Test SLO alerts reference SLOs."""
        built = _built(
            ResourceKind.MONITOR,
            {"type": "slo alert", "query": 'error_budget("%{proj:slo}").over("7d") > 10'},
        )

        resolve_all(built, id_map)

        assert built.payload["query"] == 'error_budget("abc123").over("7d") > 10'

    def test_placeholders_ignored_for_other_types(self, id_map: IdMap) -> None:
        """Test query alerts are never rewritten."""
        query = "avg(last_5m):avg:x{host:%{proj:existing}} > 1"
        built = _built(ResourceKind.MONITOR, {"type": "query alert", "query": query})

        resolve_all(built, id_map)

        assert built.payload["query"] == query

    def test_dashboard_widgets(self, id_map: IdMap) -> None:
        """Test widget references, including inside groups."""
        built = _built(
            ResourceKind.DASHBOARD,
            {
                "widgets": [
                    {"definition": {"type": "alert_graph", "alert_id": "proj:existing"}},
                    {"definition": {"type": "slo", "slo_id": "proj:slo"}},
                    {
                        "definition": {
                            "type": "group",
                            "widgets": [
                                {"definition": {"type": "uptime", "monitor_ids": ["proj:existing"]}}
                            ],
                        }
                    },
                ]
            },
        )

        report = resolve_all(built, id_map)

        widgets = built.payload["widgets"]
        assert report.resolved is True
        assert widgets[0]["definition"]["alert_id"] == "123"
        assert widgets[1]["definition"]["slo_id"] == "abc123"
        assert widgets[2]["definition"]["widgets"][0]["definition"]["monitor_ids"] == [123]

    def test_widget_type_must_match(self, id_map: IdMap) -> None:
        """Test fields on other widget types are left alone."""
        built = _built(
            ResourceKind.DASHBOARD,
            {"widgets": [{"definition": {"type": "note", "alert_id": "proj:existing"}}]},
        )

        resolve_all(built, id_map)

        assert built.payload["widgets"][0]["definition"]["alert_id"] == "proj:existing"

    def test_missing_reported_not_raised(self, id_map: IdMap) -> None:
        """Test best effort leaves unknown references in place."""
        built = _built(ResourceKind.SLO, {"monitor_ids": ["proj:gone"]})

        report = resolve_all(built, id_map)

        assert built.payload["monitor_ids"] == ["proj:gone"]
        assert len(report.missing) == 1
        assert isinstance(report.missing[0], UnresolvableReferenceError)

    def test_force_raises_missing(self, id_map: IdMap) -> None:
        """Test forced resolution raises on unknown references."""
        built = _built(ResourceKind.SLO, {"monitor_ids": ["proj:gone"]})

        with pytest.raises(UnresolvableReferenceError):
            resolve_all(built, id_map, force=True)

    def test_force_raises_circular(self, id_map: IdMap) -> None:
        """Test forced resolution raises on references still NEW."""
        built = _built(ResourceKind.SLO, {"monitor_ids": ["proj:new"]})

        with pytest.raises(CircularDependencyError):
            resolve_all(built, id_map, force=True)

    def test_references(self) -> None:
        """Test listing references left in a payload."""
        built = _built(
            ResourceKind.MONITOR,
            {"type": "composite", "query": "%{proj:a} || %{proj:b} || %{123}"},
        )

        assert references(built) == [
            Reference(ResourceKind.MONITOR, "proj:a"),
            Reference(ResourceKind.MONITOR, "proj:b"),
        ]
