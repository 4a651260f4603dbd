"""Builders for declared resources used across tests."""

from __future__ import annotations

from typing import Any

from ddsync.models import BuiltResource, Project

DEFAULT_TEAM = {"name": "team-a", "slack": "team-a-alerts"}


def monitor_part(kennel_id: str = "a", **overrides: Any) -> dict[str, Any]:
    return {
        "kind": "monitor",
        "kennel_id": kennel_id,
        "name": "API latency",
        "query": "avg(last_5m):avg:api.latency{*} > 10",
        "critical": 10,
        **overrides,
    }


def composite_part(kennel_id: str, query: str, **overrides: Any) -> dict[str, Any]:
    return monitor_part(kennel_id, type="composite", query=query, critical=1, **overrides)


def slo_part(kennel_id: str = "availability", **overrides: Any) -> dict[str, Any]:
    return {
        "kind": "slo",
        "kennel_id": kennel_id,
        "name": "API availability",
        "type": "monitor",
        "thresholds": [{"timeframe": "7d", "target": 99.9}],
        **overrides,
    }


def dashboard_part(kennel_id: str = "overview", **overrides: Any) -> dict[str, Any]:
    return {
        "kind": "dashboard",
        "kennel_id": kennel_id,
        "title": "Overview",
        **overrides,
    }


def synthetic_part(kennel_id: str = "ping", **overrides: Any) -> dict[str, Any]:
    return {
        "kind": "synthetics/tests",
        "kennel_id": kennel_id,
        "name": "Ping",
        "type": "api",
        "subtype": "http",
        "config": {"request": {"method": "GET", "url": "https://example.com"}},
        "locations": ["aws:eu-west-1"],
        **overrides,
    }


def project(
    parts: list[dict[str, Any]],
    kennel_id: str = "proj",
    team: dict[str, Any] | None = None,
    **fields: Any,
) -> Project:
    return Project.model_validate(
        {"kennel_id": kennel_id, "team": team or DEFAULT_TEAM, "parts": parts, **fields}
    )


def build(
    parts: list[dict[str, Any]], kennel_id: str = "proj", **fields: Any
) -> list[BuiltResource]:
    """Build the resources of one project, sourced from parts/<kennel_id>.yaml."""
    return project(parts, kennel_id, **fields).build(source=f"parts/{kennel_id}.yaml")
