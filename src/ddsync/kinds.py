"""Registry of the resource kinds managed by ddsync.

Every kind-specific behavior (tracking field, read-only attributes, delete
order, UI links) is looked up in KIND_SPECS instead of being spread over
subclasses. Normalization rules and reference locations are keyed by the
same ResourceKind values in their own modules.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ResourceKind(str, Enum):
    """Provider resource kinds, valued by their API endpoint name."""

    MONITOR = "monitor"
    DASHBOARD = "dashboard"
    SLO = "slo"
    SYNTHETIC_TEST = "synthetics/tests"


# Fields the provider sets on every object; never part of a declaration
COMMON_READONLY_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "deleted",
        "id",
        "created",
        "created_at",
        "creator",
        "org_id",
        "modified",
        "modified_at",
        "api_resource",
    }
)


@dataclass(frozen=True)
class KindSpec:
    """Static description of one resource kind.

    Attributes:
        kind: The resource kind.
        tracking_field: Path to the free-text field holding the tracking marker.
        readonly: Attributes the provider adds that are never declared.
        delete_priority: Lower deletes first (dependents before dependencies).
        url_path: UI path template, formatted with the provider id.
        list_is_complete: False when the list endpoint omits details needed for diffing.
        id_type: Python type of provider ids for this kind.
    """

    kind: ResourceKind
    tracking_field: tuple[str, ...]
    readonly: frozenset[str]
    delete_priority: int
    url_path: str
    list_is_complete: bool = True
    id_type: type = str

    @property
    def api_resource(self) -> str:
        """Provider endpoint name."""
        return self.kind.value


KIND_SPECS: dict[ResourceKind, KindSpec] = {
    ResourceKind.DASHBOARD: KindSpec(
        kind=ResourceKind.DASHBOARD,
        tracking_field=("description",),
        readonly=COMMON_READONLY_ATTRIBUTES
        | {"url", "notify_list", "is_read_only", "author_name", "author_handle"},
        delete_priority=0,
        url_path="/dashboard/{id}",
        list_is_complete=False,
    ),
    ResourceKind.SLO: KindSpec(
        kind=ResourceKind.SLO,
        tracking_field=("description",),
        readonly=COMMON_READONLY_ATTRIBUTES
        | {"type_id", "monitor_tags", "target_threshold", "timeframe", "warning_threshold"},
        delete_priority=1,
        url_path="/slo?slo_id={id}",
    ),
    ResourceKind.MONITOR: KindSpec(
        kind=ResourceKind.MONITOR,
        tracking_field=("message",),
        readonly=COMMON_READONLY_ATTRIBUTES
        | {
            "matching_downtimes",
            "overall_state",
            "overall_state_modified",
            "restricted_roles",
        },
        delete_priority=2,
        url_path="/monitors/{id}/edit",
        id_type=int,
    ),
    ResourceKind.SYNTHETIC_TEST: KindSpec(
        kind=ResourceKind.SYNTHETIC_TEST,
        tracking_field=("message",),
        readonly=COMMON_READONLY_ATTRIBUTES | {"status", "monitor_id"},
        delete_priority=3,
        url_path="/synthetics/details/{id}",
    ),
}

# Dashboards reference monitors and SLOs, SLOs reference monitors
DELETE_ORDER: tuple[ResourceKind, ...] = tuple(
    sorted(KIND_SPECS, key=lambda k: KIND_SPECS[k].delete_priority)
)


def get_kind_spec(kind: ResourceKind | str) -> KindSpec:
    """Look up the KindSpec for a kind or its api_resource name.

    Raises:
        ValueError: If the kind is unknown.
    """
    try:
        return KIND_SPECS[ResourceKind(kind)]
    except ValueError as e:
        valid = [k.value for k in ResourceKind]
        raise ValueError(f"Unknown resource kind '{kind}'. Valid kinds: {valid}") from e


def resource_url(kind: ResourceKind, resource_id: int | str, app_url: str | None = None) -> str:
    """UI link for a resource, absolute when an app_url is given."""
    path = KIND_SPECS[kind].url_path.format(id=resource_id)
    if app_url:
        return f"{app_url}{path}"
    return path
