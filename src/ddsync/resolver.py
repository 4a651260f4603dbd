"""Reference resolution between declared resources.

Declared payloads may reference other resources by tracking id instead of
provider id, for example an SLO listing `team_a:api_latency` in its
`monitor_ids`. Resolution swaps those references for provider ids looked up
in the run's IdMap.

`resolve()` never raises: it returns a Resolution whose status says whether
the reference was substituted, must wait for a resource created later in
the run, or can never be satisfied.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, NamedTuple

from .dependency import (
    CircularDependencyError,
    DependencyError,
    UnresolvableReferenceError,
)
from .id_map import IdMap
from .kinds import ResourceKind
from .tree import iter_containers

if TYPE_CHECKING:
    from .models import BuiltResource

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"%\{(.*?)\}")

# Widget definitions at the top level and one level deep inside group widgets
WIDGET_DEFINITION_PATHS: tuple[str, ...] = (
    "widgets.*.definition",
    "widgets.*.definition.widgets.*.definition",
)


class ResolutionStatus(str, Enum):
    """Outcome of resolving one reference."""

    RESOLVED = "resolved"  # Substituted, or not a reference at all
    DEFERRED = "deferred"  # Target is created later in this run
    FATAL = "fatal"  # Can never be resolved


@dataclass(frozen=True)
class Resolution:
    """Result of resolving one value."""

    status: ResolutionStatus
    value: Any = None
    error: DependencyError | None = None


class Reference(NamedTuple):
    """A tracking-id reference found in a payload."""

    target: ResourceKind
    tracking_id: str


class ReferenceStyle(str, Enum):
    """How references are embedded in a field."""

    PLACEHOLDER = "placeholder"  # %{tracking_id} inside a string
    LIST = "list"  # list of ids
    SCALAR = "scalar"  # a single id


@dataclass(frozen=True)
class ReferenceLocation:
    """A place in a payload of `kind` that may hold references to `target`.

    Attributes:
        kind: Kind of the referencing resource.
        path: Pattern selecting the containers holding the field.
        key: Field inside each container.
        target: Kind of the referenced resource.
        style: How references are embedded.
        when: Only containers whose fields have one of the listed values.
        root_when: Only payloads whose top-level fields have one of the listed values.
        stringify: Store resolved ids as strings.
    """

    kind: ResourceKind
    path: str
    key: str
    target: ResourceKind
    style: ReferenceStyle
    when: dict[str, tuple[Any, ...]] = field(default_factory=dict)
    root_when: dict[str, tuple[Any, ...]] = field(default_factory=dict)
    stringify: bool = False


def _widget_locations() -> list[ReferenceLocation]:
    locations = []
    for path in WIDGET_DEFINITION_PATHS:
        locations += [
            ReferenceLocation(
                kind=ResourceKind.DASHBOARD,
                path=path,
                key="monitor_ids",
                target=ResourceKind.MONITOR,
                style=ReferenceStyle.LIST,
                when={"type": ("uptime",)},
            ),
            # alert_id is a monitor id, but the provider stores it as a string
            ReferenceLocation(
                kind=ResourceKind.DASHBOARD,
                path=path,
                key="alert_id",
                target=ResourceKind.MONITOR,
                style=ReferenceStyle.SCALAR,
                when={"type": ("alert_graph",)},
                stringify=True,
            ),
            ReferenceLocation(
                kind=ResourceKind.DASHBOARD,
                path=path,
                key="slo_id",
                target=ResourceKind.SLO,
                style=ReferenceStyle.SCALAR,
                when={"type": ("slo",)},
            ),
        ]
    return locations


REFERENCE_LOCATIONS: list[ReferenceLocation] = [
    ReferenceLocation(
        kind=ResourceKind.MONITOR,
        path="",
        key="query",
        target=ResourceKind.MONITOR,
        style=ReferenceStyle.PLACEHOLDER,
        root_when={"type": ("composite",)},
    ),
    ReferenceLocation(
        kind=ResourceKind.MONITOR,
        path="",
        key="query",
        target=ResourceKind.SLO,
        style=ReferenceStyle.PLACEHOLDER,
        root_when={"type": ("slo alert",)},
    ),
    ReferenceLocation(
        kind=ResourceKind.SLO,
        path="",
        key="monitor_ids",
        target=ResourceKind.MONITOR,
        style=ReferenceStyle.LIST,
    ),
    *_widget_locations(),
]


def is_tracking_reference(value: Any) -> bool:
    """Provider ids never contain ':', tracking ids always do."""
    return isinstance(value, str) and ":" in value


def resolve(
    value: Any,
    target: ResourceKind,
    id_map: IdMap,
    force: bool = False,
    referrer: str | None = None,
) -> Resolution:
    """Resolve a single value that may be a tracking-id reference.

    Args:
        value: Raw provider id or tracking id.
        target: Kind of the referenced resource.
        id_map: Run-scoped id registry.
        force: Treat a target created later in the run as a circular dependency.
        referrer: Tracking id of the referencing resource, for error messages.
    """
    if not is_tracking_reference(value):
        return Resolution(ResolutionStatus.RESOLVED, value)

    if id_map.is_new(target, value):
        if not force:
            return Resolution(ResolutionStatus.DEFERRED, value)
        return Resolution(
            ResolutionStatus.FATAL,
            value,
            CircularDependencyError(
                f"{referrer} {target.value} {value} was referenced but is also created "
                "by the current run.\nIt could not be created because of a circular "
                "dependency. Try creating only some of the resources.",
                tracking_ids=[t for t in (referrer, value) if t],
            ),
        )

    resource_id = id_map.get(target, value)
    if resource_id is not None:
        return Resolution(ResolutionStatus.RESOLVED, resource_id)

    return Resolution(
        ResolutionStatus.FATAL,
        value,
        UnresolvableReferenceError(
            f"{referrer} Unable to find {target.value} {value}\n"
            "This is either because it doesn't exist, and isn't being created by the "
            "current run; or it does exist, but is being deleted."
        ),
    )


@dataclass
class ResolutionReport:
    """What is left unresolved in a payload after resolve_all()."""

    deferred: list[Reference] = field(default_factory=list)
    missing: list[UnresolvableReferenceError] = field(default_factory=list)

    @property
    def resolved(self) -> bool:
        return not self.deferred and not self.missing


def locations_for(kind: ResourceKind) -> list[ReferenceLocation]:
    return [location for location in REFERENCE_LOCATIONS if location.kind == kind]


def _iter_fields(
    payload: dict[str, Any], location: ReferenceLocation
) -> list[dict[str, Any]]:
    if any(payload.get(k) not in allowed for k, allowed in location.root_when.items()):
        return []
    containers = []
    for _, container in iter_containers(payload, location.path):
        if any(container.get(k) not in allowed for k, allowed in location.when.items()):
            continue
        if container.get(location.key) is not None:
            containers.append(container)
    return containers


def resolve_all(built: BuiltResource, id_map: IdMap, force: bool = False) -> ResolutionReport:
    """Resolve every reference in a built payload, rewriting it in place.

    With force=False nothing raises: unknown references are reported as
    missing and left in the payload. With force=True the first reference that
    can never resolve raises its error.

    Raises:
        CircularDependencyError: force=True and the target is created later in the run.
        UnresolvableReferenceError: force=True and the target is unknown.
    """
    report = ResolutionReport()

    def apply(value: Any, location: ReferenceLocation) -> Any:
        resolution = resolve(value, location.target, id_map, force, built.tracking_id)
        match resolution.status:
            case ResolutionStatus.RESOLVED:
                if location.stringify:
                    return str(resolution.value)
                return resolution.value
            case ResolutionStatus.DEFERRED:
                report.deferred.append(Reference(location.target, value))
            case ResolutionStatus.FATAL:
                if force:
                    raise resolution.error
                report.missing.append(resolution.error)
        return value

    def substitute(match: re.Match[str], location: ReferenceLocation) -> str:
        if not is_tracking_reference(match.group(1)):
            return match.group(0)
        resolved = apply(match.group(1), location)
        return match.group(0) if resolved == match.group(1) else str(resolved)

    for location in locations_for(built.kind):
        for container in _iter_fields(built.payload, location):
            current = container[location.key]
            match location.style:
                case ReferenceStyle.PLACEHOLDER:
                    if isinstance(current, str):
                        container[location.key] = PLACEHOLDER_PATTERN.sub(
                            lambda m, loc=location: substitute(m, loc), current
                        )
                case ReferenceStyle.LIST:
                    if isinstance(current, list):
                        container[location.key] = [apply(v, location) for v in current]
                case ReferenceStyle.SCALAR:
                    container[location.key] = apply(current, location)

    for error in report.missing:
        logger.warning(
            "Reference not resolvable yet, will be linked in the next run",
            extra={
                "kind": built.kind.value,
                "tracking_id": built.tracking_id,
                "error": str(error),
            },
        )
    return report


def references(built: BuiltResource) -> list[Reference]:
    """List every tracking-id reference still present in a payload."""
    found: list[Reference] = []
    for location in locations_for(built.kind):
        for container in _iter_fields(built.payload, location):
            current = container[location.key]
            match location.style:
                case ReferenceStyle.PLACEHOLDER:
                    if isinstance(current, str):
                        found += [
                            Reference(location.target, m.group(1))
                            for m in PLACEHOLDER_PATTERN.finditer(current)
                            if is_tracking_reference(m.group(1))
                        ]
                case ReferenceStyle.LIST:
                    if isinstance(current, list):
                        found += [
                            Reference(location.target, v)
                            for v in current
                            if is_tracking_reference(v)
                        ]
                case ReferenceStyle.SCALAR:
                    if is_tracking_reference(current):
                        found.append(Reference(location.target, current))
    return found
