"""Sync planning: what has to be created, updated and deleted.

This module compares declared resources with the objects downloaded from
the provider:
1. Download every object of every managed kind
2. Seed the IdMap (declared -> NEW, managed remote objects -> their id)
3. Resolve references best effort so unresolved placeholders don't show as diffs
4. Limit remote objects to the run's scope
5. Add tracking markers to the declared payloads
6. Match declared resources to remote objects by explicit id, then tracking id
7. Diff matched pairs; a non-empty diff is an update
8. Managed remote objects without a declaration are deleted
9. Unmatched declarations are created
10. Explicit ids that match nothing are stale
11. Order deletes/updates by kind and protect partial runs from re-tagging

Objects without a tracking marker are foreign: never updated unless a
declaration names their id, never deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, NamedTuple

from .differ import DiffEntry
from .filter import SyncFilter
from .id_map import IdMap
from .kinds import DELETE_ORDER, KIND_SPECS, ResourceKind
from .models import ActualObject, BuiltResource
from .normalizer import DiffNormalizer
from .resolver import resolve_all
from .tracking import add_tracking_id, field_value, parse, strip

if TYPE_CHECKING:
    from .api import DatadogApi

logger = logging.getLogger(__name__)


class PlanError(Exception):
    """Raised when a consistent plan cannot be computed."""

    pass


class DuplicateTrackingIdError(PlanError):
    """Raised when two declared resources share a tracking id or explicit id."""

    pass


class StaleExplicitIdError(PlanError):
    """Raised when a declared explicit id matches no remote object."""

    pass


class DisallowedUpdateError(PlanError):
    """Raised when a diff changes a field the provider refuses to update."""

    pass


class ChangeType(str, Enum):
    """Planned operation types."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Change(NamedTuple):
    """One executed or planned operation, for display and logging."""

    type: ChangeType
    api_resource: str
    tracking_id: str
    id: int | str | None


@dataclass
class PlannedCreate:
    """Declared resource with no remote counterpart."""

    TYPE: ClassVar[ChangeType] = ChangeType.CREATE

    expected: BuiltResource

    @property
    def kind(self) -> ResourceKind:
        return self.expected.kind

    @property
    def tracking_id(self) -> str:
        return self.expected.tracking_id

    def change(self, resource_id: int | str | None = None) -> Change:
        return Change(self.TYPE, self.kind.value, self.tracking_id, resource_id)


@dataclass
class PlannedUpdate:
    """Declared resource whose remote counterpart differs."""

    TYPE: ClassVar[ChangeType] = ChangeType.UPDATE

    expected: BuiltResource
    actual: ActualObject
    diff: list[DiffEntry]

    @property
    def kind(self) -> ResourceKind:
        return self.expected.kind

    @property
    def tracking_id(self) -> str:
        return self.expected.tracking_id

    @property
    def id(self) -> int | str | None:
        return self.actual.id

    def change(self) -> Change:
        return Change(self.TYPE, self.kind.value, self.tracking_id, self.id)


@dataclass
class PlannedDelete:
    """Managed remote object that is no longer declared.

    `superseded` marks a duplicate of a matched object (same tracking id),
    which must be removed before that object is updated.
    """

    TYPE: ClassVar[ChangeType] = ChangeType.DELETE

    actual: ActualObject
    superseded: bool = False

    @property
    def kind(self) -> ResourceKind:
        return self.actual.kind

    @property
    def tracking_id(self) -> str:
        return self.actual.tracking_id or ""

    @property
    def id(self) -> int | str | None:
        return self.actual.id

    def change(self) -> Change:
        return Change(self.TYPE, self.kind.value, self.tracking_id, self.id)


@dataclass
class Plan:
    """The operations needed to reconcile declared and remote state."""

    creates: list[PlannedCreate] = field(default_factory=list)
    updates: list[PlannedUpdate] = field(default_factory=list)
    deletes: list[PlannedDelete] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    id_map: IdMap = field(default_factory=IdMap, repr=False)

    @property
    def superseded_deletes(self) -> list[PlannedDelete]:
        return [d for d in self.deletes if d.superseded]

    @property
    def remaining_deletes(self) -> list[PlannedDelete]:
        return [d for d in self.deletes if not d.superseded]

    @property
    def changes(self) -> list[Change]:
        """Changes in execution order."""
        return [
            *(d.change() for d in self.superseded_deletes),
            *(c.change() for c in self.creates),
            *(u.change() for u in self.updates),
            *(d.change() for d in self.remaining_deletes),
        ]

    @property
    def empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


# Fields the provider refuses to change, with the transitions it does allow
IMMUTABLE_FIELDS: dict[ResourceKind, dict[str, set[tuple[Any, Any]]]] = {
    ResourceKind.MONITOR: {"type": {("metric alert", "query alert")}},
    ResourceKind.DASHBOARD: {"layout_type": set()},
}


def validate_update(kind: ResourceKind, tracking_id: str, diff: list[DiffEntry]) -> None:
    """Reject diffs the provider would refuse.

    Raises:
        DisallowedUpdateError: If an immutable field changes.
    """
    immutable = IMMUTABLE_FIELDS.get(kind, {})
    for entry in diff:
        allowed = immutable.get(entry.path)
        if allowed is None or (entry.old, entry.new) in allowed:
            continue
        raise DisallowedUpdateError(
            f"{tracking_id} Datadog does not allow update of {entry.path} "
            f"({entry.old!r} -> {entry.new!r})"
        )


def _delete_priority(kind: ResourceKind) -> int:
    return DELETE_ORDER.index(kind)


def _id_sort_key(resource_id: int | str | None) -> tuple[int, Any]:
    if isinstance(resource_id, int):
        return (0, resource_id)
    return (1, str(resource_id))


class Syncer:
    """Computes a Plan for declared resources against a provider.

    Attributes:
        id_map: The run's IdMap; seeded by plan() and handed to the executor.
    """

    def __init__(
        self,
        api: DatadogApi,
        expected: Iterable[BuiltResource],
        sync_filter: SyncFilter | None = None,
        strict_imports: bool = True,
        kinds: Iterable[ResourceKind] = DELETE_ORDER,
        normalizer: DiffNormalizer | None = None,
    ) -> None:
        self._api = api
        self._expected = list(expected)
        self._filter = sync_filter or SyncFilter()
        self._strict_imports = strict_imports
        self._kinds = tuple(kinds)
        self._normalizer = normalizer or DiffNormalizer()
        self.id_map = IdMap()

    def plan(self) -> Plan:
        """Compute the plan.

        Raises:
            DuplicateTrackingIdError: If declared lookup keys collide.
            StaleExplicitIdError: If an explicit id is stale under strict imports.
            DisallowedUpdateError: If an update changes an immutable field.
            FilterError: If a TRACKING_ID filter value matches nothing.
        """
        plan = Plan(id_map=self.id_map)

        expected = self._expected
        if self._filter.tracking_id_filter is not None:
            expected = self._filter.filter_resources(expected, key=lambda e: e.tracking_id)
        elif self._filter.filtering:
            expected = [e for e in expected if self._filter.matches_tracking_id(e.tracking_id)]

        actuals = self._download()
        self._populate_id_map(expected, actuals)

        for e in expected:
            resolve_all(e, self.id_map, force=False)

        actuals = [
            a
            for a in actuals
            if a.tracking_id is None or self._filter.matches_tracking_id(a.tracking_id)
        ]

        for e in expected:
            add_tracking_id(e.kind, e.payload, e.tracking_id, e.source)

        matched, unmatched_expected, unmatched_actual = self._partition(expected, actuals)

        # Matched objects exist: references to them no longer wait on a create
        for e, a in matched:
            self._set_ids(a.kind, e.tracking_id, a)

        for kind in {a.kind for _, a in matched}:
            if not KIND_SPECS[kind].list_is_complete:
                self._api.fill_details(kind, [a for _, a in matched if a.kind == kind])

        for e, a in matched:
            entries = self._normalizer.compute_diff(e.kind, e.payload, a.payload)
            if entries:
                validate_update(e.kind, e.tracking_id, entries)
                plan.updates.append(PlannedUpdate(expected=e, actual=a, diff=entries))

        matched_keys = {(a.kind, a.tracking_id) for _, a in matched}
        for a in unmatched_actual:
            if a.tracking_id is None:
                continue
            plan.deletes.append(
                PlannedDelete(actual=a, superseded=(a.kind, a.tracking_id) in matched_keys)
            )

        self._ensure_all_ids_found(unmatched_expected, plan)
        plan.creates = [PlannedCreate(expected=e) for e in unmatched_expected]

        plan.deletes.sort(key=lambda d: _delete_priority(d.kind))
        # SLOs must be updated before the monitors alerting on them
        plan.updates.sort(key=lambda u: _delete_priority(u.kind))

        self._prevent_irreversible_partial_updates(plan)

        for message in plan.warnings:
            logger.warning(message)
        logger.info(
            "Plan computed",
            extra={
                "creates": len(plan.creates),
                "updates": len(plan.updates),
                "deletes": len(plan.deletes),
                "warnings": len(plan.warnings),
            },
        )
        return plan

    def _download(self) -> list[ActualObject]:
        actuals: list[ActualObject] = []
        for kind in self._kinds:
            objects = self._api.list(kind)
            # Lowest id first, so the oldest of duplicated objects is the one kept
            actuals.extend(sorted(objects, key=lambda a: _id_sort_key(a.id)))
        return actuals

    def _set_ids(self, kind: ResourceKind, tracking_id: str, actual: ActualObject) -> None:
        self.id_map.set(kind, tracking_id, actual.id)
        if kind == ResourceKind.SYNTHETIC_TEST and actual.payload.get("monitor_id") is not None:
            self.id_map.set(ResourceKind.MONITOR, tracking_id, actual.payload["monitor_id"])

    def _populate_id_map(
        self, expected: list[BuiltResource], actuals: list[ActualObject]
    ) -> None:
        for e in expected:
            self.id_map.set_new(e.kind, e.tracking_id)
            # Synthetic tests come with a monitor that can be referenced
            if e.kind == ResourceKind.SYNTHETIC_TEST:
                self.id_map.set_new(ResourceKind.MONITOR, e.tracking_id)

        for a in actuals:
            if a.tracking_id is None:
                continue
            current = self.id_map.get(a.kind, a.tracking_id)
            # In scope but no longer declared: it is about to be deleted
            if current is None and self._filter.matches_tracking_id(a.tracking_id):
                continue
            # Duplicates: keep the first (lowest) id
            if current is not None and not self.id_map.is_new(a.kind, a.tracking_id):
                continue
            self._set_ids(a.kind, a.tracking_id, a)

    @staticmethod
    def _lookup_map(expected: list[BuiltResource]) -> dict[str, BuiltResource]:
        lookup: dict[str, BuiltResource] = {}
        for e in expected:
            keys = [e.tracking_id]
            if e.id is not None:
                keys.append(f"{e.kind.value}:{e.id}")
            for key in keys:
                if key in lookup:
                    other = lookup[key]
                    raise DuplicateTrackingIdError(
                        f"Lookup {key} is duplicated: {other.kind.value} {other.tracking_id} "
                        f"({other.source}) and {e.kind.value} {e.tracking_id} ({e.source})"
                    )
                lookup[key] = e
        return lookup

    def _partition(
        self, expected: list[BuiltResource], actuals: list[ActualObject]
    ) -> tuple[list[tuple[BuiltResource, ActualObject]], list[BuiltResource], list[ActualObject]]:
        lookup = self._lookup_map(expected)
        unmatched = {id(e): e for e in expected}
        matched: list[tuple[BuiltResource, ActualObject]] = []
        unmatched_actual: list[ActualObject] = []

        for a in actuals:
            e = lookup.get(f"{a.kind.value}:{a.id}")
            if e is None and a.tracking_id is not None:
                e = lookup.get(a.tracking_id)
            if e is not None and e.kind == a.kind and id(e) in unmatched:
                del unmatched[id(e)]
                matched.append((e, a))
            else:
                unmatched_actual.append(a)

        return matched, list(unmatched.values()), unmatched_actual

    def _ensure_all_ids_found(self, unmatched_expected: list[BuiltResource], plan: Plan) -> None:
        for e in unmatched_expected:
            if e.id is None:
                continue
            resource = e.kind.value
            if self._strict_imports:
                raise StaleExplicitIdError(
                    f"{e.tracking_id} Unable to find existing {resource} with id {e.id}\n"
                    f"If the {resource} was deleted, remove the `id: {e.id}` line."
                )
            plan.warnings.append(
                f"{resource} {e.tracking_id} specifies id {e.id}, but no such {resource} "
                f"exists. 'id' will be ignored. Remove the `id: {e.id}` line."
            )
            e.payload.pop("id", None)
            e.id = None

    def _prevent_irreversible_partial_updates(self, plan: Plan) -> None:
        """Do not tag pre-existing objects during a project-scoped run.

        When an object named by explicit id gains a tracking marker in a
        scoped run, a later unscoped run on another branch would see it as
        managed and delete it. The marker is removed from the payload and the
        update is dropped if nothing else changed.
        """
        if self._filter.project_filter is None:
            return

        kept: list[PlannedUpdate] = []
        for update in plan.updates:
            e = update.expected
            if e.id is None:
                kept.append(update)
                continue

            tracking_path = ".".join(KIND_SPECS[e.kind].tracking_field)
            entries: list[DiffEntry] = []
            for entry in update.diff:
                if entry.path != tracking_path or parse(entry.old) is not None:
                    entries.append(entry)
                    continue
                strip(e.kind, e.payload)
                stripped = DiffEntry(entry.op, entry.path, entry.old, field_value(e.kind, e.payload))
                if stripped.old != stripped.new:
                    entries.append(stripped)

            if entries:
                update.diff = entries
                kept.append(update)
            else:
                logger.info(
                    "Dropped tracking-only update in scoped run",
                    extra={"kind": e.kind.value, "tracking_id": e.tracking_id, "id": e.id},
                )
        plan.updates = kept
