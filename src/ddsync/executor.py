"""Plan execution against the provider.

Order of operations:
1. Superseded duplicates are deleted, so the kept object can be updated
2. Creates, each as soon as everything it references has an id
3. Updates, the same way
4. Remaining deletes, dependents before dependencies

Creates and updates run in a fixpoint loop: a pass executes every
operation whose references all resolve; ids returned by the provider are
fed back into the IdMap so the next pass can resolve more. A pass that
executes nothing means the remaining operations wait on each other.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from .api import ApiError
from .dependency import CircularDependencyError, DependencyGraph
from .id_map import IdMap
from .kinds import ResourceKind, resource_url
from .models import ActualObject
from .planner import Change, Plan, PlannedCreate, PlannedDelete, PlannedUpdate
from .resolver import references, resolve_all

if TYPE_CHECKING:
    from .api import DatadogApi

logger = logging.getLogger(__name__)

Op = TypeVar("Op", PlannedCreate, PlannedUpdate)


class ApplyError(Exception):
    """Raised when the provider rejects an operation.

    Attributes:
        kind: Resource kind of the failed operation.
        tracking_id: Tracking id of the failed operation.
        error: The underlying ApiError.
    """

    def __init__(self, kind: ResourceKind, tracking_id: str, error: ApiError) -> None:
        self.kind = kind
        self.tracking_id = tracking_id
        self.error = error
        super().__init__(f"{kind.value} {tracking_id}: {error}")


class Executor:
    """Executes a Plan, recording the changes made."""

    def __init__(
        self, api: DatadogApi, id_map: IdMap | None = None, app_url: str | None = None
    ) -> None:
        self._api = api
        self._id_map = id_map
        self._app_url = app_url
        self.changes: list[Change] = []

    def execute(self, plan: Plan) -> list[Change]:
        """Execute every operation of the plan.

        Returns:
            Executed changes, in execution order.

        Raises:
            ApplyError: If the provider rejects an operation.
            CircularDependencyError: If remaining operations reference each other.
            UnresolvableReferenceError: If a reference names an unknown resource.
        """
        id_map = self._id_map if self._id_map is not None else plan.id_map
        self.changes = []

        for delete in plan.superseded_deletes:
            self._delete(delete)

        self._each_resolved(plan.creates, id_map, lambda op: self._create(op, id_map))
        self._each_resolved(plan.updates, id_map, self._update)

        for delete in plan.remaining_deletes:
            self._delete(delete)

        logger.info("Plan executed", extra={"changes": len(self.changes)})
        return self.changes

    def _each_resolved(
        self, operations: list[Op], id_map: IdMap, run: Callable[[Op], None]
    ) -> None:
        pending = list(operations)
        while pending:
            remaining: list[Op] = []
            for op in pending:
                report = resolve_all(op.expected, id_map, force=False)
                if report.missing:
                    raise report.missing[0]
                if report.deferred:
                    remaining.append(op)
                else:
                    run(op)

            if len(remaining) == len(pending):
                self._raise_circular(remaining, id_map)
            pending = remaining

    @staticmethod
    def _raise_circular(stuck: list[Op], id_map: IdMap) -> None:
        graph = DependencyGraph()
        for op in stuck:
            graph.add_node(op.tracking_id, [ref.tracking_id for ref in references(op.expected)])
        members = graph.cycle_members() or [op.tracking_id for op in stuck]

        try:
            resolve_all(stuck[0].expected, id_map, force=True)
        except CircularDependencyError as e:
            raise CircularDependencyError(
                f"{e}\nResources waiting on each other: {', '.join(members)}",
                tracking_ids=members,
            ) from e
        raise CircularDependencyError(
            f"{stuck[0].tracking_id} could not be resolved. "
            f"Resources waiting on each other: {', '.join(members)}",
            tracking_ids=members,
        )

    def _create(self, op: PlannedCreate, id_map: IdMap) -> None:
        try:
            reply = self._api.create(op.kind, op.expected.payload)
        except ApiError as e:
            raise ApplyError(op.kind, op.tracking_id, e) from e

        self._record_ids(op, reply, id_map)
        self.changes.append(op.change(reply.id))
        logger.info(
            "Created resource",
            extra={
                "kind": op.kind.value,
                "tracking_id": op.tracking_id,
                "id": reply.id,
                "url": resource_url(op.kind, reply.id, self._app_url),
            },
        )

    @staticmethod
    def _record_ids(op: PlannedCreate, reply: ActualObject, id_map: IdMap) -> None:
        id_map.set(op.kind, op.tracking_id, reply.id)
        if op.kind == ResourceKind.SYNTHETIC_TEST and reply.payload.get("monitor_id") is not None:
            id_map.set(ResourceKind.MONITOR, op.tracking_id, reply.payload["monitor_id"])

    def _update(self, op: PlannedUpdate) -> None:
        try:
            self._api.update(op.kind, op.id, op.expected.payload)
        except ApiError as e:
            raise ApplyError(op.kind, op.tracking_id, e) from e

        self.changes.append(op.change())
        logger.info(
            "Updated resource",
            extra={
                "kind": op.kind.value,
                "tracking_id": op.tracking_id,
                "id": op.id,
                "url": resource_url(op.kind, op.id, self._app_url),
            },
        )

    def _delete(self, op: PlannedDelete) -> None:
        try:
            self._api.delete(op.kind, op.id)
        except ApiError as e:
            raise ApplyError(op.kind, op.tracking_id, e) from e

        self.changes.append(op.change())
        logger.info(
            "Deleted resource",
            extra={
                "kind": op.kind.value,
                "tracking_id": op.tracking_id,
                "id": op.id,
                "superseded": op.superseded,
            },
        )
