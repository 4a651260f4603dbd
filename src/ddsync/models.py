"""Pydantic models for declared resources with validation.

These models provide:
1. Type-safe parsing of project (parts) files
2. Validation at the boundary, so payloads the provider would silently
   rewrite (and then report as a diff forever) are rejected up front
3. Building of provider payloads (BuiltResource)
"""

from __future__ import annotations

import copy
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .kinds import ResourceKind
from .tracking import decode

# Appended to names/titles so the UI shows the object is managed
LOCK = "\U0001f512"

KENNEL_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


def _validate_kennel_id(v: str) -> str:
    if not KENNEL_ID_PATTERN.match(v):
        raise ValueError(f"kennel_id '{v}' must only contain letters, digits, '_', '.' and '-'")
    return v


# =============================================================================
# Built / Actual Resources
# =============================================================================


@dataclass
class BuiltResource:
    """A declared resource rendered into a provider payload.

    `payload` is owned by the run: resolution and tracking rewrite it in place,
    the declaration it was built from is never touched.
    """

    kind: ResourceKind
    tracking_id: str
    payload: dict[str, Any]
    id: int | str | None = None
    source: str = ""

    @property
    def project(self) -> str:
        return self.tracking_id.split(":", 1)[0]

    @property
    def kennel_id(self) -> str:
        return self.tracking_id.split(":", 1)[1]


@dataclass
class ActualObject:
    """A downloaded provider object."""

    kind: ResourceKind
    payload: dict[str, Any] = field(default_factory=dict)
    tracking_id: str | None = None

    @classmethod
    def from_payload(cls, kind: ResourceKind, payload: dict[str, Any]) -> ActualObject:
        return cls(kind=kind, payload=payload, tracking_id=decode(kind, payload))

    @property
    def id(self) -> int | str | None:
        return self.payload.get("id")


# =============================================================================
# Projects
# =============================================================================


class Team(BaseModel):
    """Owning team; used for notification mentions and tags."""

    model_config = {"extra": "ignore"}

    name: str | None = None
    slack: str | None = None
    email: str | None = None

    @field_validator("slack")
    @classmethod
    def validate_slack(cls, v: str | None) -> str | None:
        if v is not None and v.startswith("#"):
            raise ValueError("slack channel must not start with '#'")
        return v

    @property
    def mention(self) -> str:
        if self.slack:
            return f"@slack-{self.slack}"
        if self.email:
            return f"@{self.email}"
        return ""

    @property
    def tags(self) -> list[str]:
        return [f"team:{self.name}"] if self.name else []


class ResourceSpec(BaseModel, ABC):
    """Fields shared by every declared resource."""

    model_config = {"extra": "ignore"}

    kennel_id: str
    id: int | str | None = None
    tags: list[str] | None = None

    @field_validator("kennel_id")
    @classmethod
    def validate_kennel_id(cls, v: str) -> str:
        return _validate_kennel_id(v)

    @property
    @abstractmethod
    def kind(self) -> ResourceKind: ...

    @abstractmethod
    def as_json(self, project: Project) -> dict[str, Any]:
        """Render the provider payload."""

    def build(self, project: Project, source: str = "") -> BuiltResource:
        """Render a BuiltResource owning a fresh copy of the payload."""
        payload = self.as_json(project)
        if self.id is not None:
            payload["id"] = self.id
        return BuiltResource(
            kind=self.kind,
            tracking_id=f"{project.kennel_id}:{self.kennel_id}",
            payload=copy.deepcopy(payload),
            id=self.id,
            source=source,
        )

    def resolved_tags(self, project: Project) -> list[str]:
        tags = self.tags if self.tags is not None else project.resolved_tags()
        return list(dict.fromkeys(tags))


# =============================================================================
# Monitors
# =============================================================================

RENOTIFY_INTERVALS = [0, 10, 20, 30, 40, 50, 60, 90, 120, 180, 240, 300, 360, 720, 1440]  # minutes
QUERY_INTERVALS = ["1m", "5m", "10m", "15m", "30m", "1h", "2h", "4h", "1d"]
OPTIONAL_SERVICE_CHECK_THRESHOLDS = ("ok", "warning")
# Event alerts don't return their multi setting
NON_MULTI_TYPES = ("query alert", "log alert", "composite")

QUERY_VALUE_PATTERN = re.compile(r"\s*[<>]\s*(\d+(\.\d+)?)\s*$")
QUERY_INTERVAL_PATTERN = re.compile(r"\(last_(\S+?)\)")


class Monitor(ResourceSpec):
    """Monitor declaration."""

    kind_name: Literal["monitor"] = Field("monitor", alias="kind")

    name: Annotated[str, Field(min_length=1)]
    query: Annotated[str, Field(min_length=1)]
    type: str = "query alert"
    message: str | None = None
    escalation_message: str = ""
    critical: float | int
    warning: float | int | None = None
    ok: float | int | None = None
    critical_recovery: float | int | None = None
    warning_recovery: float | int | None = None
    renotify_interval: int = 120
    timeout_h: int = 0
    evaluation_delay: int | None = None
    notify_no_data: bool = True
    no_data_timeframe: int | None = None
    notify_audit: bool = True
    multi: bool | None = None
    require_full_window: bool | None = None
    threshold_windows: dict[str, Any] | None = None

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.MONITOR

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        # The provider converts it to 'query alert', which then shows as a diff forever
        if v == "metric alert":
            raise ValueError(
                "type 'metric alert' is deprecated, do not set type to use the default 'query alert'"
            )
        return v

    @field_validator("renotify_interval")
    @classmethod
    def validate_renotify_interval(cls, v: int) -> int:
        if v not in RENOTIFY_INTERVALS:
            raise ValueError(f"renotify_interval must be one of {RENOTIFY_INTERVALS}")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self) -> Monitor:
        if self.type == "service check":
            values = [v for v in (self.ok, self.warning, self.critical) if v is not None]
            if any(not isinstance(v, int) or isinstance(v, bool) for v in values):
                raise ValueError("ok, warning and critical must be integers for service check type")

        query_value = QUERY_VALUE_PATTERN.search(self.query.strip())
        if query_value and float(query_value.group(1)) != float(self.critical):
            raise ValueError("critical and value used in query must match")

        if self.type == "query alert":
            interval = QUERY_INTERVAL_PATTERN.search(self.query)
            found = interval.group(1) if interval else None
            if found not in QUERY_INTERVALS:
                raise ValueError(
                    f"query interval was {found}, but must be one of {QUERY_INTERVALS}"
                )
        return self

    def _multi(self) -> bool:
        if self.multi is not None:
            return self.multi
        return self.type not in NON_MULTI_TYPES or " by " in self.query

    def _require_full_window(self) -> bool:
        if self.require_full_window is not None:
            return self.require_full_window
        # 'on average', 'at all times' and 'in total' aggregations default to true
        return self.type != "query alert" or self.query.startswith(("avg", "min", "sum"))

    def as_json(self, project: Project) -> dict[str, Any]:
        message = self.message if self.message is not None else f"\n\n{project.team.mention}"
        no_data_timeframe = self.no_data_timeframe
        if no_data_timeframe is None and self.notify_no_data:
            no_data_timeframe = 60

        thresholds: dict[str, Any] = {"critical": self.critical}
        for key in ("warning", "ok", "critical_recovery", "warning_recovery"):
            value = getattr(self, key)
            if value is not None:
                thresholds[key] = value

        match self.type:
            case "service check":
                for key in OPTIONAL_SERVICE_CHECK_THRESHOLDS:
                    thresholds.setdefault(key, 1)
            case "query alert":
                # Stored as float by the provider
                thresholds = {k: float(v) for k, v in thresholds.items()}

        options: dict[str, Any] = {
            "timeout_h": self.timeout_h,
            "notify_no_data": self.notify_no_data,
            "no_data_timeframe": no_data_timeframe,
            "notify_audit": self.notify_audit,
            "require_full_window": self._require_full_window(),
            "new_host_delay": 300,
            "include_tags": True,
            "escalation_message": self.escalation_message.strip() or None,
            "evaluation_delay": self.evaluation_delay,
            # true prevents any edit and breaks updates
            "locked": False,
            "renotify_interval": self.renotify_interval,
            "thresholds": thresholds,
        }
        if self.threshold_windows:
            options["threshold_windows"] = self.threshold_windows

        return {
            "name": f"{self.name}{LOCK}",
            "type": self.type,
            "query": self.query.strip(),
            "message": message.strip(),
            "tags": self.resolved_tags(project),
            "multi": self._multi(),
            "options": options,
        }


# =============================================================================
# SLOs
# =============================================================================


class Slo(ResourceSpec):
    """Service level objective declaration."""

    kind_name: Literal["slo"] = Field("slo", alias="kind")

    name: Annotated[str, Field(min_length=1)]
    type: Literal["metric", "monitor"]
    description: str | None = None
    thresholds: list[dict[str, Any]] = Field(default_factory=list)
    query: dict[str, Any] | None = None
    groups: list[str] | None = None
    monitor_ids: list[int | str] = Field(default_factory=list)

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.SLO

    @field_validator("thresholds")
    @classmethod
    def validate_thresholds(cls, v: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for threshold in v:
            warning = threshold.get("warning")
            if warning is not None and float(warning) <= float(threshold.get("critical") or 0):
                raise ValueError("Threshold warning must be greater-than critical value")
        return v

    def as_json(self, project: Project) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": f"{self.name}{LOCK}",
            "description": self.description,
            "thresholds": copy.deepcopy(self.thresholds),
            "monitor_ids": list(self.monitor_ids),
            "tags": self.resolved_tags(project),
            "type": self.type,
        }
        if self.query is not None:
            data["query"] = copy.deepcopy(self.query)
        if self.groups is not None:
            data["groups"] = list(self.groups)
        return data


# =============================================================================
# Dashboards
# =============================================================================


class Dashboard(ResourceSpec):
    """Dashboard declaration."""

    kind_name: Literal["dashboard"] = Field("dashboard", alias="kind")

    title: Annotated[str, Field(min_length=1)]
    description: str = ""
    layout_type: Literal["ordered", "free"] = "ordered"
    reflow_type: Literal["auto", "fixed"] | None = None
    template_variables: list[str | dict[str, Any]] = Field(default_factory=list)
    template_variable_presets: list[dict[str, Any]] = Field(default_factory=list)
    widgets: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.DASHBOARD

    def render_template_variables(self) -> list[dict[str, Any]]:
        return [
            {"default": "*", "prefix": v, "name": v} if isinstance(v, str) else copy.deepcopy(v)
            for v in self.template_variables
        ]

    def as_json(self, project: Project) -> dict[str, Any]:
        data: dict[str, Any] = {
            "layout_type": self.layout_type,
            "title": f"{self.title}{LOCK}",
            "description": self.description,
            "template_variables": self.render_template_variables(),
            "template_variable_presets": copy.deepcopy(self.template_variable_presets),
            "widgets": copy.deepcopy(self.widgets),
        }
        if self.reflow_type is not None:
            data["reflow_type"] = self.reflow_type
        if self.tags is not None:
            data["tags"] = list(dict.fromkeys(self.tags))
        return data


# =============================================================================
# Synthetic Tests
# =============================================================================

SYNTHETIC_LOCATIONS = [
    "aws:ca-central-1",
    "aws:eu-north-1",
    "aws:eu-west-1",
    "aws:eu-west-3",
    "aws:eu-west-2",
    "aws:ap-south-1",
    "aws:us-west-2",
    "aws:us-west-1",
    "aws:sa-east-1",
    "aws:us-east-2",
    "aws:ap-northeast-1",
    "aws:ap-northeast-2",
    "aws:eu-central-1",
    "aws:ap-southeast-2",
    "aws:ap-southeast-1",
]


class SyntheticTest(ResourceSpec):
    """Synthetic test declaration."""

    kind_name: Literal["synthetics/tests"] = Field("synthetics/tests", alias="kind")

    name: Annotated[str, Field(min_length=1)]
    type: str
    subtype: str | None = None
    message: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)
    locations: list[str] | Literal["all"]

    @property
    def kind(self) -> ResourceKind:
        return ResourceKind.SYNTHETIC_TEST

    def as_json(self, project: Project) -> dict[str, Any]:
        message = self.message if self.message is not None else f"\n\n{project.team.mention}"
        return {
            "message": message,
            "tags": self.resolved_tags(project),
            "config": copy.deepcopy(self.config),
            "type": self.type,
            "subtype": self.subtype,
            "options": copy.deepcopy(self.options),
            "name": f"{self.name}{LOCK}",
            "locations": list(SYNTHETIC_LOCATIONS if self.locations == "all" else self.locations),
        }


Part = Annotated[Monitor | Slo | Dashboard | SyntheticTest, Field(discriminator="kind_name")]


class Project(BaseModel):
    """A project: one team's set of declared resources."""

    model_config = {"extra": "ignore"}

    kennel_id: str
    team: Team = Field(default_factory=Team)
    tags: list[str] | None = None
    parts: list[Part] = Field(default_factory=list)

    @field_validator("kennel_id")
    @classmethod
    def validate_kennel_id(cls, v: str) -> str:
        return _validate_kennel_id(v)

    def resolved_tags(self) -> list[str]:
        if self.tags is not None:
            return list(self.tags)
        return [f"service:{self.kennel_id}", *self.team.tags]

    def build(self, source: str = "") -> list[BuiltResource]:
        return [part.build(self, source) for part in self.parts]
