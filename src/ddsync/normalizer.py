"""Diff normalization rules engine.

The provider echoes objects back with noise that was never declared:
read-only fields, defaults it fills in silently, and collections in a
different order. Normalization removes that noise from an (expected, actual)
pair before diffing so that an unchanged declaration yields an empty diff.

DESIGN PHILOSOPHY:
- Rules are data: one table keyed by resource kind, no per-kind code
- Default awareness: a field equal to its default on both sides is dropped
- Order independence only for collections the provider does not order
- Both trees are mutated; callers pass copies they own

COMMON FALSE POSITIVES HANDLED:
1. Read-only fields (ids, timestamps, computed state)
2. Fields omitted by the API when set to their default
3. Default values the API fills in for omitted fields
4. "" / 0 / [] returned where null was declared
5. Tag ordering
6. Per widget-type defaults in dashboards, including grouped widgets
"""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .differ import DiffEntry, diff, values_equal
from .kinds import KIND_SPECS, ResourceKind
from .tree import PathKey, get_path, iter_containers

logger = logging.getLogger(__name__)


class NormalizationType(str, Enum):
    """Types of normalization operations."""

    # Drop keys from actual: the provider owns them
    READONLY = "readonly"

    # Drop key from both sides when each side is absent or equals the default
    DEFAULT_VALUE = "default_value"

    # Fill keys the provider omits (or returns as null) with their implied value
    FILL_ABSENT = "fill_absent"

    # "", 0, [], {} are equivalent to null
    EMPTY_EQUIVALENCE = "empty_equivalence"

    # Array order independence
    ARRAY_UNORDERED = "array_unordered"


@dataclass(frozen=True)
class NormalizationRule:
    """A single normalization rule.

    Attributes:
        kind: Resource kind to match, or "*" for all kinds.
        path: Pattern selecting the dict containers the rule applies to
            ("" is the root, "*" matches every list element).
        normalization_type: Type of normalization to apply.
        params: "keys" for READONLY/EMPTY_EQUIVALENCE/ARRAY_UNORDERED,
            "defaults" for DEFAULT_VALUE, "values" for FILL_ABSENT.
        when: Only containers whose fields have one of the listed values.
        root_when: Only payloads whose top-level fields have one of the listed values.
        reason: Human-readable explanation.
    """

    kind: ResourceKind | str
    path: str
    normalization_type: NormalizationType
    params: dict[str, Any] = field(default_factory=dict)
    when: dict[str, tuple[Any, ...]] = field(default_factory=dict)
    root_when: dict[str, tuple[Any, ...]] = field(default_factory=dict)
    reason: str = ""

    def matches(self, kind: ResourceKind | str) -> bool:
        """Check if this rule applies to a resource kind."""
        return self.kind == "*" or self.kind == kind

    def applies_to_root(self, root: dict[str, Any]) -> bool:
        return _fields_match(root, self.root_when)

    def applies_to_container(self, container: dict[str, Any] | None) -> bool:
        if not self.when:
            return True
        return container is not None and _fields_match(container, self.when)


def _fields_match(container: dict[str, Any], conditions: dict[str, tuple[Any, ...]]) -> bool:
    return all(container.get(key) in allowed for key, allowed in conditions.items())


# Defaults the dashboard API fills in per widget type
WIDGET_DEFAULTS: dict[str, dict[str, Any]] = {
    "timeseries": {
        "legend_size": "0",
        "markers": [],
        "yaxis": {"include_zero": True},
        "show_legend": False,
    },
    "note": {
        "show_tick": False,
        "tick_edge": "left",
        "tick_pos": "50%",
        "text_align": "left",
        "has_padding": True,
        "background_color": "white",
        "font_size": "14",
    },
    "query_value": {"autoscale": True, "time": {}, "title_align": "left", "title_size": "16"},
    "free_text": {"font_size": "auto"},
    "check_status": {"title_align": "left", "title_size": "16"},
    "slo": {"global_time_target": "0"},
    "query_table": {"time": {}, "title_align": "left", "title_size": "16"},
    "alert_graph": {"title_align": "left", "time": {}, "title_size": "16"},
    "toplist": {"title_align": "left", "title_size": "16", "time": {}},
    "group": {"title_align": "left"},
    "event_stream": {"title_align": "left", "title_size": "16"},
    "image": {"sizing": "zoom"},
    "hostmap": {"node_type": "host"},
}

# Top-level widgets and widgets nested one level inside a group
WIDGET_PATHS: tuple[str, ...] = ("widgets.*", "widgets.*.definition.widgets.*")


def _readonly_rules() -> list[NormalizationRule]:
    return [
        NormalizationRule(
            kind=spec.kind,
            path="",
            normalization_type=NormalizationType.READONLY,
            params={"keys": sorted(spec.readonly)},
            reason="Fields owned by the provider",
        )
        for spec in KIND_SPECS.values()
    ]


def _widget_rules() -> list[NormalizationRule]:
    rules: list[NormalizationRule] = []
    for widget_path in WIDGET_PATHS:
        rules.append(
            NormalizationRule(
                kind=ResourceKind.DASHBOARD,
                path=widget_path,
                normalization_type=NormalizationType.READONLY,
                params={"keys": ["id"]},
                reason="Widget ids are assigned by the provider",
            )
        )
        for widget_type, defaults in WIDGET_DEFAULTS.items():
            rules.append(
                NormalizationRule(
                    kind=ResourceKind.DASHBOARD,
                    path=f"{widget_path}.definition",
                    normalization_type=NormalizationType.DEFAULT_VALUE,
                    params={"defaults": defaults},
                    when={"type": (widget_type,)},
                    reason=f"Defaults filled in for {widget_type} widgets",
                )
            )
        rules.append(
            NormalizationRule(
                kind=ResourceKind.DASHBOARD,
                path=f"{widget_path}.definition.requests.*",
                normalization_type=NormalizationType.ARRAY_UNORDERED,
                params={"keys": ["conditional_formats"]},
                reason="Conditional formats come back in arbitrary order",
            )
        )
    return rules


DEFAULT_NORMALIZATION_RULES: list[NormalizationRule] = [
    *_readonly_rules(),
    # Tags come back in semi-random order and the order is never updated
    NormalizationRule(
        kind="*",
        path="",
        normalization_type=NormalizationType.ARRAY_UNORDERED,
        params={"keys": ["tags"]},
        reason="Tag order doesn't matter",
    ),
    # Monitors
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options",
        normalization_type=NormalizationType.READONLY,
        params={"keys": ["silenced"]},
        reason="Silencing is managed via the UI",
    ),
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options",
        normalization_type=NormalizationType.FILL_ABSENT,
        params={"values": {"include_tags": True, "require_full_window": True}},
        root_when={"type": ("service check", "event alert")},
        reason="Fields are not returned when set to true",
    ),
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options",
        normalization_type=NormalizationType.FILL_ABSENT,
        params={"values": {"thresholds": {"critical": 0}}},
        root_when={"type": ("event alert",)},
        reason="Thresholds are not returned when critical is 0",
    ),
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options.thresholds",
        normalization_type=NormalizationType.FILL_ABSENT,
        params={"values": {"ok": 1, "warning": 1}},
        root_when={"type": ("service check",)},
        reason="Thresholds are not returned when created with defaults via UI",
    ),
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options",
        normalization_type=NormalizationType.EMPTY_EQUIVALENCE,
        params={"keys": ["evaluation_delay", "escalation_message"]},
        reason="null / \"\" / 0 are not returned when set via the UI",
    ),
    NormalizationRule(
        kind=ResourceKind.MONITOR,
        path="options",
        normalization_type=NormalizationType.DEFAULT_VALUE,
        params={
            "defaults": {
                "escalation_message": None,
                "evaluation_delay": None,
                "no_data_timeframe": None,
            }
        },
        reason="Unset options are not returned",
    ),
    # SLOs
    NormalizationRule(
        kind=ResourceKind.SLO,
        path="thresholds.*",
        normalization_type=NormalizationType.READONLY,
        params={"keys": ["warning_display", "target_display"]},
        reason="Display values are computed by the provider",
    ),
    NormalizationRule(
        kind=ResourceKind.SLO,
        path="",
        normalization_type=NormalizationType.DEFAULT_VALUE,
        params={
            "defaults": {
                "description": None,
                "query": None,
                "groups": None,
                "monitor_ids": [],
                "thresholds": [],
            }
        },
        reason="SLO fields that default to empty",
    ),
    # Dashboards
    NormalizationRule(
        kind=ResourceKind.DASHBOARD,
        path="",
        normalization_type=NormalizationType.FILL_ABSENT,
        params={"values": {"template_variables": []}},
        reason="template_variables is null when it never had any",
    ),
    NormalizationRule(
        kind=ResourceKind.DASHBOARD,
        path="",
        normalization_type=NormalizationType.DEFAULT_VALUE,
        params={
            "defaults": {
                "description": "",
                "template_variables": [],
                "template_variable_presets": [],
            }
        },
        reason="Dashboard fields that default to empty",
    ),
    *_widget_rules(),
]


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _is_empty(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return value in ("", 0) or value == [] or value == {}


class DiffNormalizer:
    """Applies normalization rules to (expected, actual) payload pairs."""

    def __init__(
        self,
        rules: list[NormalizationRule] | None = None,
        enable_default_rules: bool = True,
        log_normalizations: bool = False,
    ) -> None:
        """Initialize normalizer.

        Args:
            rules: Custom normalization rules, applied after the defaults.
            enable_default_rules: Whether to include default rules.
            log_normalizations: Whether to log dropped fields at debug level.
        """
        self._rules: list[NormalizationRule] = []
        if enable_default_rules:
            self._rules.extend(DEFAULT_NORMALIZATION_RULES)
        if rules:
            self._rules.extend(rules)
        self._log_normalizations = log_normalizations

    def rules_for(self, kind: ResourceKind) -> list[NormalizationRule]:
        return [rule for rule in self._rules if rule.matches(kind)]

    def normalize(
        self, kind: ResourceKind, expected: dict[str, Any], actual: dict[str, Any]
    ) -> None:
        """Mutate both trees so that only meaningful differences remain.

        Rules run in table order.
        """
        for rule in self.rules_for(kind):
            root = actual if actual else expected
            if not rule.applies_to_root(root):
                continue

            match rule.normalization_type:
                case NormalizationType.READONLY:
                    for path, container in iter_containers(actual, rule.path):
                        if rule.applies_to_container(container):
                            self._drop_keys(kind, path, container, rule.params["keys"])
                case NormalizationType.FILL_ABSENT:
                    for _, container in iter_containers(actual, rule.path):
                        if rule.applies_to_container(container):
                            for key, value in rule.params["values"].items():
                                if container.get(key) is None:
                                    container[key] = copy.deepcopy(value)
                case NormalizationType.EMPTY_EQUIVALENCE:
                    for tree in (expected, actual):
                        for _, container in iter_containers(tree, rule.path):
                            for key in rule.params["keys"]:
                                if key in container and _is_empty(container[key]):
                                    container[key] = None
                case NormalizationType.ARRAY_UNORDERED:
                    for tree in (expected, actual):
                        for _, container in iter_containers(tree, rule.path):
                            for key in rule.params["keys"]:
                                if isinstance(container.get(key), list):
                                    container[key] = sorted(container[key], key=_canonical)
                case NormalizationType.DEFAULT_VALUE:
                    for e_container, a_container in self._paired_containers(
                        expected, actual, rule.path
                    ):
                        if rule.applies_to_container(a_container) or (
                            a_container is None and rule.applies_to_container(e_container)
                        ):
                            self._ignore_defaults(
                                e_container, a_container, rule.params["defaults"]
                            )

    def compute_diff(
        self, kind: ResourceKind, expected: dict[str, Any], actual: dict[str, Any]
    ) -> list[DiffEntry]:
        """Normalize copies of both payloads and diff them.

        Raises:
            AssertionError: If the trees differ but no diff entry was produced.
        """
        expected = copy.deepcopy(expected)
        actual = copy.deepcopy(actual)
        expected.pop("id", None)

        self.normalize(kind, expected, actual)

        if values_equal(expected, actual):
            return []
        entries = diff(expected, actual)
        if not entries:
            raise AssertionError(
                f"Normalized {kind.value} payloads differ but produced no diff entries"
            )
        return entries

    def _drop_keys(
        self,
        kind: ResourceKind,
        path: tuple[PathKey, ...],
        container: dict[str, Any],
        keys: list[str],
    ) -> None:
        dropped = [key for key in keys if container.pop(key, None) is not None]
        if dropped and self._log_normalizations:
            logger.debug(
                "Read-only fields dropped",
                extra={"kind": kind.value, "path": list(path), "fields": dropped},
            )

    @staticmethod
    def _paired_containers(
        expected: dict[str, Any], actual: dict[str, Any], pattern: str
    ) -> list[tuple[dict[str, Any] | None, dict[str, Any] | None]]:
        paths: dict[tuple[PathKey, ...], None] = {}
        for tree in (actual, expected):
            for path, _ in iter_containers(tree, pattern):
                paths.setdefault(path, None)

        pairs = []
        for path in paths:
            e_container = get_path(expected, path)
            a_container = get_path(actual, path)
            pairs.append(
                (
                    e_container if isinstance(e_container, dict) else None,
                    a_container if isinstance(a_container, dict) else None,
                )
            )
        return pairs

    @staticmethod
    def _ignore_defaults(
        expected: dict[str, Any] | None,
        actual: dict[str, Any] | None,
        defaults: dict[str, Any],
    ) -> None:
        definitions = [d for d in (actual, expected) if d is not None]
        for key, default in defaults.items():
            if all(key not in d or values_equal(d[key], default) for d in definitions):
                for d in definitions:
                    d.pop(key, None)


@dataclass
class NormalizationConfig:
    """Configuration for diff normalization.

    Attributes:
        rules: Custom normalization rules.
        enable_default_rules: Whether to include default rules.
        log_normalizations: Whether to log when normalizations are applied.
    """

    rules: list[NormalizationRule] = field(default_factory=list)
    enable_default_rules: bool = True
    log_normalizations: bool = False

    @classmethod
    def from_env(cls) -> NormalizationConfig:
        """Load configuration from environment.

        Environment Variables:
            ENABLE_DEFAULT_NORMALIZATION_RULES: If "false", disable defaults
            LOG_NORMALIZATIONS: If "true", log dropped fields at debug level
        """
        return cls(
            enable_default_rules=os.environ.get(
                "ENABLE_DEFAULT_NORMALIZATION_RULES", "true"
            ).lower() in ("true", "1", "yes"),
            log_normalizations=os.environ.get(
                "LOG_NORMALIZATIONS", "false"
            ).lower() in ("true", "1", "yes"),
        )


def create_normalizer_from_env() -> DiffNormalizer:
    """Create a DiffNormalizer from environment configuration."""
    config = NormalizationConfig.from_env()
    return DiffNormalizer(
        rules=config.rules,
        enable_default_rules=config.enable_default_rules,
        log_normalizations=config.log_normalizations,
    )


_default_normalizer = DiffNormalizer()


def normalize(kind: ResourceKind, expected: dict[str, Any], actual: dict[str, Any]) -> None:
    """Normalize a pair in place with the default rules."""
    _default_normalizer.normalize(kind, expected, actual)


def compute_diff(
    kind: ResourceKind, expected: dict[str, Any], actual: dict[str, Any]
) -> list[DiffEntry]:
    """Diff a declared payload against a downloaded one with the default rules."""
    return _default_normalizer.compute_diff(kind, expected, actual)
