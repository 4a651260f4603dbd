"""Tracking-id codec.

A managed object carries its tracking id in one free-text field (monitor
message, dashboard/SLO description, ...), appended as a marker line:

    -- Managed by ddsync team_a:api_latency in parts/team_a.yaml, do not modify manually

Objects without a marker are foreign and never touched by a sync.
"""

from __future__ import annotations

import re
from typing import Any

from .kinds import KIND_SPECS, ResourceKind

MARKER_TEXT = "Managed by ddsync"

TRACKING_ID_SEGMENT = r"[A-Za-z0-9_.\-]+"
TRACKING_ID_PATTERN = re.compile(rf"^{TRACKING_ID_SEGMENT}:{TRACKING_ID_SEGMENT}$")


class TrackingError(Exception):
    """Raised when a tracking marker cannot be added or removed."""

    pass


class DoubleTrackingError(TrackingError):
    """Raised when a payload already carries a tracking marker."""

    pass


class MissingTrackingIdError(TrackingError):
    """Raised when stripping a marker from a payload that has none."""

    pass


def is_valid_tracking_id(value: str) -> bool:
    """Check a string against the project:kennel_id grammar."""
    return bool(TRACKING_ID_PATTERN.match(value))


def _marker_regex(marker_text: str) -> re.Pattern[str]:
    """Marker prefix; the location tail is not needed to recognize a managed object."""
    return re.compile(
        rf"-- {re.escape(marker_text)} ({TRACKING_ID_SEGMENT}:{TRACKING_ID_SEGMENT})"
    )


def _marker_line_regex(marker_text: str) -> re.Pattern[str]:
    # The optional leading newline is part of what encode() appends.
    # Locations may contain commas; an edited tail leaves the rest of the line.
    return re.compile(
        rf"\n?-- {re.escape(marker_text)} {TRACKING_ID_SEGMENT}:{TRACKING_ID_SEGMENT}"
        r"(?: in .*?, do not modify manually)?"
    )


def encode(tracking_id: str, source_location: str, marker_text: str = MARKER_TEXT) -> str:
    """Build the marker suffix for a tracking id.

    Raises:
        ValueError: If tracking_id does not match the grammar.
    """
    if not is_valid_tracking_id(tracking_id):
        raise ValueError(f"Invalid tracking id '{tracking_id}', expected project:kennel_id")
    return f"\n-- {marker_text} {tracking_id} in {source_location}, do not modify manually"


def _get_field(payload: dict[str, Any], path: tuple[str, ...]) -> Any:
    current: Any = payload
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _set_field(payload: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    current = payload
    for key in path[:-1]:
        current = current.setdefault(key, {})
    current[path[-1]] = value


def field_value(kind: ResourceKind, payload: dict[str, Any]) -> Any:
    """Current value of the kind's tracking field."""
    return _get_field(payload, KIND_SPECS[kind].tracking_field)


def parse(value: Any, marker_text: str = MARKER_TEXT) -> str | None:
    """Return the tracking id inside a free-text value, if any."""
    if not isinstance(value, str):
        return None
    match = _marker_regex(marker_text).search(value)
    return match.group(1) if match else None


def decode(
    kind: ResourceKind, payload: dict[str, Any], marker_text: str = MARKER_TEXT
) -> str | None:
    """Return the tracking id embedded in a payload, or None when unmanaged."""
    return parse(_get_field(payload, KIND_SPECS[kind].tracking_field), marker_text)


def add_tracking_id(
    kind: ResourceKind,
    payload: dict[str, Any],
    tracking_id: str,
    source_location: str,
    marker_text: str = MARKER_TEXT,
) -> dict[str, Any]:
    """Append the tracking marker to the kind's tracking field in place.

    Raises:
        DoubleTrackingError: If the field already carries a marker, which
            happens when an already-managed object was copy-pasted.
    """
    path = KIND_SPECS[kind].tracking_field
    if decode(kind, payload, marker_text) is not None:
        raise DoubleTrackingError(
            f"{tracking_id} Remove \"-- {marker_text}\" line from "
            f"{'.'.join(path)} to copy a resource"
        )
    current = _get_field(payload, path) or ""
    suffix = encode(tracking_id, source_location, marker_text)
    _set_field(payload, path, f"{current}{suffix}" if current else suffix.lstrip())
    return payload


def strip(
    kind: ResourceKind, payload: dict[str, Any], marker_text: str = MARKER_TEXT
) -> dict[str, Any]:
    """Remove the tracking marker from the kind's tracking field in place.

    Raises:
        MissingTrackingIdError: If there is no marker to remove.
    """
    path = KIND_SPECS[kind].tracking_field
    value = _get_field(payload, path)
    if not isinstance(value, str):
        raise MissingTrackingIdError(f"Did not find tracking id in {'.'.join(path)}: {value!r}")
    stripped, count = _marker_line_regex(marker_text).subn("", value, count=1)
    if count == 0:
        raise MissingTrackingIdError(f"Did not find tracking id in {'.'.join(path)}: {value!r}")
    _set_field(payload, path, stripped)
    return payload
