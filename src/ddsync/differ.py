"""Structural diff over normalized attribute trees.

Entries describe how to get from the actual (remote) tree to the expected
(declared) tree:

    ("~", "options.thresholds.critical", 10.0, 20.0)   changed
    ("+", "tags[2]", None, "team:a")                   only declared
    ("-", "options.silenced", {}, None)                only remote

Lists are compared position by position. Integers and floats compare by
value, so 1 == 1.0, but booleans never equal numbers.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from .tree import PathKey, format_path


class DiffEntry(NamedTuple):
    """A single difference between actual and expected."""

    op: str
    path: str
    old: Any
    new: Any


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def values_equal(a: Any, b: Any) -> bool:
    """Deep equality with int/float tolerance."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(values_equal(x, y) for x, y in zip(a, b, strict=True))
    if type(a) is not type(b):
        return False
    return a == b


def diff(expected: Any, actual: Any) -> list[DiffEntry]:
    """Compute the entries needed to turn actual into expected.

    Both trees must already be normalized.
    """
    if values_equal(expected, actual):
        return []
    entries: list[DiffEntry] = []
    _diff(actual, expected, (), entries)
    return entries


def _diff(actual: Any, expected: Any, path: tuple[PathKey, ...], out: list[DiffEntry]) -> None:
    if values_equal(actual, expected):
        return

    if isinstance(actual, dict) and isinstance(expected, dict):
        for key, value in actual.items():
            if key not in expected:
                out.append(DiffEntry("-", format_path((*path, key)), value, None))
            else:
                _diff(value, expected[key], (*path, key), out)
        for key, value in expected.items():
            if key not in actual:
                out.append(DiffEntry("+", format_path((*path, key)), None, value))
        return

    if isinstance(actual, list) and isinstance(expected, list):
        common = min(len(actual), len(expected))
        for index in range(common):
            _diff(actual[index], expected[index], (*path, index), out)
        for index in range(common, len(actual)):
            out.append(DiffEntry("-", format_path((*path, index)), actual[index], None))
        for index in range(common, len(expected)):
            out.append(DiffEntry("+", format_path((*path, index)), None, expected[index]))
        return

    out.append(DiffEntry("~", format_path(path), actual, expected))
