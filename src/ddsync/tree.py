"""Path helpers over JSON-like attribute trees.

Patterns are dotted key paths where "*" matches every element of a list,
e.g. "widgets.*.definition" selects each widget definition. The empty
pattern selects the root.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

PathKey = str | int


def split_pattern(pattern: str) -> list[str]:
    return [segment for segment in pattern.split(".") if segment] if pattern else []


def iter_containers(
    tree: Any, pattern: str
) -> Iterator[tuple[tuple[PathKey, ...], dict[str, Any]]]:
    """Yield (concrete_path, container) for every dict matching the pattern."""
    yield from _walk(tree, split_pattern(pattern), ())


def _walk(
    node: Any, segments: list[str], path: tuple[PathKey, ...]
) -> Iterator[tuple[tuple[PathKey, ...], dict[str, Any]]]:
    if not segments:
        if isinstance(node, dict):
            yield path, node
        return

    head, rest = segments[0], segments[1:]
    if head == "*":
        if isinstance(node, list):
            for index, item in enumerate(node):
                yield from _walk(item, rest, (*path, index))
    elif isinstance(node, dict) and head in node:
        yield from _walk(node[head], rest, (*path, head))


def get_path(tree: Any, path: tuple[PathKey, ...]) -> Any:
    """Follow a concrete path, returning None when any step is missing."""
    current = tree
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or key >= len(current):
                return None
        elif not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def format_path(path: tuple[PathKey, ...]) -> str:
    """Render a concrete path as `options.thresholds.critical` / `tags[0]`."""
    rendered = ""
    for key in path:
        if isinstance(key, int):
            rendered += f"[{key}]"
        else:
            rendered += f".{key}" if rendered else key
    return rendered
