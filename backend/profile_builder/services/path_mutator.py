"""Path-based reads and writes on the profile document.

Paths use dotted keys with optional list indices:

    personalInfo.email
    experience[0].endDate
    experience[1].bullets[2]

Writes never modify their input. set_value() returns a new document with the
value in place, creating any missing intermediate dicts or lists on the way.
A syntactically invalid path raises InvalidPathError, as does a path whose
key step meets an existing list or whose index step meets an existing dict.
Both are programmer errors and are never caught by the pipeline.
"""

import copy
import re
from functools import lru_cache
from typing import Any

from profile_builder.services.pipeline_errors import InvalidPathError

__all__ = ["append_item", "get_value", "parse_path", "set_value"]

_SEGMENT_PATTERN = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)((?:\[\d+\])*)$")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")

PathToken = str | int


@lru_cache(maxsize=256)
def parse_path(path: str) -> tuple[PathToken, ...]:
    """Split a path into key (str) and index (int) tokens.

    Args:
        path: Dotted/indexed path, e.g. "experience[0].endDate".

    Returns:
        Tuple of tokens, e.g. ("experience", 0, "endDate").

    Raises:
        InvalidPathError: If the path is empty or any segment is malformed.
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError(str(path), "path is empty")

    tokens: list[PathToken] = []
    for segment in path.split("."):
        match = _SEGMENT_PATTERN.match(segment)
        if match is None:
            raise InvalidPathError(path, f"bad segment '{segment}'")
        tokens.append(match.group(1))
        tokens.extend(int(index) for index in _INDEX_PATTERN.findall(match.group(2)))
    return tuple(tokens)


def get_value(doc: Any, path: str, default: Any = None) -> Any:
    """Read the value at path.

    Args:
        doc: Profile document (or any nested dict/list structure).
        path: Dotted/indexed path.
        default: Returned when any step of the path is missing.

    Returns:
        The value at path, or default.

    Raises:
        InvalidPathError: If the path is malformed.
    """
    current = doc
    for token in parse_path(path):
        if isinstance(token, int):
            if not isinstance(current, list) or token >= len(current):
                return default
            current = current[token]
        else:
            if not isinstance(current, dict) or token not in current:
                return default
            current = current[token]
    return current


def _blank_for(token: PathToken | None) -> Any:
    """Container needed to hold the next token (None at the leaf)."""
    if token is None:
        return None
    if isinstance(token, int):
        return []
    return {}


def _descend(
    path: str, container: Any, token: PathToken, next_token: PathToken | None
) -> Any:
    """Ensure container[token] can hold next_token and return it."""
    blank = _blank_for(next_token)
    if isinstance(token, int):
        while len(container) <= token:
            container.append(copy.deepcopy(blank))
        child = container[token]
    else:
        child = container.get(token)

    if next_token is None:
        return child

    wrong_type = (
        not isinstance(child, list)
        if isinstance(next_token, int)
        else not isinstance(child, dict)
    )
    if wrong_type:
        if isinstance(child, (list, dict)):
            expected = "list" if isinstance(next_token, int) else "object"
            raise InvalidPathError(path, f"'{token}' is not a {expected}")
        child = blank
        container[token] = child
    return child


def set_value(doc: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of doc with value written at path.

    Missing intermediate containers are created: a dict for a key step, a
    list for an index step. Lists shorter than an index are padded. An
    existing scalar intermediate is replaced.

    Args:
        doc: Profile document. Not modified.
        path: Dotted/indexed path.
        value: Value to write (deep-copied).

    Returns:
        New document containing the written value.

    Raises:
        InvalidPathError: If the path is malformed, or it would replace an
            existing list with a dict or a dict with a list.
    """
    tokens = parse_path(path)
    result = copy.deepcopy(doc) if doc is not None else {}

    current: Any = result
    for position, token in enumerate(tokens[:-1]):
        current = _descend(path, current, token, tokens[position + 1])

    leaf = tokens[-1]
    if isinstance(leaf, int):
        _descend(path, current, leaf, None)
    current[leaf] = copy.deepcopy(value)
    return result


def append_item(doc: dict[str, Any], path: str, item: Any) -> dict[str, Any]:
    """Return a copy of doc with item appended to the list at path.

    A missing (or non-list) value at path becomes a one-item list.

    Args:
        doc: Profile document. Not modified.
        path: Path of a list field, e.g. "experience".
        item: Item to append.

    Returns:
        New document with the list extended.
    """
    existing = get_value(doc, path)
    items = list(existing) if isinstance(existing, list) else []
    items.append(item)
    return set_value(doc, path, items)
