"""Field-level diff between two profile document snapshots.

Used to review an improve result before it replaces the canonical document.

Algorithm:
1. Flatten both documents into path -> value maps. Dicts recurse by key;
   lists holding dicts recurse by index so each entry field is compared on
   its own; lists of plain values (bullets, certificates) are leaves.
2. Walk the union of paths. Paths that are empty on both sides are skipped.
3. Classify: empty -> value is added, value -> empty is removed, two
   unequal values is modified. Equal values are never emitted.
4. Sort by human-readable label (numbers compared numerically), then path.

diff() is a pure function: the same two documents always produce the same
entries in the same order.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from profile_builder.schemas.profile import TOP_LEVEL_LIST_FIELDS
from profile_builder.services.answer_parsing import humanize_key
from profile_builder.services.path_mutator import parse_path

__all__ = [
    "DiffKind",
    "DiffReview",
    "FieldDiff",
    "diff",
    "flatten_document",
    "group_by_section",
    "is_empty_value",
    "make_label",
]

# =============================================================================
# Types
# =============================================================================


class DiffKind(str, Enum):
    """Classification of one field-level change."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class FieldDiff:
    """One classified difference between two snapshots.

    Attributes:
        path: Document path, e.g. "experience[0].title".
        label: Human-readable label, e.g. "Experience #1 - Title".
        old_value: Value before (None when absent).
        new_value: Value after (None when absent).
        kind: added, removed or modified.
    """

    path: str
    label: str
    old_value: Any
    new_value: Any
    kind: DiffKind

    @property
    def section(self) -> str:
        """Top-level document key the change belongs to."""
        return str(parse_path(self.path)[0])

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "path": self.path,
            "label": self.label,
            "section": self.section,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "kind": self.kind.value,
        }


# =============================================================================
# Flattening
# =============================================================================


def is_empty_value(value: Any) -> bool:
    """True for None, blank strings, and empty lists or dicts."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def flatten_document(doc: Any, prefix: str = "") -> dict[str, Any]:
    """Convert a nested document into a path -> leaf value map.

    Args:
        doc: Profile document (or any nested dict/list structure).
        prefix: Path prefix for generated keys.

    Returns:
        A new dict keyed by dotted/indexed path.
    """
    out: dict[str, Any] = {}
    for key, value in (doc or {}).items():
        path = f"{prefix}.{key}" if prefix else str(key)
        _flatten_value(value, path, out)
    return out


def _flatten_value(value: Any, path: str, out: dict[str, Any]) -> None:
    if isinstance(value, dict):
        if not value:
            out[path] = value
            return
        out.update(flatten_document(value, path))
    elif isinstance(value, list) and any(isinstance(item, dict) for item in value):
        for index, item in enumerate(value):
            _flatten_value(item, f"{path}[{index}]", out)
    else:
        out[path] = value


# =============================================================================
# Labels
# =============================================================================

_SECTION_LABELS: dict[str, str] = {
    "personalInfo": "Personal Info",
    "summary": "Summary",
    "experience": "Experience",
    "education": "Education",
    "skills": "Skill",
    "projects": "Project",
    "links": "Link",
    "certificates": "Certificate",
    "languages": "Language",
    "references": "Reference",
    "userAdditions": "User Addition",
}

_SECTION_ORDER: tuple[str, ...] = ("personalInfo", "summary", *TOP_LEVEL_LIST_FIELDS)

_NATURAL_SPLIT = re.compile(r"(\d+)")


def make_label(path: str) -> str:
    """Build the display label for a path.

    Examples:
        personalInfo.email    -> "Personal Info - Email"
        experience[0].title   -> "Experience #1 - Title"
        certificates          -> "Certificates"
    """
    tokens = parse_path(path)
    parts: list[str] = []
    for position, token in enumerate(tokens):
        if isinstance(token, int):
            continue
        next_token = tokens[position + 1] if position + 1 < len(tokens) else None
        if isinstance(next_token, int):
            if position == 0:
                name = _SECTION_LABELS.get(token, humanize_key(token))
            else:
                name = humanize_key(token)
            parts.append(f"{name} #{next_token + 1}")
        elif position == 0 and len(tokens) > 1:
            parts.append(_SECTION_LABELS.get(token, humanize_key(token)))
        else:
            parts.append(humanize_key(token))
    return " - ".join(parts)


def _natural_key(text: str) -> tuple[Any, ...]:
    return tuple(
        int(chunk) if chunk.isdigit() else chunk.casefold()
        for chunk in _NATURAL_SPLIT.split(text)
    )


# =============================================================================
# Diff
# =============================================================================


def _classify(old_value: Any, new_value: Any) -> DiffKind | None:
    old_empty = is_empty_value(old_value)
    new_empty = is_empty_value(new_value)
    if old_empty and new_empty:
        return None
    if old_empty:
        return DiffKind.ADDED
    if new_empty:
        return DiffKind.REMOVED
    if old_value != new_value:
        return DiffKind.MODIFIED
    return None


def diff(old_doc: Any, new_doc: Any) -> list[FieldDiff]:
    """Compute the classified field-level changes from old_doc to new_doc.

    Args:
        old_doc: Snapshot before the change.
        new_doc: Snapshot after the change.

    Returns:
        FieldDiff entries sorted by label, then path. Empty when the
        documents are equal.
    """
    old_flat = flatten_document(old_doc)
    new_flat = flatten_document(new_doc)

    entries: list[FieldDiff] = []
    for path in old_flat.keys() | new_flat.keys():
        old_value = old_flat.get(path)
        new_value = new_flat.get(path)
        kind = _classify(old_value, new_value)
        if kind is None:
            continue
        entries.append(
            FieldDiff(
                path=path,
                label=make_label(path),
                old_value=old_value,
                new_value=new_value,
                kind=kind,
            )
        )

    entries.sort(key=lambda entry: (_natural_key(entry.label), _natural_key(entry.path)))
    return entries


def group_by_section(entries: list[FieldDiff]) -> dict[str, list[FieldDiff]]:
    """Group entries by top-level section, in document section order.

    Args:
        entries: Sorted diff entries.

    Returns:
        Ordered dict of section key -> entries (sort order kept within a
        section). Sections with no changes are omitted.
    """
    groups: dict[str, list[FieldDiff]] = {}
    for entry in entries:
        groups.setdefault(entry.section, []).append(entry)

    def section_rank(section: str) -> tuple[int, str]:
        if section in _SECTION_ORDER:
            return (_SECTION_ORDER.index(section), section)
        return (len(_SECTION_ORDER), section)

    return {section: groups[section] for section in sorted(groups, key=section_rank)}


# =============================================================================
# Review
# =============================================================================


@dataclass
class DiffReview:
    """A pending improve result awaiting accept/reject.

    Selection is informational for the host UI; accepting a review always
    swaps in the whole ``after`` document.

    Attributes:
        before: Snapshot captured immediately before the improve call.
        after: Document returned by the improve call.
        entries: Diff from before to after.
        selected: Paths currently selected in the UI (all by default).
    """

    before: dict[str, Any]
    after: dict[str, Any]
    entries: list[FieldDiff] = field(default_factory=list)
    selected: set[str] = field(default_factory=set)

    @classmethod
    def from_documents(cls, before: dict[str, Any], after: dict[str, Any]) -> "DiffReview":
        """Compute the diff and select every change."""
        entries = diff(before, after)
        return cls(
            before=before,
            after=after,
            entries=entries,
            selected={entry.path for entry in entries},
        )

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def grouped(self) -> dict[str, list[FieldDiff]]:
        return group_by_section(self.entries)

    def toggle(self, path: str) -> bool:
        """Flip selection of one change.

        Returns:
            True if the path is selected after the call.

        Raises:
            KeyError: If no change exists at path.
        """
        if path not in {entry.path for entry in self.entries}:
            raise KeyError(path)
        if path in self.selected:
            self.selected.discard(path)
            return False
        self.selected.add(path)
        return True

    def select_all(self) -> None:
        self.selected = {entry.path for entry in self.entries}

    def clear(self) -> None:
        self.selected = set()

    def selected_entries(self) -> list[FieldDiff]:
        return [entry for entry in self.entries if entry.path in self.selected]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses (grouped, with selection flags)."""
        return {
            "changeCount": len(self.entries),
            "sections": [
                {
                    "section": section,
                    "changes": [
                        {**entry.to_dict(), "selected": entry.path in self.selected}
                        for entry in section_entries
                    ],
                }
                for section, section_entries in self.grouped().items()
            ],
        }
