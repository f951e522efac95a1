"""Tests for the field-level diff engine.

Tests verify:
- Reflexivity: diff(D, D) is always empty
- added / removed / modified classification
- Both-empty paths are never emitted
- Human-readable labels and natural label ordering
- Grouping by top-level section in document order
- DiffReview selection helpers and serialisation
"""

import copy

import pytest

from profile_builder.schemas.profile import empty_document, normalize_document
from profile_builder.services.diff_engine import (
    DiffKind,
    DiffReview,
    diff,
    flatten_document,
    group_by_section,
    is_empty_value,
    make_label,
)
from tests.conftest import complete_document

# =============================================================================
# Helpers
# =============================================================================


def _with(doc: dict, **changes) -> dict:
    updated = copy.deepcopy(doc)
    updated.update(changes)
    return normalize_document(updated)


# =============================================================================
# Flattening
# =============================================================================


class TestFlattenDocument:
    """Tests for path -> value flattening."""

    def test_nested_dicts_use_dotted_paths(self):
        flat = flatten_document({"personalInfo": {"name": "Jane", "email": ""}})

        assert flat == {"personalInfo.name": "Jane", "personalInfo.email": ""}

    def test_lists_of_objects_use_indexed_paths(self):
        flat = flatten_document({"experience": [{"title": "A"}, {"title": "B"}]})

        assert flat == {"experience[0].title": "A", "experience[1].title": "B"}

    def test_lists_of_strings_are_leaves(self):
        flat = flatten_document({"certificates": ["AWS", "CKA"]})

        assert flat == {"certificates": ["AWS", "CKA"]}

    def test_empty_containers_are_leaves(self):
        assert flatten_document({"experience": [], "meta": {}}) == {
            "experience": [],
            "meta": {},
        }


class TestIsEmptyValue:
    """Tests for semantic emptiness."""

    @pytest.mark.parametrize("value", [None, "", "   ", [], {}])
    def test_empty_values(self, value):
        assert is_empty_value(value) is True

    @pytest.mark.parametrize("value", ["x", ["a"], {"k": "v"}, 0, False])
    def test_non_empty_values(self, value):
        assert is_empty_value(value) is False


# =============================================================================
# Classification
# =============================================================================


class TestDiffClassification:
    """Tests for added / removed / modified."""

    def test_identical_documents_produce_no_entries(self):
        doc = complete_document()

        assert diff(doc, copy.deepcopy(doc)) == []

    def test_empty_skeleton_against_itself_is_empty(self):
        assert diff(empty_document(), empty_document()) == []

    def test_empty_to_value_is_added(self):
        old = empty_document()
        new = _with(old, personalInfo={"email": "jane@example.com"})

        entries = diff(old, new)

        assert len(entries) == 1
        assert entries[0].path == "personalInfo.email"
        assert entries[0].kind is DiffKind.ADDED
        assert entries[0].old_value == ""
        assert entries[0].new_value == "jane@example.com"

    def test_value_to_empty_is_removed(self):
        old = _with(empty_document(), certificates=["AWS SAA"])
        new = empty_document()

        entries = diff(old, new)

        assert [(e.path, e.kind) for e in entries] == [("certificates", DiffKind.REMOVED)]

    def test_changed_value_is_modified(self):
        old = _with(empty_document(), summary="Engineer.")
        new = _with(empty_document(), summary="Senior engineer.")

        entries = diff(old, new)

        assert [(e.path, e.kind) for e in entries] == [("summary", DiffKind.MODIFIED)]

    def test_string_list_change_is_one_modified_entry(self):
        old = complete_document()
        new = copy.deepcopy(old)
        new["experience"][0]["bullets"].append("Cut p99 latency by 40%")

        entries = diff(old, new)

        assert [(e.path, e.kind) for e in entries] == [
            ("experience[0].bullets", DiffKind.MODIFIED)
        ]

    def test_new_list_item_fields_are_individually_added(self):
        old = empty_document()
        new = _with(old, education=[{"degree": "BSc", "institution": "MIT"}])

        paths = {e.path: e.kind for e in diff(old, new)}

        assert paths == {
            "education[0].degree": DiffKind.ADDED,
            "education[0].institution": DiffKind.ADDED,
        }

    def test_removed_list_item_fields_are_removed(self):
        old = complete_document()
        new = _with(old, education=[])

        kinds = {e.kind for e in diff(old, new) if e.section == "education"}

        assert kinds == {DiffKind.REMOVED}

    @pytest.mark.parametrize(
        ("old_summary", "new_summary"),
        [("", "   "), (None, ""), ("  ", None)],
    )
    def test_both_empty_never_emitted(self, old_summary, new_summary):
        entries = diff({"summary": old_summary}, {"summary": new_summary})

        assert entries == []

    def test_no_entry_has_both_sides_empty(self):
        old = complete_document()
        new = _with(empty_document(), summary="Other", languages=[{"language": "German"}])

        for entry in diff(old, new):
            assert not (is_empty_value(entry.old_value) and is_empty_value(entry.new_value))

    def test_is_deterministic(self):
        old = complete_document()
        new = _with(
            empty_document(),
            summary="Different summary",
            skills=[{"name": "Go"}, {"name": "Rust"}],
        )

        assert diff(old, new) == diff(copy.deepcopy(old), copy.deepcopy(new))


# =============================================================================
# Labels and ordering
# =============================================================================


class TestLabels:
    """Tests for human-readable labels."""

    @pytest.mark.parametrize(
        ("path", "label"),
        [
            ("personalInfo.email", "Personal Info - Email"),
            ("experience[0].title", "Experience #1 - Title"),
            ("experience[1].startDate", "Experience #2 - Start Date"),
            ("skills[2].level", "Skill #3 - Level"),
            ("certificates", "Certificates"),
            ("summary", "Summary"),
            ("userAdditions[0].answer", "User Addition #1 - Answer"),
        ],
    )
    def test_make_label(self, path, label):
        assert make_label(path) == label

    def test_entries_sorted_by_label(self):
        old = empty_document()
        new = _with(
            old,
            summary="Hello there",
            personalInfo={"name": "Jane"},
            certificates=["AWS"],
        )

        labels = [e.label for e in diff(old, new)]

        assert labels == ["Certificates", "Personal Info - Name", "Summary"]

    def test_numbers_in_labels_sort_numerically(self):
        old = empty_document()
        new = _with(old, experience=[{"title": f"Role {i}"} for i in range(11)])

        labels = [e.label for e in diff(old, new)]

        assert labels[:3] == [
            "Experience #1 - Title",
            "Experience #2 - Title",
            "Experience #3 - Title",
        ]
        assert labels[-2:] == ["Experience #10 - Title", "Experience #11 - Title"]


class TestGroupBySection:
    """Tests for section grouping."""

    def test_groups_in_document_section_order(self):
        old = empty_document()
        new = _with(
            old,
            languages=[{"language": "English"}],
            summary="Summary text",
            personalInfo={"name": "Jane"},
            experience=[{"title": "Engineer"}],
        )

        groups = group_by_section(diff(old, new))

        assert list(groups) == ["personalInfo", "summary", "experience", "languages"]
        assert [e.path for e in groups["experience"]] == ["experience[0].title"]

    def test_sections_without_changes_are_omitted(self):
        old = empty_document()
        new = _with(old, summary="Only this changed")

        assert list(group_by_section(diff(old, new))) == ["summary"]


# =============================================================================
# Review
# =============================================================================


class TestDiffReview:
    """Tests for the pending review wrapper."""

    @pytest.fixture
    def review(self):
        old = empty_document()
        new = _with(old, summary="New summary", personalInfo={"name": "Jane"})
        return DiffReview.from_documents(old, new)

    def test_all_changes_selected_by_default(self, review):
        assert review.selected == {"summary", "personalInfo.name"}
        assert not review.is_empty

    def test_identical_documents_give_empty_review(self):
        doc = complete_document()

        assert DiffReview.from_documents(doc, copy.deepcopy(doc)).is_empty

    def test_toggle_flips_selection(self, review):
        assert review.toggle("summary") is False
        assert [e.path for e in review.selected_entries()] == ["personalInfo.name"]
        assert review.toggle("summary") is True

    def test_toggle_unknown_path_raises(self, review):
        with pytest.raises(KeyError):
            review.toggle("education[0].degree")

    def test_clear_and_select_all(self, review):
        review.clear()
        assert review.selected_entries() == []

        review.select_all()
        assert len(review.selected_entries()) == 2

    def test_to_dict_groups_changes_with_selection(self, review):
        review.toggle("summary")

        data = review.to_dict()

        assert data["changeCount"] == 2
        assert [s["section"] for s in data["sections"]] == ["personalInfo", "summary"]
        summary_change = data["sections"][1]["changes"][0]
        assert summary_change == {
            "path": "summary",
            "label": "Summary",
            "section": "summary",
            "oldValue": "",
            "newValue": "New summary",
            "kind": "added",
            "selected": False,
        }
