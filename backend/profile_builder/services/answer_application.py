"""Apply one answer to the profile document.

Dispatches on the question's ``answer_kind`` tag, never on which optional
fields happen to be present. Every handler returns a new document; the
input document is never modified, so a rejected answer leaves nothing
partially written.
"""

from collections.abc import Callable
from typing import Any

import structlog

from profile_builder.schemas.profile import normalize_document
from profile_builder.schemas.questions import (
    AnswerKind,
    DelimitedListQuestion,
    FreeformQuestion,
    Question,
    ScalarQuestion,
    SkillRatingQuestion,
    StructuredCompositeQuestion,
)
from profile_builder.services.answer_parsing import (
    is_negation,
    normalize_level,
    parse_education_answer,
    parse_email,
    parse_experience_answer,
    parse_skill_rating,
    split_delimited,
)
from profile_builder.services.path_mutator import append_item, get_value, set_value
from profile_builder.services.pipeline_errors import AnswerValidationError

logger = structlog.get_logger()

Document = dict[str, Any]


# =============================================================================
# Handlers
# =============================================================================


def _apply_scalar(doc: Document, question: ScalarQuestion, answer: str) -> Document:
    for choice, mapped in question.choice_values.items():
        if choice.casefold() == answer.casefold():
            if mapped is None:
                return doc
            return set_value(doc, question.target_path, mapped)

    if question.value_format == "email":
        try:
            answer = parse_email(answer)
        except ValueError as exc:
            raise AnswerValidationError(question.id, str(exc)) from exc

    return set_value(doc, question.target_path, answer)


def _apply_delimited_list(
    doc: Document, question: DelimitedListQuestion, answer: str
) -> Document:
    items = split_delimited(answer)
    if not items:
        return doc
    if question.item_field:
        return set_value(
            doc, question.target_path, [{question.item_field: item} for item in items]
        )
    return set_value(doc, question.target_path, items)


def upsert_skill(doc: Document, name: str, level: str, key: str = "") -> Document:
    """Insert a skill or update the matching one.

    A skill matches when both sides carry the same non-empty key, or when
    names are equal ignoring case. Position in the list is never used.

    Args:
        doc: Profile document. Not modified.
        name: Skill display name.
        level: Proficiency level.
        key: Optional stable skill key (e.g. "projectManagement").

    Returns:
        New document with the skill present.
    """
    skills = list(get_value(doc, "skills", []) or [])
    folded_name = name.casefold()

    for index, skill in enumerate(skills):
        if not isinstance(skill, dict):
            continue
        same_key = bool(key) and skill.get("key") == key
        same_name = str(skill.get("name", "")).casefold() == folded_name
        if same_key or same_name:
            updated = {**skill, "level": level or skill.get("level", "")}
            if key and not skill.get("key"):
                updated["key"] = key
            if not skill.get("name"):
                updated["name"] = name
            skills[index] = updated
            return set_value(doc, "skills", skills)

    skills.append({"name": name, "category": "", "level": level, "key": key})
    return set_value(doc, "skills", skills)


def _apply_skill_rating(doc: Document, question: SkillRatingQuestion, answer: str) -> Document:
    if question.skill_name:
        if is_negation(answer):
            return doc
        return upsert_skill(doc, question.skill_name, normalize_level(answer), question.skill_key)

    rating = parse_skill_rating(answer)
    if rating is None:
        return doc
    return upsert_skill(doc, rating.name, rating.level, question.skill_key)


_COMPOSITE_PARSERS: dict[str, Callable[[str], dict[str, Any] | None]] = {
    "experience": parse_experience_answer,
    "education": parse_education_answer,
}


def _apply_structured_composite(
    doc: Document, question: StructuredCompositeQuestion, answer: str
) -> Document:
    entry = _COMPOSITE_PARSERS[question.composite](answer)
    if entry is None:
        return doc
    return append_item(doc, question.target_path, entry)


def _apply_freeform(doc: Document, question: FreeformQuestion, answer: str) -> Document:
    return append_item(doc, "userAdditions", {"question": question.prompt, "answer": answer})


_HANDLERS: dict[str, Callable[[Document, Any, str], Document]] = {
    AnswerKind.SCALAR.value: _apply_scalar,
    AnswerKind.DELIMITED_LIST.value: _apply_delimited_list,
    AnswerKind.SKILL_RATING.value: _apply_skill_rating,
    AnswerKind.STRUCTURED_COMPOSITE.value: _apply_structured_composite,
    AnswerKind.FREEFORM.value: _apply_freeform,
}


# =============================================================================
# Entry point
# =============================================================================


def apply_answer(doc: Document, question: Question, answer: str) -> Document:
    """Write one answer into the document according to its question kind.

    Args:
        doc: Current profile document. Not modified.
        question: The question being answered.
        answer: Non-blank answer text.

    Returns:
        New normalised document. Equal to doc when the answer carries
        nothing to write (a negation, or a choice mapped to no value).

    Raises:
        AnswerValidationError: If the answer fails the question's format
            check. No mutation occurs.
    """
    handler = _HANDLERS[question.answer_kind]
    updated = handler(doc, question, answer.strip())
    logger.debug(
        "answer_applied",
        question_id=question.id,
        answer_kind=question.answer_kind,
        changed=updated is not doc,
    )
    return normalize_document(updated)
